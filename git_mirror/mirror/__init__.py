"""
Mirror — Discover directives, run mirror jobs, report their outcomes.

Data flows directives → scheduler → executor → git sync → reporter.
"""
