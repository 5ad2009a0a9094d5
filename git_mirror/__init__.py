"""
git-mirror — Mirror repositories discovered from GitLab groups or GitHub orgs.
"""

__version__ = "0.14.0"
