"""
Observability Module — Run metrics for Prometheus.
"""

from .metrics import Counter, Gauge, MetricsRegistry

__all__ = [
    "MetricsRegistry",
    "Counter",
    "Gauge",
]
