"""
Metrics — Collect run metrics and write a Prometheus textfile.

The textfile is meant for node-exporter's textfile collector, so it is
written atomically (temp file + rename) and always reflects one complete
run.

## Usage

    from git_mirror.observability.metrics import MetricsRegistry

    registry = MetricsRegistry()
    registry.increment("total", labels={"mirror": label})
    registry.set_gauge("last_run_timestamp", time.time(), labels={"mirror": label})

    registry.write_textfile(Path("/var/lib/node_exporter/git_mirror.prom"))
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

LabelKey = Tuple[Tuple[str, str], ...]


@dataclass
class MetricPoint:
    """A single metric data point."""

    name: str
    value: float
    timestamp: float
    labels: Dict[str, str] = field(default_factory=dict)


def _labels_key(labels: Optional[Dict[str, str]]) -> LabelKey:
    if not labels:
        return ()
    return tuple(sorted(labels.items()))


class Counter:
    """A monotonically increasing counter."""

    def __init__(self, name: str, help_text: str = ""):
        self.name = name
        self.help_text = help_text
        self._values: Dict[LabelKey, float] = defaultdict(float)
        self._lock = Lock()

    def inc(self, value: float = 1, labels: Optional[Dict[str, str]] = None) -> None:
        """Increment the counter."""
        if value < 0:
            raise ValueError("Counters can only be incremented")
        key = _labels_key(labels)
        with self._lock:
            self._values[key] += value

    def get(self, labels: Optional[Dict[str, str]] = None) -> float:
        """Get current value."""
        return self._values.get(_labels_key(labels), 0)

    def export(self) -> List[MetricPoint]:
        """Export all values as metric points."""
        now = time.time()
        with self._lock:
            items = list(self._values.items())
        return [MetricPoint(self.name, value, now, dict(key)) for key, value in items]


class Gauge:
    """A gauge that can be set to arbitrary values."""

    def __init__(self, name: str, help_text: str = ""):
        self.name = name
        self.help_text = help_text
        self._values: Dict[LabelKey, float] = {}
        self._lock = Lock()

    def set(self, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        """Set the gauge value."""
        key = _labels_key(labels)
        with self._lock:
            self._values[key] = value

    def get(self, labels: Optional[Dict[str, str]] = None) -> float:
        """Get current value."""
        return self._values.get(_labels_key(labels), 0)

    def export(self) -> List[MetricPoint]:
        """Export all values as metric points."""
        now = time.time()
        with self._lock:
            items = list(self._values.items())
        return [MetricPoint(self.name, value, now, dict(key)) for key, value in items]


class MetricsRegistry:
    """
    Registry for the metrics of one run.

    Created per run and passed to whoever records; there is no module
    level instance.
    """

    def __init__(self, prefix: str = "git_mirror"):
        self.prefix = prefix
        self._counters: Dict[str, Counter] = {}
        self._gauges: Dict[str, Gauge] = {}
        self._lock = Lock()

        self._register_common_metrics()

    def _register_common_metrics(self) -> None:
        """Register the series every run reports."""
        self.counter("total", "Total projects")
        self.counter("success", "Successfully mirrored projects")
        self.counter("failed", "Failed projects")
        self.counter("timeout", "Timed-out projects")
        self.counter("skip", "Skipped projects")

        self.gauge("last_run_timestamp", "End of the last run as unix timestamp")
        self.gauge("start_time", "Start time of the sync as unix timestamp")
        self.gauge("end_time", "End time of the sync as unix timestamp")
        self.gauge("project_start", "Start of project mirror as unix timestamp")
        self.gauge("project_end", "End of project mirror as unix timestamp")

    def counter(self, name: str, help_text: str = "") -> Counter:
        """Get or create a counter."""
        full_name = f"{self.prefix}_{name}"
        with self._lock:
            if full_name not in self._counters:
                self._counters[full_name] = Counter(full_name, help_text)
            return self._counters[full_name]

    def gauge(self, name: str, help_text: str = "") -> Gauge:
        """Get or create a gauge."""
        full_name = f"{self.prefix}_{name}"
        with self._lock:
            if full_name not in self._gauges:
                self._gauges[full_name] = Gauge(full_name, help_text)
            return self._gauges[full_name]

    # Convenience methods
    def increment(self, name: str, value: float = 1, labels: Optional[Dict[str, str]] = None) -> None:
        """Increment a counter."""
        self.counter(name).inc(value, labels)

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        """Set a gauge value."""
        self.gauge(name).set(value, labels)

    def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []

        for counter in self._counters.values():
            lines.append(f"# HELP {counter.name} {counter.help_text}")
            lines.append(f"# TYPE {counter.name} counter")
            for point in counter.export():
                lines.append(f"{point.name}{self._format_labels(point.labels)} {point.value}")

        for gauge in self._gauges.values():
            lines.append(f"# HELP {gauge.name} {gauge.help_text}")
            lines.append(f"# TYPE {gauge.name} gauge")
            for point in gauge.export():
                lines.append(f"{point.name}{self._format_labels(point.labels)} {point.value}")

        return "\n".join(lines) + "\n"

    def write_textfile(self, path: Path) -> None:
        """Write the exposition to path, replacing it atomically."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self.export_prometheus())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info(f"[mirror] Metrics written to {path}")

    def _format_labels(self, labels: Dict[str, str]) -> str:
        """Format labels for Prometheus."""
        if not labels:
            return ""
        pairs = [f'{k}="{self._escape(v)}"' for k, v in sorted(labels.items())]
        return "{" + ",".join(pairs) + "}"

    @staticmethod
    def _escape(value: str) -> str:
        return str(value).replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')
