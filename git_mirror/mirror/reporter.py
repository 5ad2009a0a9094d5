"""
Reporter — Progress lines, run summary and exit status.

The reporter is the only writer to stdout. Workers never print; they send
START/END events that the reporter renders one complete line at a time,
so concurrent jobs cannot interleave partial output.

Line format (stable, parsed by external tools):

    START <index>/<total> <name> [<timestamp>]
    END(OK) <index>/<total> <name> <duration> [<timestamp>]
    END(FAIL) <index>/<total> <name> <duration> [<timestamp>]: <stage> <reason>
    DONE <ok>/<total> [<timestamp>]
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import click

from ..observability.metrics import MetricsRegistry
from .executor import EVENT_END, EVENT_START, ProgressEvent
from .job import MirrorJob, SyncOutcome, SyncStatus

logger = logging.getLogger(__name__)


def format_duration(seconds: float) -> str:
    return f"{int(round(seconds))}s"


def format_timestamp(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat(timespec="seconds")


@dataclass
class RunSummary:
    """Outcomes of one run, in completion order."""

    outcomes: List[SyncOutcome] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    invalid: List[str] = field(default_factory=list)

    def add(self, outcome: SyncOutcome) -> None:
        self.outcomes.append(outcome)

    def _count(self, status: SyncStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def ok(self) -> int:
        return self._count(SyncStatus.OK)

    @property
    def failed(self) -> int:
        return self._count(SyncStatus.FAILED)

    @property
    def timed_out(self) -> int:
        return self._count(SyncStatus.TIMED_OUT)

    @property
    def errors(self) -> int:
        """Outcomes that count against --fail-on-sync-error."""
        return self.failed + self.timed_out

    def exit_code(self, fail_on_sync_error: bool) -> int:
        if fail_on_sync_error and self.errors > 0:
            return 1
        return 0


class Reporter:
    """Consumes progress events and accumulates the RunSummary."""

    def __init__(
        self,
        label: str,
        total: int,
        metrics: Optional[MetricsRegistry] = None,
        echo: Callable[[str], None] = click.echo,
        skipped: Optional[List[str]] = None,
        invalid: Optional[List[str]] = None,
    ):
        self.label = label
        self.total = total
        self.metrics = metrics
        self.echo = echo
        self.summary = RunSummary(skipped=list(skipped or []), invalid=list(invalid or []))
        self._reported: Dict[int, SyncOutcome] = {}

    def handle(self, event: ProgressEvent) -> None:
        if event.kind == EVENT_START:
            self._on_start(event.job, event.timestamp)
        elif event.kind == EVENT_END and event.outcome is not None:
            self._on_end(event.outcome, event.timestamp)
        else:
            logger.warning(f"[mirror] Ignoring unknown progress event {event.kind}")

    def has_reported(self, job: MirrorJob) -> bool:
        return job.index in self._reported

    @property
    def pending(self) -> int:
        return self.total - len(self._reported)

    def _labels(self, job: Optional[MirrorJob] = None) -> Dict[str, str]:
        labels = {"mirror": self.label}
        if job is not None:
            labels["origin"] = job.directive.origin_url
            labels["destination"] = job.directive.destination_url
        return labels

    def _on_start(self, job: MirrorJob, ts: datetime) -> None:
        self.echo(f"START {job.position} {job.name} [{format_timestamp(ts)}]")
        if self.metrics:
            self.metrics.set_gauge("project_start", ts.timestamp(), self._labels(job))

    def _on_end(self, outcome: SyncOutcome, ts: datetime) -> None:
        job = outcome.job
        if job.index in self._reported:
            logger.error(f"[mirror] Duplicate outcome for job {job.position}, ignored")
            return
        self._reported[job.index] = outcome
        self.summary.add(outcome)

        line = (
            f"END({'OK' if outcome.ok else 'FAIL'}) {job.position} {job.name} "
            f"{format_duration(outcome.duration)} [{format_timestamp(ts)}]"
        )
        if not outcome.ok:
            line = f"{line}: {outcome.message}"
            logger.error(f"[mirror] Unable to sync repo {job.directive.display_name} ({outcome.message})")
        self.echo(line)

        if self.metrics:
            self.metrics.increment("total", labels=self._labels())
            if outcome.status is SyncStatus.OK:
                self.metrics.increment("success", labels=self._labels())
            elif outcome.status is SyncStatus.TIMED_OUT:
                self.metrics.increment("timeout", labels=self._labels())
            else:
                self.metrics.increment("failed", labels=self._labels())
            self.metrics.set_gauge("project_end", ts.timestamp(), self._labels(job))

    def finish(self) -> RunSummary:
        """Print the closing line and finalize metrics."""
        now = datetime.now(timezone.utc)
        self.echo(f"DONE {self.summary.ok}/{self.total} [{format_timestamp(now)}]")

        if self.metrics:
            labels = self._labels()
            # Zero-valued series still appear in the textfile
            for name in ("total", "success", "failed", "timeout"):
                self.metrics.increment(name, 0, labels=labels)
            self.metrics.increment("skip", len(self.summary.skipped), labels=labels)
            self.metrics.set_gauge("last_run_timestamp", time.time(), labels=labels)

        return self.summary
