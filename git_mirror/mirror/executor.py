"""
Task Executor — Run one MirrorJob and report its progress.

The executor never raises: whatever goes wrong inside a sync becomes the
job's FAILED outcome, so a single broken job cannot take down the batch.
"""

from __future__ import annotations

import logging
import queue
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from .config import MirrorOptions
from .git import GitSync
from .job import MirrorJob, SyncOutcome, SyncStatus

logger = logging.getLogger(__name__)

EVENT_START = "START"
EVENT_END = "END"


@dataclass(frozen=True)
class ProgressEvent:
    """A START or END notification sent from a worker to the reporter."""

    kind: str
    job: MirrorJob
    outcome: Optional[SyncOutcome] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class TaskExecutor:
    """Drives the sync primitive for one job at a time."""

    def __init__(
        self,
        sync: GitSync,
        options: MirrorOptions,
        events: "queue.Queue[ProgressEvent]",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sync = sync
        self.options = options
        self.events = events
        self.clock = clock

    def resolve_refspec(self, job: MirrorJob) -> Tuple[str, ...]:
        """Directive refspec, else the global one, else () meaning mirror all refs."""
        if job.directive.refspecs:
            logger.debug(f"[mirror] Using repo specific refspec: {job.directive.refspecs}")
            return job.directive.refspecs
        if self.options.refspec:
            logger.debug(f"[mirror] Using global custom refspec: {self.options.refspec}")
            return tuple(self.options.refspec)
        logger.debug("[mirror] Using no custom refspec")
        return ()

    def run(self, job: MirrorJob) -> SyncOutcome:
        directive = job.directive
        refspecs = self.resolve_refspec(job)

        context = {"job_index": job.index, "origin": directive.origin_url}
        logger.debug(f"[mirror] Starting {directive.display_name}", extra=context)
        self.events.put(ProgressEvent(EVENT_START, job))
        start = self.clock()
        try:
            job.working_dir.parent.mkdir(parents=True, exist_ok=True)
            result = self.sync.execute(
                directive.origin_url,
                directive.destination_url,
                refspecs,
                directive.lfs_enabled,
                job.working_dir,
            )
            outcome = SyncOutcome(
                job=job,
                status=result.status,
                duration=self.clock() - start,
                stage=result.stage,
                reason=result.reason,
            )
        except Exception as e:
            logger.exception(
                f"[mirror] Unexpected error while syncing {directive.display_name}",
                extra=context,
            )
            outcome = SyncOutcome(
                job=job,
                status=SyncStatus.FAILED,
                duration=self.clock() - start,
                reason=f"{type(e).__name__}: {e}",
            )

        logger.debug(
            f"[mirror] Finished {directive.display_name}: {outcome.status.value}",
            extra={**context, "stage": outcome.stage},
        )
        self.events.put(ProgressEvent(EVENT_END, job, outcome))
        return outcome
