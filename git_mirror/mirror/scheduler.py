"""
Scheduler — Run mirror jobs on a bounded pool of workers.

Jobs are dispatched in directive order to a fixed number of worker
threads; a job starts only when a worker is free. Completion order is
arbitrary. The calling thread meanwhile feeds every progress event to the
reporter, which therefore remains the single consumer of the channel.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence

from ..errors import ConfigError
from .config import MirrorOptions
from .directives import Directive
from .executor import EVENT_END, ProgressEvent, TaskExecutor
from .job import MirrorJob, SyncOutcome, SyncStatus, working_dir_for
from .reporter import Reporter, RunSummary

logger = logging.getLogger(__name__)


class Scheduler:
    """Bounded-concurrency execution of one batch of directives."""

    def __init__(
        self,
        executor: TaskExecutor,
        options: MirrorOptions,
        cancel: Optional[threading.Event] = None,
        poll_interval: float = 0.2,
    ):
        if options.worker_count < 1:
            raise ConfigError(
                f"Worker count must be a positive integer, got {options.worker_count}"
            )
        self.executor = executor
        self.options = options
        self.cancel = cancel
        self.poll_interval = poll_interval

    @property
    def events(self) -> "queue.Queue[ProgressEvent]":
        return self.executor.events

    def build_jobs(self, directives: Sequence[Directive]) -> List[MirrorJob]:
        """
        Assign index, total and a private working directory to each directive.

        A repeated identity is dropped; two distinct identities sharing one
        directory are a ConfigError.
        """
        owners: Dict[str, str] = {}
        unique: List[Directive] = []

        for directive in directives:
            working_dir = working_dir_for(self.options.mirror_dir, directive.identity)
            owner = owners.get(str(working_dir))
            if owner == directive.identity:
                logger.warning(f"[mirror] Ignoring repeated directive for {directive.identity}")
                continue
            if owner is not None:
                raise ConfigError(
                    f"Directives {owner} and {directive.identity} map to the same "
                    f"working directory {working_dir}"
                )
            owners[str(working_dir)] = directive.identity
            unique.append(directive)

        total = len(unique)
        return [
            MirrorJob(index, total, directive, working_dir_for(self.options.mirror_dir, directive.identity))
            for index, directive in enumerate(unique)
        ]

    def run(self, directives: Sequence[Directive], reporter: Reporter) -> RunSummary:
        jobs = self.build_jobs(directives)
        if not jobs:
            logger.info("[mirror] Nothing to mirror")
            return reporter.summary

        logger.info(
            f"[mirror] Running {len(jobs)} job(s) on {self.options.worker_count} worker(s)"
        )

        with ThreadPoolExecutor(
            max_workers=self.options.worker_count,
            thread_name_prefix="mirror-worker",
        ) as pool:
            futures = [pool.submit(self.executor.run, job) for job in jobs]
            try:
                self._consume(futures, reporter)
            except BaseException:
                # Stop queued jobs and kill the git commands still running
                if self.cancel is not None:
                    self.cancel.set()
                pool.shutdown(wait=True, cancel_futures=True)
                raise

        self._drain(reporter)
        self._reconcile(jobs, futures, reporter)
        return reporter.summary

    def _consume(self, futures: List[Future], reporter: Reporter) -> None:
        while reporter.pending > 0:
            try:
                event = self.events.get(timeout=self.poll_interval)
            except queue.Empty:
                if all(f.done() for f in futures) and self.events.empty():
                    return
                continue
            reporter.handle(event)

    def _drain(self, reporter: Reporter) -> None:
        while True:
            try:
                reporter.handle(self.events.get_nowait())
            except queue.Empty:
                return

    def _reconcile(self, jobs: List[MirrorJob], futures: List[Future], reporter: Reporter) -> None:
        """Give an outcome to any job whose worker died before reporting."""
        for job, future in zip(jobs, futures):
            if reporter.has_reported(job):
                continue
            error = future.exception()
            outcome = SyncOutcome(
                job=job,
                status=SyncStatus.FAILED,
                duration=0.0,
                reason=f"Worker error: {error}" if error else "Worker exited without result",
            )
            reporter.handle(ProgressEvent(EVENT_END, job, outcome))
