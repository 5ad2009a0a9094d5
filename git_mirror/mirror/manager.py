"""
Mirror Manager — Orchestrates one complete mirror run.

This is the main entry point for mirroring. It discovers directives from
the provider, runs them through the scheduler, and writes the reports.

## Usage from other modules:

    from git_mirror.mirror.manager import do_mirror

    summary = do_mirror(provider, options)

Fatal problems (bad configuration, lock held by another run, provider
unreachable, git unusable) raise before any job starts. Failures of
individual jobs only end up in the summary, and raise SyncError at the
end if options.fail_on_sync_error is set.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import click

from ..errors import ConfigError, SyncError
from ..observability.metrics import MetricsRegistry
from ..provider.base import Provider
from .config import MirrorOptions
from .directives import DirectiveStore
from .executor import ProgressEvent, TaskExecutor
from .git import GitRunner, GitSync
from .junit import write_junit
from .lock import MirrorLock
from .reporter import Reporter, RunSummary
from .scheduler import Scheduler

logger = logging.getLogger(__name__)


class MirrorManager:
    """
    Runs a batch of mirror jobs for one provider.

    Collaborators are built from the options unless given explicitly,
    which is how tests substitute the sync primitive.
    """

    def __init__(
        self,
        provider: Provider,
        options: MirrorOptions,
        sync: Optional[GitSync] = None,
        metrics: Optional[MetricsRegistry] = None,
        echo: Callable[[str], None] = click.echo,
        cancel: Optional[threading.Event] = None,
    ):
        self.provider = provider
        self.options = options.validate()
        self.cancel = cancel or threading.Event()
        self.metrics = metrics or MetricsRegistry()
        self.echo = echo
        self.sync = sync or GitSync(
            GitRunner(options.git_executable, options.git_timeout, self.cancel),
            force_push=options.force_push,
            dry_run=options.dry_run,
            remove_workrepo=options.remove_workrepo,
        )

    @property
    def label(self) -> str:
        return self.provider.label

    def discover(self) -> DirectiveStore:
        """List projects and decode their directives. Provider errors are fatal."""
        logger.info(f"[mirror] Discovering mirror directives in {self.label}")
        return DirectiveStore.from_records(self.provider.list_projects(), self.options)

    def run(self) -> RunSummary:
        mirror_dir = Path(self.options.mirror_dir)
        logger.debug(f"[mirror] Create mirror directory at {mirror_dir}")
        try:
            mirror_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"Unable to create mirror dir: {mirror_dir} ({e})") from e

        with MirrorLock(self.options.lock_file):
            store = self.discover()

            if not self.options.dry_run and store.directives:
                self.sync.check_versions(lfs=any(d.lfs_enabled for d in store.directives))

            labels = {"mirror": self.label}
            self.metrics.set_gauge("start_time", time.time(), labels)

            events: "queue.Queue[ProgressEvent]" = queue.Queue()
            executor = TaskExecutor(self.sync, self.options, events)
            scheduler = Scheduler(executor, self.options, cancel=self.cancel)
            reporter = Reporter(
                self.label,
                store.total,
                metrics=self.metrics,
                echo=self.echo,
                skipped=store.skipped,
                invalid=store.warnings,
            )

            summary = scheduler.run(store.directives, reporter)
            reporter.finish()

            self.metrics.set_gauge("end_time", time.time(), labels)
            self.write_reports(summary)

        logger.info(
            f"[mirror] Run complete: {summary.ok} ok, {summary.failed} failed, "
            f"{summary.timed_out} timed out, {len(summary.skipped)} skipped"
        )
        return summary

    def write_reports(self, summary: RunSummary) -> None:
        if self.options.metrics_file:
            self.metrics.write_textfile(self.options.metrics_file)
        else:
            logger.debug("[mirror] Skipping metrics file creation")

        if self.options.junit_file:
            write_junit(self.options.junit_file, summary, self.label)
        else:
            logger.debug("[mirror] Skipping junit report")


def do_mirror(provider: Provider, options: MirrorOptions, **kwargs) -> RunSummary:
    """Run a full mirror batch; raise SyncError if fail-fast was requested and a job failed."""
    summary = MirrorManager(provider, options, **kwargs).run()
    if summary.exit_code(options.fail_on_sync_error) != 0:
        raise SyncError(summary.errors)
    return summary
