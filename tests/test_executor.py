"""
Tests for git_mirror.mirror.executor
"""

import json
import logging
import queue
from pathlib import Path

import pytest

from git_mirror.logging_config import JSONFormatter
from git_mirror.mirror.config import MirrorOptions
from git_mirror.mirror.executor import EVENT_END, EVENT_START, TaskExecutor
from git_mirror.mirror.git import SyncResult
from git_mirror.mirror.job import MirrorJob, SyncStatus, working_dir_for

from conftest import FakeSync, make_directive


def _job(directive, mirror_dir: Path, index: int = 0, total: int = 1) -> MirrorJob:
    return MirrorJob(index, total, directive, working_dir_for(mirror_dir, directive.identity))


def _drain(events: queue.Queue):
    items = []
    while not events.empty():
        items.append(events.get_nowait())
    return items


class FakeClock:
    def __init__(self, *ticks):
        self._ticks = list(ticks)

    def __call__(self):
        return self._ticks.pop(0)


class TestResolveRefspec:
    """Directive refspec wins over the global one."""

    def test_directive_refspec_wins(self, tmp_path):
        options = MirrorOptions(mirror_dir=tmp_path, refspec=("refs/heads/*",))
        executor = TaskExecutor(FakeSync(), options, queue.Queue())
        job = _job(make_directive("a", refspecs=("refs/heads/main",)), tmp_path)

        assert executor.resolve_refspec(job) == ("refs/heads/main",)

    def test_global_refspec_fallback(self, tmp_path):
        options = MirrorOptions(mirror_dir=tmp_path, refspec=("refs/heads/*",))
        executor = TaskExecutor(FakeSync(), options, queue.Queue())

        assert executor.resolve_refspec(_job(make_directive("a"), tmp_path)) == ("refs/heads/*",)

    def test_no_refspec_means_mirror_all(self, options):
        executor = TaskExecutor(FakeSync(), options, queue.Queue())

        assert executor.resolve_refspec(_job(make_directive("a"), options.mirror_dir)) == ()


class TestRun:
    """Tests for TaskExecutor.run()."""

    def test_emits_start_then_end(self, options):
        events = queue.Queue()
        executor = TaskExecutor(FakeSync(), options, events)
        job = _job(make_directive("a"), options.mirror_dir)

        outcome = executor.run(job)

        sent = _drain(events)
        assert [e.kind for e in sent] == [EVENT_START, EVENT_END]
        assert sent[1].outcome is outcome
        assert outcome.status is SyncStatus.OK

    def test_passes_directive_to_sync(self, options):
        sync = FakeSync()
        executor = TaskExecutor(sync, options, queue.Queue())
        directive = make_directive("a", lfs_enabled=True, refspecs=("refs/heads/main",))
        job = _job(directive, options.mirror_dir)

        executor.run(job)

        assert sync.calls == [{
            "origin": directive.origin_url,
            "destination": directive.destination_url,
            "refspecs": ("refs/heads/main",),
            "lfs": True,
            "working_dir": job.working_dir,
        }]

    def test_failure_keeps_stage_and_reason(self, options):
        directive = make_directive("a")
        sync = FakeSync({directive.origin_url: SyncResult(SyncStatus.FAILED, "push", "denied")})
        executor = TaskExecutor(sync, options, queue.Queue())

        outcome = executor.run(_job(directive, options.mirror_dir))

        assert outcome.status is SyncStatus.FAILED
        assert outcome.stage == "push"
        assert outcome.message == "push failed: denied"

    def test_unexpected_exception_becomes_failure(self, options):
        """An exception inside the sync never escapes the executor."""
        directive = make_directive("a")

        def boom():
            raise RuntimeError("kaput")

        events = queue.Queue()
        executor = TaskExecutor(FakeSync({directive.origin_url: boom}), options, events)

        outcome = executor.run(_job(directive, options.mirror_dir))

        assert outcome.status is SyncStatus.FAILED
        assert outcome.reason == "RuntimeError: kaput"
        assert [e.kind for e in _drain(events)] == [EVENT_START, EVENT_END]

    def test_duration_from_clock(self, options):
        executor = TaskExecutor(FakeSync(), options, queue.Queue(), clock=FakeClock(10.0, 12.5))

        outcome = executor.run(_job(make_directive("a"), options.mirror_dir))

        assert outcome.duration == pytest.approx(2.5)

    def test_creates_mirror_dir(self, options):
        executor = TaskExecutor(FakeSync(), options, queue.Queue())

        executor.run(_job(make_directive("a"), options.mirror_dir))

        assert options.mirror_dir.is_dir()


class TestLogContext:
    """Log records of a job carry its index and origin."""

    def test_unexpected_exception_record_has_job_context(self, options, caplog):
        directive = make_directive("a")

        def boom():
            raise RuntimeError("kaput")

        executor = TaskExecutor(FakeSync({directive.origin_url: boom}), options, queue.Queue())

        executor.run(_job(directive, options.mirror_dir, index=4, total=5))

        (record,) = [r for r in caplog.records if r.levelname == "ERROR"]
        entry = json.loads(JSONFormatter().format(record))
        assert entry["job_index"] == 4
        assert entry["origin"] == directive.origin_url

    def test_finish_record_names_failed_stage(self, options, caplog):
        caplog.set_level(logging.DEBUG, logger="git_mirror.mirror.executor")
        directive = make_directive("a")
        sync = FakeSync({directive.origin_url: SyncResult(SyncStatus.FAILED, "push", "denied")})

        TaskExecutor(sync, options, queue.Queue()).run(_job(directive, options.mirror_dir, index=2, total=3))

        finished = [r for r in caplog.records if r.getMessage().startswith("[mirror] Finished")]
        assert len(finished) == 1
        assert finished[0].job_index == 2
        assert finished[0].stage == "push"
