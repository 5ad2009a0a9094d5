"""
Shared fixtures for mirror tests.

Provides an in-memory provider, a scriptable sync primitive, and a fake
git executable so the pipeline can run end to end without network access
or a real git installation.
"""

from __future__ import annotations

import os
import stat
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence

import pytest

from git_mirror.mirror.config import MirrorOptions
from git_mirror.mirror.directives import Directive
from git_mirror.mirror.git import GitSync, SyncResult
from git_mirror.mirror.job import SyncStatus
from git_mirror.provider.base import ProjectRecord, Provider


class StaticProvider(Provider):
    """Provider serving a fixed list of project records."""

    def __init__(self, records: Sequence[ProjectRecord], label: str = "https://gitlab.test/group"):
        self._records = list(records)
        self._label = label
        self.closed = False

    @property
    def label(self) -> str:
        return self._label

    def list_projects(self) -> Iterator[ProjectRecord]:
        yield from self._records

    def _headers(self) -> Dict[str, str]:
        return {}

    def close(self) -> None:
        self.closed = True


class FakeSync(GitSync):
    """
    Sync primitive answering from a table keyed by origin URL.

    Each entry is a SyncResult, or a callable returning one (used to
    simulate slow jobs). Unknown origins succeed. Tracks how many syncs
    run at the same time and which working directories are in use.
    """

    def __init__(self, behaviours: Optional[Dict[str, object]] = None, delay: float = 0.0):
        self.behaviours = behaviours or {}
        self.delay = delay
        self.calls: List[dict] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.active_dirs: set = set()
        self.dir_conflicts: List[Path] = []
        self.version_checks: List[bool] = []
        self._lock = threading.Lock()

    def check_versions(self, lfs: bool = False) -> None:
        self.version_checks.append(lfs)

    def execute(self, origin_url, destination_url, refspecs, lfs_enabled, working_dir) -> SyncResult:
        with self._lock:
            self.calls.append({
                "origin": origin_url,
                "destination": destination_url,
                "refspecs": tuple(refspecs),
                "lfs": lfs_enabled,
                "working_dir": working_dir,
            })
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            if working_dir in self.active_dirs:
                self.dir_conflicts.append(working_dir)
            self.active_dirs.add(working_dir)
        try:
            if self.delay:
                time.sleep(self.delay)
            behaviour = self.behaviours.get(origin_url, SyncResult(SyncStatus.OK))
            if callable(behaviour):
                return behaviour()
            return behaviour
        finally:
            with self._lock:
                self.in_flight -= 1
                self.active_dirs.discard(working_dir)


def make_record(name: str, description: str) -> ProjectRecord:
    return ProjectRecord(
        name=name,
        description=description,
        web_url=f"https://gitlab.test/group/{name}",
        ssh_url=f"git@gitlab.test:group/{name}.git",
        http_url=f"https://gitlab.test/group/{name}.git",
    )


def make_directive(name: str, origin: Optional[str] = None, **kwargs) -> Directive:
    return Directive(
        name=name,
        origin_url=origin or f"https://origin.test/{name}.git",
        destination_url=f"git@gitlab.test:group/{name}.git",
        identity=f"https://gitlab.test/group/{name}",
        **kwargs,
    )


@pytest.fixture
def options(tmp_path: Path) -> MirrorOptions:
    return MirrorOptions(mirror_dir=tmp_path / "mirror-dir")


@pytest.fixture
def fake_sync() -> FakeSync:
    return FakeSync()


@pytest.fixture
def lines() -> List[str]:
    """Collects reporter output instead of printing it."""
    return []


@pytest.fixture
def fake_git(tmp_path: Path, monkeypatch) -> Callable[[str], Path]:
    """
    Factory for executable scripts standing in for git.

    Every invocation appends its arguments to the file in $GIT_LOG.
    """
    log = tmp_path / "git.log"
    monkeypatch.setenv("GIT_LOG", str(log))

    def _make(body: str = "exit 0") -> Path:
        script = tmp_path / "fake-git"
        script.write_text(f'#!/bin/sh\necho "$@" >> "$GIT_LOG"\n{body}\n')
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    _make.log = log  # type: ignore[attr-defined]
    return _make


def git_log(path: Path) -> List[str]:
    if not path.exists():
        return []
    return [line for line in path.read_text().splitlines() if line]
