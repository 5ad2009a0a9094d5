"""
Git Sync — Mirror one origin repository into one destination.

Drives the git command line: a bare `--mirror` clone per directive is
created or refreshed from the origin, then pushed to the destination.
Every git invocation is bounded by the configured timeout; on expiry the
whole process group is killed so helpers like git-remote-https die too.

A killed clone may leave a half-written directory behind. It is detected
by the next run and cloned again, so a sync is always safe to repeat.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from ..errors import GitToolError
from .job import (
    STAGE_FETCH,
    STAGE_LFS_FETCH,
    STAGE_LFS_PUSH,
    STAGE_PUSH,
    SyncStatus,
)

logger = logging.getLogger(__name__)

# Seconds granted to a killed process group to release its pipes
_REAP_TIMEOUT = 5.0


class GitError(Exception):
    """A git command could not complete."""

    def __init__(self, cmd_str: str, message: str):
        self.cmd_str = cmd_str
        super().__init__(message)

    @property
    def diagnostic(self) -> str:
        return str(self)


class GitExecutionError(GitError):
    """The command could not be started (e.g. executable missing)."""

    def __init__(self, cmd_str: str, err: OSError):
        self.err = err
        super().__init__(cmd_str, f"Command {cmd_str} failed with system error: {err}")


class GitCommandError(GitError):
    """The command exited non-zero."""

    def __init__(self, cmd_str: str, code: int, stderr: str):
        self.code = code
        self.stderr = stderr
        super().__init__(
            cmd_str,
            f"Command {cmd_str} failed with exit code: {code}, Stderr: {stderr.strip()}",
        )

    @property
    def diagnostic(self) -> str:
        return self.stderr.strip() or str(self)


class GitCommandTimeout(GitError):
    """The command did not finish within the timeout and was killed."""

    def __init__(self, cmd_str: str, timeout: float):
        self.timeout = timeout
        super().__init__(cmd_str, f"Command {cmd_str} timed out after {timeout:g}s")


class GitCommandCancelled(GitError):
    """The run was cancelled while the command was in flight."""

    def __init__(self, cmd_str: str):
        super().__init__(cmd_str, f"Command {cmd_str} was cancelled")


class GitRunner:
    """
    Runs git commands with a per-command timeout.

    The optional cancel event is checked while waiting, so an interrupted
    run kills in-flight commands instead of waiting for them.
    """

    def __init__(
        self,
        executable: str = "git",
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
        poll_interval: float = 0.2,
    ):
        self.executable = executable
        self.timeout = timeout
        self.cancel = cancel
        self.poll_interval = poll_interval

    def run(self, *args: str, cwd: Optional[Path] = None) -> subprocess.CompletedProcess:
        """Run `git <args>`; raise a GitError unless it exits 0."""
        cmd = [self.executable, *args]
        cmd_str = " ".join(shlex.quote(a) for a in cmd)
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")

        logger.debug(f"[mirror-git] Running {cmd_str} (cwd={cwd or '.'})")
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=str(cwd) if cwd else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                env=env,
                start_new_session=True,
            )
        except OSError as e:
            raise GitExecutionError(cmd_str, e) from e

        stdout, stderr = self._wait(proc, cmd_str)

        if stdout:
            logger.debug(f"[mirror-git] Stdout: {stdout.strip()}")
        if stderr:
            logger.debug(f"[mirror-git] Stderr: {stderr.strip()}")

        if proc.returncode != 0:
            raise GitCommandError(cmd_str, proc.returncode, stderr or "")

        return subprocess.CompletedProcess(cmd, proc.returncode, stdout, stderr)

    def _wait(self, proc: subprocess.Popen, cmd_str: str):
        deadline = None if self.timeout is None else time.monotonic() + self.timeout

        while True:
            wait = self.poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self._kill(proc)
                    raise GitCommandTimeout(cmd_str, self.timeout)
                wait = min(wait, remaining)

            if self.cancel is not None and self.cancel.is_set():
                self._kill(proc)
                raise GitCommandCancelled(cmd_str)

            try:
                return proc.communicate(timeout=wait)
            except subprocess.TimeoutExpired:
                continue

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            proc.kill()
        try:
            proc.communicate(timeout=_REAP_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.warning(f"[mirror-git] Process {proc.pid} did not exit after kill")


@dataclass(frozen=True)
class SyncResult:
    """Status of one sync attempt, with the failing stage if any."""

    status: SyncStatus
    stage: Optional[str] = None
    reason: Optional[str] = None


class GitSync:
    """Origin → destination synchronization through a local bare mirror."""

    def __init__(
        self,
        runner: GitRunner,
        force_push: bool = True,
        dry_run: bool = False,
        remove_workrepo: bool = False,
    ):
        self.runner = runner
        self.force_push = force_push
        self.dry_run = dry_run
        self.remove_workrepo = remove_workrepo

    def check_versions(self, lfs: bool = False) -> None:
        """Make sure git (and git-lfs if needed) can be executed."""
        try:
            version = self.runner.run("--version").stdout.strip()
            logger.info(f"[mirror-git] Using {version}")
            if lfs:
                version = self.runner.run("lfs", "version").stdout.strip()
                logger.info(f"[mirror-git] Using {version}")
        except GitError as e:
            raise GitToolError(f"Git is not usable: {e}") from e

    def execute(
        self,
        origin_url: str,
        destination_url: str,
        refspecs: Sequence[str],
        lfs_enabled: bool,
        working_dir: Path,
    ) -> SyncResult:
        """
        Fetch origin into working_dir and push it to destination.

        Stages run strictly in order; the first failing stage ends the sync.
        """
        if self.dry_run:
            logger.info(f"[mirror-git] Dry run: {origin_url} -> {destination_url}")
            return SyncResult(SyncStatus.OK)

        stage = STAGE_FETCH
        try:
            self.fetch(origin_url, working_dir)
            if lfs_enabled:
                stage = STAGE_LFS_FETCH
                self.lfs_fetch(working_dir)

            stage = STAGE_PUSH
            self.push(destination_url, working_dir, refspecs, lfs_enabled)
            if lfs_enabled:
                stage = STAGE_LFS_PUSH
                self.lfs_push(destination_url, working_dir)
        except GitCommandTimeout as e:
            logger.error(
                f"[mirror-git] {stage} of {origin_url} timed out: {e}",
                extra={"origin": origin_url, "stage": stage},
            )
            return SyncResult(SyncStatus.TIMED_OUT, stage, str(e))
        except GitError as e:
            logger.error(
                f"[mirror-git] {stage} of {origin_url} failed: {e}",
                extra={"origin": origin_url, "stage": stage},
            )
            return SyncResult(SyncStatus.FAILED, stage, e.diagnostic)

        if self.remove_workrepo:
            self._remove(working_dir)

        return SyncResult(SyncStatus.OK)

    def fetch(self, origin_url: str, working_dir: Path) -> None:
        """Create or refresh the bare mirror clone (all refs, pruned)."""
        if working_dir.exists() and not working_dir.is_dir():
            raise GitError("", f"Local origin dir is a file: {working_dir}")

        if working_dir.is_dir() and not self._is_bare_repo(working_dir):
            logger.warning(
                f"[mirror-git] {working_dir} is not a complete mirror, cloning again"
            )
            self._remove(working_dir)

        if working_dir.is_dir():
            logger.info(f"[mirror-git] Local update for {origin_url}")
            self.runner.run("remote", "set-url", "origin", origin_url, cwd=working_dir)
            self.runner.run("remote", "update", "--prune", cwd=working_dir)
        else:
            logger.info(f"[mirror-git] Local checkout for {origin_url}")
            working_dir.parent.mkdir(parents=True, exist_ok=True)
            self.runner.run(
                "clone", "--mirror", origin_url, str(working_dir),
                cwd=working_dir.parent,
            )

    def lfs_fetch(self, working_dir: Path) -> None:
        """Fetch the large-file objects of every ref, matching what lfs_push uploads."""
        self.runner.run("lfs", "fetch", "--all", "origin", cwd=working_dir)

    def push(
        self,
        destination_url: str,
        working_dir: Path,
        refspecs: Sequence[str],
        lfs_enabled: bool = False,
    ) -> None:
        """Push the mirror (or only the given refspecs) to destination."""
        args: List[str] = []
        if lfs_enabled:
            # Route LFS objects to the destination even if .lfsconfig points elsewhere
            args += ["-c", f"lfs.url={destination_url}"]
        args.append("push")
        if self.force_push:
            args.append("-f")
        if refspecs:
            args += [destination_url, *refspecs]
        else:
            args += ["--mirror", destination_url]

        logger.info(f"[mirror-git] Push to destination {destination_url}")
        self.runner.run(*args, cwd=working_dir)

    def lfs_push(self, destination_url: str, working_dir: Path) -> None:
        """Upload all fetched LFS objects to the destination's LFS endpoint."""
        self.runner.run(
            "-c", f"lfs.url={destination_url}",
            "lfs", "push", "--all", destination_url,
            cwd=working_dir,
        )

    @staticmethod
    def _is_bare_repo(path: Path) -> bool:
        return (path / "HEAD").is_file() and (path / "config").is_file()

    @staticmethod
    def _remove(path: Path) -> None:
        logger.debug(f"[mirror-git] Removing {path}")
        shutil.rmtree(path, ignore_errors=True)
