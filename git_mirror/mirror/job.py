"""
Mirror Jobs — Units of work and their outcomes.

A MirrorJob binds a Directive to its position in the run and to the local
directory holding its bare mirror clone. A SyncOutcome is the single,
final result of attempting that job.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .directives import Directive

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")
_SLUG_MAX_LEN = 80
_REASON_MAX_LEN = 500


class SyncStatus(str, Enum):
    """Terminal status of one job."""

    OK = "ok"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


# Stages of a sync, in execution order
STAGE_FETCH = "fetch"
STAGE_LFS_FETCH = "lfs-fetch"
STAGE_PUSH = "push"
STAGE_LFS_PUSH = "lfs-push"


def slugify(value: str) -> str:
    """Lowercase value and collapse every non-alphanumeric run into a dash."""
    slug = _SLUG_INVALID.sub("-", value.lower()).strip("-")
    return slug[:_SLUG_MAX_LEN].rstrip("-") or "repo"


def working_dir_for(mirror_dir: Path, identity: str) -> Path:
    """
    Directory of the bare mirror clone for a directive identity.

    The readable slug keeps directories recognizable; the hash suffix keeps
    identities that slugify alike (e.g. "a/b" and "a-b") apart.
    """
    digest = hashlib.sha256(identity.encode("utf-8")).hexdigest()[:12]
    return Path(mirror_dir) / f"{slugify(identity)}-{digest}"


@dataclass(frozen=True)
class MirrorJob:
    """A directive scheduled at a fixed position of the run."""

    index: int
    total: int
    directive: Directive
    working_dir: Path

    @property
    def name(self) -> str:
        return self.directive.name

    @property
    def position(self) -> str:
        return f"{self.index}/{self.total}"


@dataclass(frozen=True)
class SyncOutcome:
    """Result of attempting one MirrorJob."""

    job: MirrorJob
    status: SyncStatus
    duration: float
    stage: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is SyncStatus.OK

    @property
    def message(self) -> str:
        """One line summary of a failure (empty for successes)."""
        if self.ok:
            return ""
        if self.status is SyncStatus.TIMED_OUT:
            text = f"{self.stage or 'sync'} timed out"
        else:
            text = f"{self.stage or 'sync'} failed"
        # Progress lines are line oriented: fold multi-line stderr
        detail = " ".join((self.reason or "").split())
        if len(detail) > _REASON_MAX_LEN:
            detail = detail[: _REASON_MAX_LEN - 3] + "..."
        if detail:
            text = f"{text}: {detail}"
        return text
