"""
Mirror Configuration — Options for one mirror run.

Built once by the CLI (or by tests) and threaded explicitly through the
manager, scheduler and executor. Instances are immutable.

Minimal required config:
    MirrorOptions(mirror_dir=Path("./mirror-dir"))

The API credential is not part of these options; it belongs to the
provider that uses it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from ..errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MirrorOptions:
    """Process-wide settings for a mirror run."""

    mirror_dir: Path = Path("./mirror-dir")
    worker_count: int = 1
    git_executable: str = "git"
    git_timeout: Optional[float] = None  # seconds per git step, None = no limit

    # Directive defaults, overridden per project by the description
    refspec: Tuple[str, ...] = field(default_factory=tuple)
    mirror_lfs: bool = False

    use_http: bool = False  # push over https instead of ssh
    force_push: bool = True
    dry_run: bool = False
    remove_workrepo: bool = False

    fail_on_sync_error: bool = False
    junit_file: Optional[Path] = None
    metrics_file: Optional[Path] = None

    def validate(self) -> "MirrorOptions":
        """Reject settings that can never produce a valid run."""
        if self.worker_count < 1:
            raise ConfigError(
                f"Worker count must be a positive integer, got {self.worker_count}"
            )
        if self.git_timeout is not None and self.git_timeout <= 0:
            raise ConfigError(
                f"Git timeout must be positive, got {self.git_timeout}"
            )
        if not self.git_executable:
            raise ConfigError("Git executable must not be empty")
        if any(not spec.strip() for spec in self.refspec):
            raise ConfigError("Refspecs must not be empty")
        return self

    @property
    def lock_file(self) -> Path:
        return Path(self.mirror_dir) / "git-mirror.lock"
