"""
Mirror Lock — One run per mirror directory.

Two runs sharing a mirror directory would fight over the same working
directories, so the second one is refused.
"""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from typing import Optional, TextIO

from ..errors import ConfigError

logger = logging.getLogger(__name__)


class MirrorLock:
    """Exclusive, non-blocking lock on `<mirror_dir>/git-mirror.lock`."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._file: Optional[TextIO] = None

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            f = open(self.path, "a+", encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Unable to open lockfile: {self.path} ({e})") from e

        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            f.close()
            raise ConfigError(
                "Another instance is already running against the same mirror "
                f"directory: {self.path.parent} ({e})"
            ) from e

        f.seek(0)
        f.truncate()
        f.write(f"{os.getpid()}\n")
        f.flush()
        self._file = f
        logger.debug(f"[mirror] Acquired lockfile {self.path}")

    def release(self) -> None:
        if self._file is None:
            return
        fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
        self._file.close()
        self._file = None

    def __enter__(self) -> "MirrorLock":
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()
