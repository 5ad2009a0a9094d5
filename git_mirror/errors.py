"""
Errors — Exception taxonomy and process exit codes.

Fatal errors abort the run before any job is scheduled and carry the exit
code the CLI terminates with. Directive and task level problems are
recovered locally and never surface as these exceptions, except as a
SyncError when --fail-on-sync-error was requested.
"""

from __future__ import annotations


class GitMirrorError(Exception):
    """Base class for errors that end a run."""

    exit_code = 2


class ConfigError(GitMirrorError):
    """Invalid configuration, or the mirror directory is already in use."""

    exit_code = 2


class GitToolError(GitMirrorError):
    """The git executable (or git-lfs) is missing or unusable."""

    exit_code = 3


class DiscoveryError(GitMirrorError):
    """The provider could not be queried for mirror directives."""

    exit_code = 4


class SyncError(GitMirrorError):
    """One or more sync tasks failed and fail-fast was requested."""

    exit_code = 1

    def __init__(self, count: int):
        self.count = count
        super().__init__(f"{count} sync tasks failed")


class DirectiveError(Exception):
    """A single project description could not be decoded."""

    def __init__(self, message: str, source: str = ""):
        self.message = message
        self.source = source
        super().__init__(f"{source}: {message}" if source else message)
