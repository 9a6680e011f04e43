"""Exception hierarchy for agentsync."""

from __future__ import annotations


class AgentSyncError(Exception):
    """Base class for all agentsync errors."""


class ConfigError(AgentSyncError):
    """The configuration file could not be parsed."""


class SourceResolutionError(AgentSyncError):
    """The mirror root or current revision of an artifact could not be determined."""


class HistoricalContentUnavailable(AgentSyncError):
    """Content of a path at a recorded revision cannot be read from the mirror."""

    def __init__(self, revision: str, relative_path: str, reason: str = ""):
        self.revision = revision
        self.relative_path = relative_path
        message = f"Content of {relative_path} at {revision[:12]} is unavailable"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class GitExecutionError(AgentSyncError):
    """A git execution path could not run at all (missing binary, broken environment)."""


class GitCommandError(AgentSyncError):
    """A git command ran but reported failure."""

    def __init__(self, command: list[str], status: int | None, stderr: str = ""):
        self.command = command
        self.status = status
        self.stderr = stderr.strip()
        message = f"git {' '.join(command)} failed"
        if status is not None:
            message += f" with exit code {status}"
        if self.stderr:
            message += f": {self.stderr}"
        super().__init__(message)


class MirrorSyncError(GitCommandError):
    """Cloning or fast-forwarding a mirror failed."""
