"""Core data models for installed artifacts.

Covers: the artifact descriptor handed over by discovery, the install record
persisted per target path, and the results reported by install, update and
status checks.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class Resolution(Enum):
    """Decision returned by a conflict resolver."""

    OVERRIDE = "override"  # Discard local edits, take upstream
    CANCEL = "cancel"  # Restore the pre-update file
    MANUAL = "manual"  # Keep the conflict markers for hand editing


class UpdateStatus(Enum):
    """Outcome of an update as reported to the user."""

    UPDATED = "updated"
    CANCELLED = "cancelled"
    FAILED = "failed"  # Only produced by batch updates


class MergeOutcome(Enum):
    """How the content now on disk was produced."""

    OVERWRITTEN = "overwritten"  # Fresh install or unmodified local copy
    MERGED = "merged"  # Clean three-way merge
    CONFLICT_OVERRIDDEN = "conflict_overridden"
    CONFLICT_KEPT = "conflict_kept"  # File still holds conflict markers
    CANCELLED = "cancelled"


class InstallState(Enum):
    """Relationship between an installed copy and its upstream."""

    NOT_INSTALLED = "not_installed"
    UNTRACKED = "untracked"  # File exists but no record or snapshot
    UP_TO_DATE = "up_to_date"
    UPDATE_AVAILABLE = "update_available"
    LOCALLY_MODIFIED = "locally_modified"


# --- Artifact ---


@dataclass
class Artifact:
    """A text resource distributed from a source repository."""

    repository: str  # Source repository URL
    path: str  # Path relative to the repository root
    name: str = ""
    install_url: str = ""  # Absolute path of the upstream copy inside the mirror
    base_directory: str = ""  # Set for artifacts installed as a folder
    kind: str = "agent"  # agent | skill
    description: str = ""
    version: str = ""

    @property
    def filename(self) -> str:
        return posixpath.basename(self.path.replace("\\", "/"))

    @property
    def display_name(self) -> str:
        return self.name or self.filename

    @classmethod
    def from_mirror(
        cls,
        repository: str,
        mirror_root: str | Path,
        path: str,
        **kwargs,
    ) -> Artifact:
        """Build an artifact whose upstream copy lives in a local mirror."""
        relative = path.replace("\\", "/").lstrip("/")
        install_url = Path(mirror_root).joinpath(*relative.split("/"))
        return cls(repository=repository, path=relative, install_url=str(install_url), **kwargs)


# --- Install record ---


@dataclass
class InstallRecord:
    """Provenance of an installed copy: the upstream revision it was last synced to."""

    base_revision: str


# --- Results ---


@dataclass
class UpdateResult:
    """Result of updating one artifact at one target path."""

    status: UpdateStatus
    target_path: str
    revision: str | None = None  # Revision recorded; None when nothing was recorded
    outcome: MergeOutcome | None = None
    migrated_legacy: bool = False
    error: str = ""

    @property
    def has_conflict_markers(self) -> bool:
        return self.outcome == MergeOutcome.CONFLICT_KEPT

    def summary(self) -> str:
        if self.status == UpdateStatus.FAILED:
            return f"{self.target_path}: failed ({self.error})"
        if self.status == UpdateStatus.CANCELLED:
            return f"{self.target_path}: update cancelled"
        detail = self.outcome.value if self.outcome else "updated"
        return f"{self.target_path}: updated to {(self.revision or '')[:12]} [{detail}]"


@dataclass
class StatusReport:
    """Read-only comparison of an installed copy with its upstream."""

    target_path: str
    state: InstallState
    recorded_revision: str = ""
    head_revision: str = ""
    needs_migration: bool = False
    details: list[str] = field(default_factory=list)

    @property
    def needs_update(self) -> bool:
        return self.state in (InstallState.UPDATE_AVAILABLE, InstallState.LOCALLY_MODIFIED)

    def summary(self) -> str:
        line = f"{self.target_path}: {self.state.value}"
        if self.recorded_revision and self.head_revision:
            line += f" ({self.recorded_revision[:12]} -> {self.head_revision[:12]})"
        if self.needs_migration:
            line += " [legacy snapshot]"
        return line
