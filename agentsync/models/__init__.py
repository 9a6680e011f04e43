"""Data models for installed artifacts and update results."""

from agentsync.models.artifact import (
    Artifact,
    InstallRecord,
    InstallState,
    MergeOutcome,
    Resolution,
    StatusReport,
    UpdateResult,
    UpdateStatus,
)

__all__ = [
    "Artifact",
    "InstallRecord",
    "InstallState",
    "MergeOutcome",
    "Resolution",
    "StatusReport",
    "UpdateResult",
    "UpdateStatus",
]
