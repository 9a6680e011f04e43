"""Sync — installing artifacts and keeping installed copies current.

This package provides the primitives for:
- Install records: which upstream revision each installed copy came from
- Baselines: revision tracking and migration away from legacy snapshots
- Merge sessions: backup and staging around a three-way merge
- Conflict resolution: override, cancel, or fix by hand
"""

from agentsync.sync.engine import UpdateEngine, sanitize_base_directory, target_path_for
from agentsync.sync.resolver import ConflictResolver, ConsoleConflictResolver, StaticConflictResolver
from agentsync.sync.state_store import JsonStateStore, MemoryStateStore, StateStore

__all__ = [
    "ConflictResolver",
    "ConsoleConflictResolver",
    "JsonStateStore",
    "MemoryStateStore",
    "StateStore",
    "StaticConflictResolver",
    "UpdateEngine",
    "sanitize_base_directory",
    "target_path_for",
]
