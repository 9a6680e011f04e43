"""Baseline resolution — which provenance an installed copy carries.

Installed copies are tracked one of two ways:

1. Revision tracking: an install record in the state store pointing at the
   upstream revision the copy was last synced to.
2. Legacy snapshots: a hidden ``.<name>.base`` file next to the copy holding
   its full content as of the last sync.

Both are looked up once per operation and folded into a single
:class:`Baseline` value. A snapshot is only ever migrated away, never written.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from agentsync.sync.state_store import StateStore
from agentsync.utils.files import read_text


class BaselineKind(Enum):
    UNTRACKED = "untracked"  # No record, no snapshot
    LEGACY = "legacy"  # Snapshot only, migration pending
    TRACKED = "tracked"  # Install record present


@dataclass(frozen=True)
class Baseline:
    kind: BaselineKind
    revision: str = ""
    snapshot_path: Path | None = None  # Set whenever a snapshot file exists

    @property
    def needs_migration(self) -> bool:
        return self.snapshot_path is not None

    def read_snapshot(self) -> str:
        return read_text(self.snapshot_path)


def legacy_snapshot_path(target_path: str | Path) -> Path:
    target = Path(target_path)
    return target.parent / f".{target.name}.base"


def resolve_baseline(store: StateStore, key: str, is_global: bool, target_path: str | Path) -> Baseline:
    revision = store.get(key, is_global) or ""
    snapshot = legacy_snapshot_path(target_path)
    snapshot_path = snapshot if snapshot.is_file() else None

    if revision:
        return Baseline(BaselineKind.TRACKED, revision=revision, snapshot_path=snapshot_path)
    if snapshot_path is not None:
        return Baseline(BaselineKind.LEGACY, snapshot_path=snapshot_path)
    return Baseline(BaselineKind.UNTRACKED)

