"""State store — install records partitioned into workspace and global scopes.

The store only maps keys to values; the update engine decides what the keys
and values mean. Passing ``None`` as the value removes the key.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    def get(self, key: str, is_global: bool) -> str | None: ...

    def update(self, key: str, value: str | None, is_global: bool) -> None: ...


class MemoryStateStore:
    """Dict-backed store, for tests and for hosts that persist state themselves."""

    def __init__(self):
        self.workspace: dict[str, str] = {}
        self.global_: dict[str, str] = {}

    def get(self, key: str, is_global: bool) -> str | None:
        return self._scope(is_global).get(key)

    def update(self, key: str, value: str | None, is_global: bool) -> None:
        scope = self._scope(is_global)
        if value is None:
            scope.pop(key, None)
        else:
            scope[key] = value

    def _scope(self, is_global: bool) -> dict[str, str]:
        return self.global_ if is_global else self.workspace


class JsonStateStore:
    """File-based store: one JSON document per scope.

    Documents are read on first access and rewritten on every update.
    A missing or unreadable document is treated as empty.
    """

    def __init__(self, workspace_path: str | Path, global_path: str | Path):
        self._paths = {False: Path(workspace_path), True: Path(global_path)}
        self._cache: dict[bool, dict[str, str]] = {}

    def get(self, key: str, is_global: bool) -> str | None:
        return self._load(is_global).get(key)

    def update(self, key: str, value: str | None, is_global: bool) -> None:
        data = self._load(is_global)
        if value is None:
            if key not in data:
                return
            del data[key]
        else:
            data[key] = value
        self._save(is_global, data)

    def keys(self, is_global: bool) -> list[str]:
        return sorted(self._load(is_global))

    def _load(self, is_global: bool) -> dict[str, str]:
        if is_global not in self._cache:
            self._cache[is_global] = self._read(self._paths[is_global])
        return self._cache[is_global]

    def _read(self, path: Path) -> dict[str, str]:
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", path, e)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self, is_global: bool, data: dict[str, str]) -> None:
        path = self._paths[is_global]
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
