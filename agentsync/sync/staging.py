"""Merge session — the files staged around a single three-way merge.

A session owns a backup of the target (``<target>.bak``) and two temporary
files holding the base and the new content. All three are removed when the
session exits, whatever the exit path. If the session exits with an
exception the target is first restored from the backup.

Sessions are single-slot per target: two concurrent updates of the same
target would share the backup path, so callers serialize per target.
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
from pathlib import Path

from agentsync.utils.files import copy_file, remove_quietly

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".bak"


def backup_path_for(target_path: str | Path) -> Path:
    return Path(f"{target_path}{BACKUP_SUFFIX}")


class MergeSession:
    """Context manager staging a merge of ``new_content`` into ``target_path``."""

    def __init__(self, target_path: str | Path, base_content: str, new_content: str):
        self.target_path = Path(target_path)
        self.base_content = base_content
        self.new_content = new_content
        self.backup_path: Path | None = None
        self.base_file: Path | None = None
        self.new_file: Path | None = None

    def __enter__(self) -> MergeSession:
        backup = backup_path_for(self.target_path)
        copy_file(self.target_path, backup)
        self.backup_path = backup
        try:
            self.base_file = self._stage("base", self.base_content)
            self.new_file = self._stage("new", self.new_content)
        except BaseException:
            self._cleanup()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None and self.backup_path is not None:
            if not self._restore_after_error():
                # Keep the backup: it is the only intact copy of the user's file.
                self.backup_path = None
        self._cleanup()

    def discard_staging(self) -> None:
        """Remove the staged base and new files; the backup stays."""
        remove_quietly(self.base_file)
        remove_quietly(self.new_file)
        self.base_file = self.new_file = None

    def restore(self) -> None:
        """Put the pre-update content back into the target."""
        copy_file(self.backup_path, self.target_path)

    def _restore_after_error(self) -> bool:
        try:
            self.restore()
        except OSError as e:
            logger.error(
                "Could not restore %s after a failed merge (%s); original kept at %s",
                self.target_path,
                e,
                self.backup_path,
            )
            return False
        return True

    def _cleanup(self) -> None:
        self.discard_staging()
        remove_quietly(self.backup_path)
        self.backup_path = None

    def _stage(self, label: str, content: str) -> Path:
        prefix = f"{label}_{int(time.time() * 1000)}_"
        fd, name = tempfile.mkstemp(prefix=prefix, suffix=f"_{self.target_path.name}")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
        except BaseException:
            remove_quietly(name)
            raise
        return Path(name)
