"""File helpers shared by the update engine.

Content is compared byte for byte, so text is read with newline
translation turned off.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


def read_text(path: str | Path) -> str:
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def copy_file(source: str | Path, dest: str | Path) -> None:
    """Copy ``source`` to ``dest``, creating intermediate directories."""
    ensure_parent(dest)
    shutil.copyfile(source, dest)


def ensure_parent(path: str | Path) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)


def remove_quietly(path: str | Path | None) -> None:
    """Best-effort delete; a missing file or a failed unlink is not an error."""
    if path is None:
        return
    with contextlib.suppress(OSError):
        os.unlink(path)
        logger.debug("Removed %s", path)
