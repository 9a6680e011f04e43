"""Version-control adapter: mirrors, historical content and three-way merges.

Every call goes through an executor. The adapter starts on the primary
executor (the ``git`` command) and moves to the fallback executor (GitPython)
the first time the primary cannot run at all. The move is one-way: once the
fallback is engaged the primary is never tried again by this adapter.
Conflicts and ordinary command failures do not trigger the move.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
from pathlib import Path
from typing import Protocol

from agentsync.errors import GitExecutionError
from agentsync.vcs.git_cli import CliGitExecutor

logger = logging.getLogger(__name__)

_OWNER_REPO = re.compile(r"([^/]+)/([^/]+?)/?$")
_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class GitExecutor(Protocol):
    def clone(self, repo_url: str, dest_path: Path) -> None: ...

    def fetch_and_reset(self, dest_path: Path) -> None: ...

    def head_revision(self, repo_root: Path) -> str: ...

    def show(self, repo_root: Path, revision: str, relative_path: str) -> str: ...

    def toplevel(self, directory: Path) -> str: ...

    def merge_file(self, current_file: Path, base_file: Path, new_file: Path) -> bool: ...


def mirror_name(repo_url: str) -> str:
    """Map a repository URL to a stable cache directory name.

    ``https://github.com/acme/agents.git`` becomes ``acme_agents_<hash6>``; the
    hash keeps repositories that share an owner/repo pair on different hosts
    apart.
    """
    digest = hashlib.md5(repo_url.encode("utf-8")).hexdigest()
    match = _OWNER_REPO.search(repo_url)
    if match:
        owner = re.split(r"[:@]", match.group(1))[-1]
        repo = match.group(2)
        if repo.endswith(".git"):
            repo = repo[: -len(".git")]
        owner = _UNSAFE.sub("_", owner)
        repo = _UNSAFE.sub("_", repo)
        if owner and repo:
            return f"{owner}_{repo}_{digest[:6]}"
    return f"repo_{digest[:8]}"


def _default_fallback() -> GitExecutor:
    # GitPython locates a git executable at import time and refuses to load without one.
    try:
        from agentsync.vcs.git_library import LibraryGitExecutor
    except ImportError as e:
        raise GitExecutionError(f"GitPython fallback unavailable: {e}") from e

    return LibraryGitExecutor()


class GitAdapter:
    """Git-backed implementation of the version-control contract."""

    def __init__(
        self,
        primary: GitExecutor | None = None,
        fallback: GitExecutor | None = None,
    ):
        self._primary = primary or CliGitExecutor()
        self._fallback = fallback
        self._active = self._primary
        self._fallback_engaged = False

    @property
    def using_fallback(self) -> bool:
        return self._fallback_engaged

    # -- public contract -----------------------------------------------------

    def mirror_name(self, repo_url: str) -> str:
        return mirror_name(repo_url)

    def sync_mirror(self, repo_url: str, dest_path: str | Path) -> None:
        """Clone ``repo_url`` into ``dest_path`` or fast-forward the existing mirror."""
        dest = Path(dest_path)
        if (dest / ".git").exists():
            logger.info("Updating mirror %s", dest)
            self._call("fetch_and_reset", dest)
        else:
            logger.info("Cloning %s into %s", repo_url, dest)
            dest.mkdir(parents=True, exist_ok=True)
            self._call("clone", repo_url, dest)

    def head_revision(self, mirror_root: str | Path) -> str:
        return self._call("head_revision", Path(mirror_root))

    def content_at_revision(self, mirror_root: str | Path, revision: str, relative_path: str) -> str:
        """Return the content of ``relative_path`` as of ``revision``.

        Raises:
            HistoricalContentUnavailable: the revision or path is not in the mirror.
        """
        git_path = relative_path.replace("\\", "/")
        return self._call("show", Path(mirror_root), revision, git_path)

    def repo_root_of(self, path: str | Path) -> str:
        """Root of the mirror containing ``path``."""
        return self._call("toplevel", Path(os.path.dirname(os.path.abspath(path))))

    def three_way_merge(self, current_file: str | Path, base_file: str | Path, new_file: str | Path) -> bool:
        """Merge ``new_file`` into ``current_file`` in place, using ``base_file`` as ancestor.

        Returns True for a clean merge and False when conflict markers were
        written into ``current_file``.
        """
        return self._call("merge_file", Path(current_file), Path(base_file), Path(new_file))

    # -- execution -----------------------------------------------------------

    def _call(self, operation: str, *args):
        try:
            return getattr(self._active, operation)(*args)
        except GitExecutionError as e:
            if self._fallback_engaged:
                raise
            self._engage_fallback(operation, e)
        return getattr(self._active, operation)(*args)

    def _engage_fallback(self, operation: str, error: Exception) -> None:
        if self._fallback is None:
            self._fallback = _default_fallback()
        logger.warning("git %s could not run (%s); switching to GitPython", operation, error)
        self._active = self._fallback
        self._fallback_engaged = True
