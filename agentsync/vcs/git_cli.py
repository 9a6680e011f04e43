"""Git operations through the ``git`` executable."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from agentsync.errors import (
    GitCommandError,
    GitExecutionError,
    HistoricalContentUnavailable,
    MirrorSyncError,
)

logger = logging.getLogger(__name__)

# git merge-file exits with the number of conflicts, capped at 127.
MAX_CONFLICT_STATUS = 127


class CliGitExecutor:
    """Runs git as an external command.

    Raises :class:`GitExecutionError` only when the command cannot be started;
    a command that runs and fails raises :class:`GitCommandError`.
    """

    def __init__(self, git_binary: str = "git"):
        self.git_binary = git_binary

    def clone(self, repo_url: str, dest_path: Path) -> None:
        result = self._run(["clone", "--depth", "1", "--single-branch", repo_url, str(dest_path)])
        if result.returncode != 0:
            raise MirrorSyncError(["clone", repo_url], result.returncode, _text(result.stderr))

    def fetch_and_reset(self, dest_path: Path) -> None:
        for args in (["fetch", "--depth", "1"], ["reset", "--hard", "origin/HEAD"]):
            result = self._run(args, cwd=dest_path)
            if result.returncode != 0:
                raise MirrorSyncError(args, result.returncode, _text(result.stderr))

    def head_revision(self, repo_root: Path) -> str:
        args = ["rev-parse", "HEAD"]
        result = self._run(args, cwd=repo_root)
        if result.returncode != 0:
            raise GitCommandError(args, result.returncode, _text(result.stderr))
        return _text(result.stdout).strip()

    def show(self, repo_root: Path, revision: str, relative_path: str) -> str:
        result = self._run(["show", f"{revision}:{relative_path}"], cwd=repo_root)
        if result.returncode != 0:
            raise HistoricalContentUnavailable(revision, relative_path, _text(result.stderr).strip())
        try:
            return result.stdout.decode("utf-8")
        except UnicodeDecodeError as e:
            raise HistoricalContentUnavailable(revision, relative_path, str(e)) from e

    def toplevel(self, directory: Path) -> str:
        args = ["rev-parse", "--show-toplevel"]
        result = self._run(args, cwd=directory)
        if result.returncode != 0:
            raise GitCommandError(args, result.returncode, _text(result.stderr))
        return _text(result.stdout).strip()

    def merge_file(self, current_file: Path, base_file: Path, new_file: Path) -> bool:
        result = self._run(["merge-file", str(current_file), str(base_file), str(new_file)])
        if result.returncode == 0:
            return True
        if 0 < result.returncode <= MAX_CONFLICT_STATUS:
            logger.debug("merge-file reported %d conflict(s) in %s", result.returncode, current_file)
            return False
        raise GitExecutionError(
            f"git merge-file exited with {result.returncode}: {_text(result.stderr).strip()}"
        )

    def _run(self, args: list[str], cwd: Path | None = None) -> subprocess.CompletedProcess:
        logger.debug("git %s (cwd=%s)", " ".join(args), cwd)
        if cwd is not None and not Path(cwd).is_dir():
            raise GitCommandError(args, None, f"{cwd} is not a directory")
        try:
            return subprocess.run(
                [self.git_binary, *args],
                cwd=str(cwd) if cwd else None,
                capture_output=True,
            )
        except OSError as e:
            raise GitExecutionError(f"Could not run {self.git_binary}: {e}") from e


def _text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")
