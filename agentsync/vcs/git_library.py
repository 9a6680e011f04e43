"""Git operations through GitPython, used when the git command path is unusable."""

from __future__ import annotations

from pathlib import Path

from git import Git, Repo
from git.exc import BadName, BadObject, GitCommandNotFound, GitError
from git.exc import GitCommandError as LibGitCommandError

from agentsync.errors import (
    GitCommandError,
    GitExecutionError,
    HistoricalContentUnavailable,
    MirrorSyncError,
)
from agentsync.vcs.git_cli import MAX_CONFLICT_STATUS


class LibraryGitExecutor:
    """Same contract as :class:`~agentsync.vcs.git_cli.CliGitExecutor`, backed by GitPython."""

    def clone(self, repo_url: str, dest_path: Path) -> None:
        try:
            Repo.clone_from(repo_url, dest_path, depth=1, single_branch=True)
        except GitCommandNotFound as e:
            raise _not_runnable(e) from e
        except GitError as e:
            raise MirrorSyncError(["clone", repo_url], _status(e), str(e)) from e

    def fetch_and_reset(self, dest_path: Path) -> None:
        try:
            repo = Repo(dest_path)
            repo.remotes.origin.fetch(depth=1)
            repo.git.reset("--hard", "origin/HEAD")
        except GitCommandNotFound as e:
            raise _not_runnable(e) from e
        except (GitError, AttributeError) as e:
            raise MirrorSyncError(["fetch", str(dest_path)], _status(e), str(e)) from e

    def head_revision(self, repo_root: Path) -> str:
        try:
            return Repo(repo_root).head.commit.hexsha
        except GitCommandNotFound as e:
            raise _not_runnable(e) from e
        except (GitError, ValueError) as e:
            raise GitCommandError(["rev-parse", "HEAD"], _status(e), str(e)) from e

    def show(self, repo_root: Path, revision: str, relative_path: str) -> str:
        # Read the blob directly so the content is byte-exact.
        try:
            blob = Repo(repo_root).commit(revision).tree / relative_path
            data = blob.data_stream.read()
        except GitCommandNotFound as e:
            raise _not_runnable(e) from e
        except (GitError, BadName, BadObject, ValueError, KeyError) as e:
            raise HistoricalContentUnavailable(revision, relative_path, str(e)) from e
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise HistoricalContentUnavailable(revision, relative_path, str(e)) from e

    def toplevel(self, directory: Path) -> str:
        try:
            repo = Repo(directory, search_parent_directories=True)
        except GitCommandNotFound as e:
            raise _not_runnable(e) from e
        except GitError as e:
            raise GitCommandError(["rev-parse", "--show-toplevel"], _status(e), str(e)) from e
        if repo.working_tree_dir is None:
            raise GitCommandError(["rev-parse", "--show-toplevel"], None, f"{directory} is a bare repository")
        return str(repo.working_tree_dir)

    def merge_file(self, current_file: Path, base_file: Path, new_file: Path) -> bool:
        # merge-file needs no repository, so any working directory will do.
        git = Git(str(Path(current_file).parent))
        try:
            git.merge_file(str(current_file), str(base_file), str(new_file))
        except GitCommandNotFound as e:
            raise _not_runnable(e) from e
        except LibGitCommandError as e:
            status = _status(e)
            if status is not None and 0 < status <= MAX_CONFLICT_STATUS:
                return False
            raise GitCommandError(["merge-file", str(current_file)], status, str(e.stderr)) from e
        return True


def _not_runnable(error: GitCommandNotFound) -> GitExecutionError:
    return GitExecutionError(f"GitPython could not run git: {error}")


def _status(error: Exception) -> int | None:
    status = getattr(error, "status", None)
    return status if isinstance(status, int) else None
