"""Version control: local mirrors of source repositories and three-way merges."""

from agentsync.vcs.adapter import GitAdapter, GitExecutor, mirror_name
from agentsync.vcs.git_cli import CliGitExecutor

__all__ = ["CliGitExecutor", "GitAdapter", "GitExecutor", "mirror_name"]
