"""Tests for the version-control adapter and its executors."""

import os
import subprocess
import sys
import tempfile
from pathlib import Path

import pytest
from git import Actor, Repo

import agentsync
from agentsync.errors import GitCommandError, GitExecutionError, HistoricalContentUnavailable, MirrorSyncError
from agentsync.vcs.adapter import GitAdapter, mirror_name
from agentsync.vcs.git_cli import CliGitExecutor
from agentsync.vcs.git_library import LibraryGitExecutor

AUTHOR = Actor("Test Author", "author@example.com")


def _init_upstream(root: Path, files: dict[str, str]) -> Repo:
    repo = Repo.init(root)
    _commit(repo, files, "initial")
    return repo


def _commit(repo: Repo, files: dict[str, str], message: str) -> str:
    for rel, content in files.items():
        path = Path(repo.working_tree_dir) / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(content)
    repo.index.add(list(files))
    return repo.index.commit(message, author=AUTHOR, committer=AUTHOR).hexsha


# --- mirror_name ---


def test_mirror_name_is_deterministic():
    url = "https://github.com/acme/agents.git"
    assert mirror_name(url) == mirror_name(url)


def test_mirror_name_uses_owner_and_repo():
    name = mirror_name("https://github.com/acme/agents.git")
    assert name.startswith("acme_agents_")
    assert len(name.split("_")[-1]) == 6


def test_mirror_name_handles_ssh_urls():
    assert mirror_name("git@github.com:acme/agents.git").startswith("acme_agents_")


def test_mirror_name_distinguishes_hosts():
    a = mirror_name("https://github.com/acme/agents")
    b = mirror_name("https://gitlab.com/acme/agents")
    assert a != b
    assert a.startswith("acme_agents_") and b.startswith("acme_agents_")


def test_mirror_name_without_owner_falls_back_to_hash():
    name = mirror_name("agents")
    assert name.startswith("repo_")
    assert len(name) == len("repo_") + 8


def test_mirror_name_distinct_urls_distinct_names():
    urls = [f"https://github.com/acme/repo{i}" for i in range(50)]
    assert len({mirror_name(u) for u in urls}) == 50


# --- Mirrors and history (command-line executor) ---


def test_sync_mirror_clones_then_fast_forwards():
    with tempfile.TemporaryDirectory() as tmpdir:
        upstream = _init_upstream(Path(tmpdir) / "upstream", {"agents/a.agent.md": "one\n"})
        mirror = Path(tmpdir) / "mirrors" / "acme"
        adapter = GitAdapter()

        adapter.sync_mirror(upstream.working_tree_dir, mirror)
        first = adapter.head_revision(mirror)
        assert (mirror / "agents" / "a.agent.md").read_text() == "one\n"
        assert first == upstream.head.commit.hexsha

        second_sha = _commit(upstream, {"agents/a.agent.md": "two\n"}, "second")
        adapter.sync_mirror(upstream.working_tree_dir, mirror)

        assert adapter.head_revision(mirror) == second_sha
        assert (mirror / "agents" / "a.agent.md").read_text() == "two\n"
        assert not adapter.using_fallback


def test_sync_mirror_is_idempotent():
    with tempfile.TemporaryDirectory() as tmpdir:
        upstream = _init_upstream(Path(tmpdir) / "upstream", {"a.md": "x\n"})
        mirror = Path(tmpdir) / "mirror"
        adapter = GitAdapter()

        adapter.sync_mirror(upstream.working_tree_dir, mirror)
        adapter.sync_mirror(upstream.working_tree_dir, mirror)
        adapter.sync_mirror(upstream.working_tree_dir, mirror)

        assert adapter.head_revision(mirror) == upstream.head.commit.hexsha


def test_sync_mirror_bad_url_raises():
    with tempfile.TemporaryDirectory() as tmpdir:
        adapter = GitAdapter()
        with pytest.raises(MirrorSyncError):
            adapter.sync_mirror(str(Path(tmpdir) / "does-not-exist"), Path(tmpdir) / "mirror")
        assert not adapter.using_fallback


def test_content_at_revision_returns_historical_content():
    with tempfile.TemporaryDirectory() as tmpdir:
        upstream = _init_upstream(Path(tmpdir) / "upstream", {"skills/s/SKILL.md": "first\r\nline\n"})
        first_sha = upstream.head.commit.hexsha
        _commit(upstream, {"skills/s/SKILL.md": "second\n"}, "second")
        adapter = GitAdapter()

        content = adapter.content_at_revision(upstream.working_tree_dir, first_sha, "skills/s/SKILL.md")

        assert content == "first\r\nline\n"


def test_content_at_revision_accepts_backslash_paths():
    with tempfile.TemporaryDirectory() as tmpdir:
        upstream = _init_upstream(Path(tmpdir) / "upstream", {"skills/s/SKILL.md": "body\n"})
        sha = upstream.head.commit.hexsha

        content = GitAdapter().content_at_revision(upstream.working_tree_dir, sha, "skills\\s\\SKILL.md")

        assert content == "body\n"


def test_content_at_revision_unknown_revision():
    with tempfile.TemporaryDirectory() as tmpdir:
        upstream = _init_upstream(Path(tmpdir) / "upstream", {"a.md": "x\n"})
        with pytest.raises(HistoricalContentUnavailable):
            GitAdapter().content_at_revision(upstream.working_tree_dir, "0" * 40, "a.md")


def test_content_at_revision_unknown_path():
    with tempfile.TemporaryDirectory() as tmpdir:
        upstream = _init_upstream(Path(tmpdir) / "upstream", {"a.md": "x\n"})
        with pytest.raises(HistoricalContentUnavailable):
            GitAdapter().content_at_revision(upstream.working_tree_dir, upstream.head.commit.hexsha, "missing.md")


def test_repo_root_of_nested_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        upstream = _init_upstream(Path(tmpdir) / "upstream", {"deep/er/a.md": "x\n"})
        root = GitAdapter().repo_root_of(Path(upstream.working_tree_dir) / "deep" / "er" / "a.md")
        assert os.path.realpath(root) == os.path.realpath(upstream.working_tree_dir)


def test_repo_root_of_outside_repository():
    with tempfile.TemporaryDirectory() as tmpdir:
        loose = Path(tmpdir) / "loose.md"
        loose.write_text("x")
        with pytest.raises(GitCommandError):
            GitAdapter().repo_root_of(loose)


# --- Three-way merge ---

BASE = "a\nb\nc\nd\ne\n"


def _merge_files(tmpdir: str, current: str, base: str, new: str) -> tuple[Path, Path, Path]:
    paths = []
    for name, content in (("current.md", current), ("base.md", base), ("new.md", new)):
        path = Path(tmpdir) / name
        path.write_text(content)
        paths.append(path)
    return paths[0], paths[1], paths[2]


def test_three_way_merge_clean():
    with tempfile.TemporaryDirectory() as tmpdir:
        current, base, new = _merge_files(tmpdir, "A\nb\nc\nd\ne\n", BASE, "a\nb\nc\nd\nE\n")

        assert GitAdapter().three_way_merge(current, base, new) is True
        assert current.read_text() == "A\nb\nc\nd\nE\n"


def test_three_way_merge_conflict_writes_markers():
    with tempfile.TemporaryDirectory() as tmpdir:
        current, base, new = _merge_files(tmpdir, "a\nb\nmine\nd\ne\n", BASE, "a\nb\ntheirs\nd\ne\n")
        adapter = GitAdapter()

        assert adapter.three_way_merge(current, base, new) is False
        merged = current.read_text()
        assert "<<<<<<<" in merged and "=======" in merged and ">>>>>>>" in merged
        assert "mine" in merged and "theirs" in merged
        assert not adapter.using_fallback


# --- GitPython executor ---


def test_library_executor_history_and_root():
    with tempfile.TemporaryDirectory() as tmpdir:
        upstream = _init_upstream(Path(tmpdir) / "upstream", {"dir/a.md": "old\n"})
        old_sha = upstream.head.commit.hexsha
        new_sha = _commit(upstream, {"dir/a.md": "new\n"}, "update")
        executor = LibraryGitExecutor()
        root = Path(upstream.working_tree_dir)

        assert executor.head_revision(root) == new_sha
        assert executor.show(root, old_sha, "dir/a.md") == "old\n"
        assert os.path.realpath(executor.toplevel(root / "dir")) == os.path.realpath(root)
        with pytest.raises(HistoricalContentUnavailable):
            executor.show(root, old_sha, "dir/missing.md")


def test_library_executor_clone_and_fetch():
    with tempfile.TemporaryDirectory() as tmpdir:
        upstream = _init_upstream(Path(tmpdir) / "upstream", {"a.md": "one\n"})
        mirror = Path(tmpdir) / "mirror"
        executor = LibraryGitExecutor()

        executor.clone(upstream.working_tree_dir, mirror)
        assert (mirror / "a.md").read_text() == "one\n"

        new_sha = _commit(upstream, {"a.md": "two\n"}, "two")
        executor.fetch_and_reset(mirror)
        assert executor.head_revision(mirror) == new_sha
        assert (mirror / "a.md").read_text() == "two\n"


def test_library_executor_merge():
    with tempfile.TemporaryDirectory() as tmpdir:
        executor = LibraryGitExecutor()
        current, base, new = _merge_files(tmpdir, "A\nb\nc\nd\ne\n", BASE, "a\nb\nc\nd\nE\n")
        assert executor.merge_file(current, base, new) is True
        assert current.read_text() == "A\nb\nc\nd\nE\n"

        current, base, new = _merge_files(tmpdir, "a\nb\nmine\nd\ne\n", BASE, "a\nb\ntheirs\nd\ne\n")
        assert executor.merge_file(current, base, new) is False
        assert "<<<<<<<" in current.read_text()


# --- Fallback switching ---


class _RecordingExecutor:
    """Executor double: counts calls and can fail to execute."""

    def __init__(self, broken: bool = False, merge_result: bool = True):
        self.broken = broken
        self.merge_result = merge_result
        self.calls: list[str] = []

    def _enter(self, name):
        self.calls.append(name)
        if self.broken:
            raise GitExecutionError("git: not found")

    def clone(self, repo_url, dest_path):
        self._enter("clone")

    def fetch_and_reset(self, dest_path):
        self._enter("fetch_and_reset")

    def head_revision(self, repo_root):
        self._enter("head_revision")
        return "abc123"

    def show(self, repo_root, revision, relative_path):
        self._enter("show")
        return "content"

    def toplevel(self, directory):
        self._enter("toplevel")
        return str(directory)

    def merge_file(self, current_file, base_file, new_file):
        self._enter("merge_file")
        return self.merge_result


def test_fallback_engages_when_primary_cannot_run():
    primary = _RecordingExecutor(broken=True)
    fallback = _RecordingExecutor()
    adapter = GitAdapter(primary=primary, fallback=fallback)

    assert adapter.head_revision("/repo") == "abc123"
    assert adapter.using_fallback
    assert primary.calls == ["head_revision"]
    assert fallback.calls == ["head_revision"]


def test_fallback_is_permanent():
    primary = _RecordingExecutor(broken=True)
    fallback = _RecordingExecutor()
    adapter = GitAdapter(primary=primary, fallback=fallback)

    adapter.head_revision("/repo")
    adapter.content_at_revision("/repo", "abc123", "a.md")
    adapter.three_way_merge("c", "b", "n")

    assert primary.calls == ["head_revision"]
    assert fallback.calls == ["head_revision", "show", "merge_file"]


def test_conflict_does_not_engage_fallback():
    primary = _RecordingExecutor(merge_result=False)
    fallback = _RecordingExecutor()
    adapter = GitAdapter(primary=primary, fallback=fallback)

    assert adapter.three_way_merge("c", "b", "n") is False
    assert not adapter.using_fallback
    assert fallback.calls == []


def test_fallback_failure_propagates():
    adapter = GitAdapter(primary=_RecordingExecutor(broken=True), fallback=_RecordingExecutor(broken=True))
    with pytest.raises(GitExecutionError):
        adapter.head_revision("/repo")


def test_missing_git_binary_switches_to_gitpython():
    with tempfile.TemporaryDirectory() as tmpdir:
        upstream = _init_upstream(Path(tmpdir) / "upstream", {"a.md": "x\n"})
        adapter = GitAdapter(primary=CliGitExecutor(git_binary="git-binary-that-does-not-exist"))

        assert adapter.head_revision(upstream.working_tree_dir) == upstream.head.commit.hexsha
        assert adapter.using_fallback


def test_cli_executor_missing_binary_raises_execution_error():
    executor = CliGitExecutor(git_binary="git-binary-that-does-not-exist")
    with pytest.raises(GitExecutionError):
        executor.head_revision(Path("."))


def test_missing_directory_does_not_engage_fallback():
    with tempfile.TemporaryDirectory() as tmpdir:
        adapter = GitAdapter()
        with pytest.raises(GitCommandError):
            adapter.head_revision(Path(tmpdir) / "gone")
        assert not adapter.using_fallback


def test_unloadable_gitpython_surfaces_as_execution_error(monkeypatch):
    # A None entry makes the import raise ImportError, as GitPython does without a git binary.
    monkeypatch.setitem(sys.modules, "agentsync.vcs.git_library", None)
    adapter = GitAdapter(primary=_RecordingExecutor(broken=True))

    with pytest.raises(GitExecutionError):
        adapter.head_revision("/repo")
    assert not adapter.using_fallback


_INSTALL_WITHOUT_GIT = """
import sys
from agentsync.errors import SourceResolutionError
from agentsync.models.artifact import Artifact
from agentsync.sync.engine import UpdateEngine
from agentsync.sync.resolver import StaticConflictResolver
from agentsync.sync.state_store import MemoryStateStore
from agentsync.vcs.adapter import GitAdapter

engine = UpdateEngine(GitAdapter(), MemoryStateStore(), StaticConflictResolver())
artifact = Artifact(repository="r", path="a.agent.md", install_url=sys.argv[1])
try:
    engine.install_item(artifact, sys.argv[2])
except SourceResolutionError as e:
    print("SourceResolutionError:", e)
"""


@pytest.mark.parametrize("refresh", ["", "quiet"])
def test_install_without_git_on_path_fails_with_source_resolution_error(refresh):
    with tempfile.TemporaryDirectory() as tmpdir:
        source = Path(tmpdir) / "src" / "a.agent.md"
        source.parent.mkdir()
        source.write_text("x\n")
        empty_bin = Path(tmpdir) / "bin"
        empty_bin.mkdir()
        env = {k: v for k, v in os.environ.items() if not k.startswith("GIT_PYTHON_")}
        env["PATH"] = str(empty_bin)
        env["PYTHONPATH"] = str(Path(agentsync.__file__).resolve().parents[1])
        if refresh:
            env["GIT_PYTHON_REFRESH"] = refresh

        result = subprocess.run(
            [sys.executable, "-c", _INSTALL_WITHOUT_GIT, str(source), str(Path(tmpdir) / "out")],
            capture_output=True,
            text=True,
            env=env,
        )

        assert result.returncode == 0, result.stderr
        assert result.stdout.startswith("SourceResolutionError:")
        assert not (Path(tmpdir) / "out" / "a.agent.md").exists()
