"""Configuration for agentsync.

Settings come from ``<home>/config.yaml`` where ``<home>`` defaults to
``~/.agentsync`` and can be moved with the ``AGENTSYNC_HOME`` environment
variable. Every key is optional::

    mirrors_dir: ~/.agentsync/repos
    namespace: itemSha
    global_roots:
      - ~/.agentsync/prompts
      - ~/.copilot/skills
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from agentsync.errors import ConfigError

CONFIG_FILE = "config.yaml"
STATE_FILE = "state.json"
WORKSPACE_DIR = ".agentsync"
DEFAULT_NAMESPACE = "itemSha"
WORKSPACE_INSTALL_DIRS = (".github/agents", ".github/skills")


def default_home() -> Path:
    return Path(os.environ.get("AGENTSYNC_HOME", "") or Path.home() / ".agentsync")


@dataclass
class SyncConfig:
    """Resolved settings for one invocation."""

    home: Path = field(default_factory=default_home)
    workspace: Path = field(default_factory=Path.cwd)
    mirrors_dir: Path | None = None
    global_roots: list[Path] = field(default_factory=list)
    namespace: str = DEFAULT_NAMESPACE

    def __post_init__(self):
        self.home = Path(self.home).expanduser()
        self.workspace = Path(self.workspace).expanduser()
        if self.mirrors_dir is None:
            self.mirrors_dir = self.home / "repos"
        self.mirrors_dir = Path(self.mirrors_dir).expanduser()
        if not self.global_roots:
            self.global_roots = [self.home / "prompts", Path.home() / ".copilot" / "skills"]
        self.global_roots = [Path(p).expanduser() for p in self.global_roots]

    @property
    def global_state_path(self) -> Path:
        return self.home / STATE_FILE

    @property
    def workspace_state_path(self) -> Path:
        return self.workspace / WORKSPACE_DIR / STATE_FILE

    @property
    def install_roots(self) -> list[Path]:
        """Directories artifacts are installed into directly, global and per workspace."""
        return [*self.global_roots, *(self.workspace / d for d in WORKSPACE_INSTALL_DIRS)]

    def mirror_path(self, mirror_name: str) -> Path:
        return self.mirrors_dir / mirror_name

    def is_global(self, path: str | Path) -> bool:
        """Return True when ``path`` lies under one of the user-global install roots."""
        candidate = os.path.abspath(os.fspath(path))
        for root in self.global_roots:
            root_str = os.path.abspath(os.fspath(root))
            if candidate == root_str or candidate.startswith(root_str.rstrip(os.sep) + os.sep):
                return True
        return False

    @classmethod
    def load(cls, home: str | Path | None = None, workspace: str | Path | None = None) -> SyncConfig:
        """Load ``config.yaml`` from the home directory, if present."""
        home_path = Path(home).expanduser() if home else default_home()
        data = _read_config_file(home_path / CONFIG_FILE)

        return cls(
            home=home_path,
            workspace=Path(workspace) if workspace else Path.cwd(),
            mirrors_dir=data.get("mirrors_dir"),
            global_roots=list(data.get("global_roots") or []),
            namespace=str(data.get("namespace") or DEFAULT_NAMESPACE),
        )


def _read_config_file(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration in {path} must be a mapping")
    if "global_roots" in data and not isinstance(data["global_roots"], (list, type(None))):
        raise ConfigError(f"'global_roots' in {path} must be a list of paths")
    return data
