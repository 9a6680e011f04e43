"""Conflict resolvers — decide what to do with a conflict-marked file."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

import click
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

from agentsync.models.artifact import Artifact, Resolution


class ConflictResolver(Protocol):
    def resolve(self, artifact: Artifact, target_path: str) -> Resolution: ...


class StaticConflictResolver:
    """Always answers with the same resolution and remembers what it was asked."""

    def __init__(self, resolution: Resolution = Resolution.MANUAL):
        self.resolution = resolution
        self.calls: list[tuple[Artifact, str]] = []

    def resolve(self, artifact: Artifact, target_path: str) -> Resolution:
        self.calls.append((artifact, target_path))
        return self.resolution


_CHOICES = {
    "override": Resolution.OVERRIDE,
    "manual": Resolution.MANUAL,
    "cancel": Resolution.CANCEL,
}


class ConsoleConflictResolver:
    """Shows the conflict-marked file in the terminal, then asks for a decision."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def resolve(self, artifact: Artifact, target_path: str) -> Resolution:
        content = Path(target_path).read_text(encoding="utf-8", errors="replace")
        self.console.print(
            Panel(
                Syntax(content, "markdown", line_numbers=True, word_wrap=True),
                title=f"Conflicts in {target_path}",
                border_style="yellow",
            )
        )
        self.console.print(
            f"[yellow]Conflicts found while updating {artifact.display_name}.[/] "
            "Review the conflict markers above.\n"
            "  [bold]override[/] — replace the file with the upstream version\n"
            "  [bold]manual[/]   — keep the merged file and fix it by hand\n"
            "  [bold]cancel[/]   — restore the file as it was before the update"
        )
        choice = click.prompt(
            "Resolution",
            type=click.Choice(list(_CHOICES)),
            default="manual",
        )
        return _CHOICES[choice]
