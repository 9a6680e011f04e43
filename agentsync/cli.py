"""agentsync CLI — install agent and skill files from git repositories and keep them current."""

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from agentsync import __version__
from agentsync.config import SyncConfig
from agentsync.errors import AgentSyncError
from agentsync.models.artifact import Artifact, Resolution, UpdateStatus

console = Console()

RESOLVER_CHOICES = ["ask", "override", "cancel", "manual"]

# A non-UTF-8 file surfaces as UnicodeDecodeError.
CLI_ERRORS = (AgentSyncError, OSError, UnicodeDecodeError)


@click.group()
@click.version_option(version=__version__)
@click.option("--home", default=None, type=click.Path(file_okay=False), help="agentsync home (default: ~/.agentsync)")
@click.option("--workspace", "-w", default=None, type=click.Path(file_okay=False), help="Workspace root (default: cwd)")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, home: str | None, workspace: str | None, debug: bool):
    """agentsync — install agent and skill files from git repositories.

    Installed copies remember the upstream revision they came from, so
    'agentsync update' can merge upstream changes into files you have
    edited instead of overwriting them.
    """
    if debug:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s - %(levelname)s - %(message)s")

    # Tests may provide a ready-made config.
    if ctx.obj is None:
        try:
            ctx.obj = SyncConfig.load(home=home, workspace=workspace)
        except AgentSyncError as e:
            raise click.ClickException(str(e)) from e


def _engine(config: SyncConfig, on_conflict: str = "ask"):
    from agentsync.sync.engine import UpdateEngine
    from agentsync.sync.resolver import ConsoleConflictResolver, StaticConflictResolver
    from agentsync.sync.state_store import JsonStateStore
    from agentsync.vcs.adapter import GitAdapter

    if on_conflict == "ask":
        resolver = ConsoleConflictResolver(console)
    else:
        resolver = StaticConflictResolver(Resolution(on_conflict))

    return UpdateEngine(
        vcs=GitAdapter(),
        state_store=JsonStateStore(config.workspace_state_path, config.global_state_path),
        resolver=resolver,
        is_global=config.is_global,
        namespace=config.namespace,
        install_roots=config.install_roots,
    )


def _mirror(config: SyncConfig, engine, repo_url: str, fetch: bool) -> Path:
    dest = config.mirror_path(engine.vcs.mirror_name(repo_url))
    if fetch or not (dest / ".git").exists():
        engine.vcs.sync_mirror(repo_url, dest)
    return dest


def _artifact(config: SyncConfig, engine, repo_url: str, path: str, fetch: bool, **kwargs) -> Artifact:
    mirror = _mirror(config, engine, repo_url, fetch)
    artifact = Artifact.from_mirror(repo_url, mirror, path, **kwargs)
    if not Path(artifact.install_url).is_file():
        raise AgentSyncError(f"{artifact.path} does not exist in {repo_url}")
    return artifact


# ── Fetch ────────────────────────────────────────────────────────────


@main.command()
@click.argument("repo_url")
@click.pass_obj
def fetch(config: SyncConfig, repo_url: str):
    """Clone or fast-forward the local mirror of REPO_URL."""
    engine = _engine(config)
    try:
        mirror = _mirror(config, engine, repo_url, fetch=True)
        revision = engine.vcs.head_revision(mirror)
    except CLI_ERRORS as e:
        raise click.ClickException(str(e)) from e

    console.print(f"  Mirror: {mirror}")
    console.print(f"  HEAD:   [cyan]{revision}[/]")


# ── Install ──────────────────────────────────────────────────────────


@main.command()
@click.argument("repo_url")
@click.argument("path")
@click.option("--to", "install_dir", required=True, type=click.Path(file_okay=False), help="Directory to install into")
@click.option("--base-dir", default="", help="Install into this subfolder (folder-style artifacts)")
@click.option("--name", default="", help="Display name")
@click.option("--fetch/--no-fetch", default=True, help="Refresh the mirror first")
@click.pass_obj
def install(config: SyncConfig, repo_url: str, path: str, install_dir: str, base_dir: str, name: str, fetch: bool):
    """Install PATH from REPO_URL into a local directory."""
    engine = _engine(config)
    try:
        artifact = _artifact(config, engine, repo_url, path, fetch, name=name, base_directory=base_dir)
        target = engine.install_item(artifact, install_dir)
    except CLI_ERRORS as e:
        raise click.ClickException(str(e)) from e

    console.print(f"[green]Installed[/] {artifact.display_name} to {target}")


# ── Update ───────────────────────────────────────────────────────────


@main.command()
@click.argument("repo_url")
@click.argument("path")
@click.argument("target", type=click.Path(dir_okay=False))
@click.option("--on-conflict", default="ask", type=click.Choice(RESOLVER_CHOICES), help="How to resolve merge conflicts")
@click.option("--fetch/--no-fetch", default=True, help="Refresh the mirror first")
@click.pass_obj
def update(config: SyncConfig, repo_url: str, path: str, target: str, on_conflict: str, fetch: bool):
    """Update the installed copy at TARGET from PATH in REPO_URL.

    Local edits are preserved: unmodified files are replaced, modified
    files are merged, and conflicts are resolved according to --on-conflict.
    """
    engine = _engine(config, on_conflict)
    try:
        artifact = _artifact(config, engine, repo_url, path, fetch)
        result = engine.update_item(artifact, target)
    except CLI_ERRORS as e:
        raise click.ClickException(str(e)) from e

    if result.status == UpdateStatus.CANCELLED:
        console.print("[yellow]Update cancelled.[/] The file was left as it was.")
        return

    console.print(f"[green]Updated[/] {artifact.display_name}: {result.summary()}")
    if result.has_conflict_markers:
        console.print("  [yellow]![/] The file contains conflict markers to resolve by hand.")


# ── Status ───────────────────────────────────────────────────────────


@main.command()
@click.argument("repo_url")
@click.argument("path")
@click.argument("target", type=click.Path(dir_okay=False))
@click.option("--fetch/--no-fetch", default=False, help="Refresh the mirror first")
@click.pass_obj
def status(config: SyncConfig, repo_url: str, path: str, target: str, fetch: bool):
    """Compare the installed copy at TARGET with upstream."""
    engine = _engine(config)
    try:
        artifact = _artifact(config, engine, repo_url, path, fetch)
        report = engine.status_of(artifact, target)
    except CLI_ERRORS as e:
        raise click.ClickException(str(e)) from e

    table = Table(title=artifact.display_name)
    table.add_column("Target", style="cyan")
    table.add_column("State")
    table.add_column("Recorded")
    table.add_column("Upstream")
    style = "yellow" if report.needs_update else "green"
    table.add_row(
        report.target_path,
        f"[{style}]{report.state.value}[/]",
        report.recorded_revision[:12] or "-",
        report.head_revision[:12],
    )
    console.print(table)

    if report.needs_migration:
        console.print("  [yellow]![/] Tracked by a legacy snapshot; the next update migrates it.")
    for detail in report.details:
        console.print(f"    - {detail}")


# ── Uninstall ────────────────────────────────────────────────────────


@main.command()
@click.argument("target", type=click.Path(dir_okay=False))
@click.option("--package", is_flag=True, help="Delete the whole folder holding TARGET")
@click.pass_obj
def uninstall(config: SyncConfig, target: str, package: bool):
    """Delete the installed copy at TARGET and forget its install record."""
    engine = _engine(config)
    try:
        engine.uninstall_item(target, remove_package=package)
    except CLI_ERRORS as e:
        raise click.ClickException(str(e)) from e

    console.print(f"Uninstalled {target}")


if __name__ == "__main__":
    main()
