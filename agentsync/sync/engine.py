"""Update engine — install artifacts and keep installed copies in sync.

An update never silently discards local edits. For each target path the
engine compares the local file with its base content (the upstream content
it was last synced to):

- unchanged locally: overwrite with the new upstream content
- changed locally: three-way merge base/local/upstream; on conflict the
  conflict resolver decides between override, cancel and manual fixing

After every non-cancelled update the install record points at the new
upstream revision and any legacy ``.<name>.base`` snapshot is removed.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Protocol

from agentsync.config import DEFAULT_NAMESPACE
from agentsync.errors import AgentSyncError, HistoricalContentUnavailable, SourceResolutionError
from agentsync.models.artifact import (
    Artifact,
    InstallRecord,
    InstallState,
    MergeOutcome,
    Resolution,
    StatusReport,
    UpdateResult,
    UpdateStatus,
)
from agentsync.sync.baseline import Baseline, BaselineKind, resolve_baseline
from agentsync.sync.resolver import ConflictResolver
from agentsync.sync.staging import MergeSession
from agentsync.sync.state_store import StateStore
from agentsync.utils.files import copy_file, read_text, remove_quietly

logger = logging.getLogger(__name__)


class VersionControl(Protocol):
    def head_revision(self, mirror_root: str | Path) -> str: ...

    def content_at_revision(self, mirror_root: str | Path, revision: str, relative_path: str) -> str: ...

    def repo_root_of(self, path: str | Path) -> str: ...

    def three_way_merge(self, current_file: str | Path, base_file: str | Path, new_file: str | Path) -> bool: ...


@dataclass(frozen=True)
class SourceInfo:
    """Where an artifact's upstream copy lives and which revision it is at."""

    mirror_root: str
    revision: str
    relative_path: str


def sanitize_base_directory(base_directory: str) -> str:
    """Strip absolute prefixes and parent traversal from a base directory."""
    if "/" in base_directory or "\\" in base_directory:
        logger.warning(
            "Base directory %r contains path separators; it will be normalized",
            base_directory,
        )
    parts = [
        part
        for part in base_directory.replace("\\", "/").split("/")
        if part and part not in (".", "..") and not part.endswith(":")
    ]
    return "/".join(parts)


def target_path_for(artifact: Artifact, install_base_path: str | Path) -> Path:
    """Final install location of ``artifact`` under ``install_base_path``."""
    target_dir = Path(install_base_path)
    if artifact.base_directory:
        safe = sanitize_base_directory(artifact.base_directory)
        if safe:
            target_dir = target_dir.joinpath(*safe.split("/"))
    return target_dir / artifact.filename


class UpdateEngine:
    """Installs and updates artifacts, tracking provenance per target path.

    Args:
        vcs: Version-control adapter for the artifact mirrors.
        state_store: Where install records are persisted.
        resolver: Consulted when a merge leaves conflicts.
        is_global: Chooses the global (True) or workspace (False) scope for a path.
        namespace: Prefix of the state keys.
        install_roots: Directories artifacts are installed into directly; never
            deleted as a package folder.

    Updates to the same target path must not run concurrently.
    """

    def __init__(
        self,
        vcs: VersionControl,
        state_store: StateStore,
        resolver: ConflictResolver,
        is_global: Callable[[str], bool] = lambda path: False,
        namespace: str = DEFAULT_NAMESPACE,
        install_roots: Iterable[str | Path] = (),
    ):
        self.vcs = vcs
        self.state_store = state_store
        self.resolver = resolver
        self.is_global = is_global
        self.namespace = namespace
        self.install_roots = {os.path.abspath(root) for root in install_roots}

    # -- install records -----------------------------------------------------

    def state_key(self, target_path: str | Path) -> str:
        return f"{self.namespace}:{os.path.abspath(target_path)}"

    def package_key(self, target_path: str | Path) -> str:
        return f"{self.namespace}:package:{os.path.abspath(target_path)}"

    def get_record(self, target_path: str | Path) -> InstallRecord | None:
        target = os.path.abspath(target_path)
        revision = self.state_store.get(self.state_key(target), self.is_global(target))
        return InstallRecord(base_revision=revision) if revision else None

    def _record(self, target: str, revision: str | None) -> None:
        self.state_store.update(self.state_key(target), revision, self.is_global(target))

    def _record_package(self, target: str, package_dir: str | None) -> None:
        self.state_store.update(self.package_key(target), package_dir, self.is_global(target))

    # -- operations ----------------------------------------------------------

    def install_item(self, artifact: Artifact, install_base_path: str | Path) -> Path:
        """Copy ``artifact`` under ``install_base_path`` and record its revision.

        Artifacts with a base directory also record the folder they were
        installed into, which ``uninstall_item`` may later delete as a whole.
        """
        source = self.resolve_source(artifact)
        target = target_path_for(artifact, install_base_path)

        copy_file(artifact.install_url, target)
        abs_target = os.path.abspath(target)
        self._record(abs_target, source.revision)
        has_package = bool(artifact.base_directory and sanitize_base_directory(artifact.base_directory))
        self._record_package(abs_target, os.path.dirname(abs_target) if has_package else None)

        logger.info("Installed %s at %s (%s)", artifact.display_name, target, source.revision[:12])
        return target

    def update_item(self, artifact: Artifact, target_path: str | Path) -> UpdateResult:
        """Bring the copy at ``target_path`` up to the artifact's current revision."""
        source = self.resolve_source(artifact)
        target = os.path.abspath(target_path)
        is_global = self.is_global(target)
        key = self.state_key(target)
        baseline = resolve_baseline(self.state_store, key, is_global, target)

        if baseline.kind is BaselineKind.UNTRACKED or not os.path.isfile(target):
            copy_file(artifact.install_url, target)
            outcome = MergeOutcome.OVERWRITTEN
        else:
            outcome = self._sync_local_copy(artifact, target, source, baseline)

        if outcome is MergeOutcome.CANCELLED:
            logger.info("Update of %s at %s cancelled", artifact.display_name, target)
            return UpdateResult(UpdateStatus.CANCELLED, target, outcome=outcome)

        self.state_store.update(key, source.revision, is_global)
        if baseline.needs_migration:
            remove_quietly(baseline.snapshot_path)

        logger.info("Updated %s at %s [%s]", artifact.display_name, target, outcome.value)
        return UpdateResult(
            UpdateStatus.UPDATED,
            target,
            revision=source.revision,
            outcome=outcome,
            migrated_legacy=baseline.needs_migration,
        )

    def update_many(self, items: Iterable[tuple[Artifact, str | Path]]) -> list[UpdateResult]:
        """Update several artifacts one after another.

        A failure is reported in that item's result and does not stop the rest.
        """
        results = []
        for artifact, target_path in items:
            try:
                results.append(self.update_item(artifact, target_path))
            except Exception as e:
                logger.exception("Update of %s at %s failed", artifact.display_name, target_path)
                results.append(
                    UpdateResult(
                        UpdateStatus.FAILED,
                        os.path.abspath(target_path),
                        error=str(e),
                    )
                )
        return results

    def status_of(self, artifact: Artifact, target_path: str | Path) -> StatusReport:
        """Compare an installed copy with upstream without changing anything."""
        source = self.resolve_source(artifact)
        target = os.path.abspath(target_path)
        report = StatusReport(target_path=target, state=InstallState.NOT_INSTALLED, head_revision=source.revision)

        if not os.path.isfile(target):
            return report

        baseline = resolve_baseline(self.state_store, self.state_key(target), self.is_global(target), target)
        report.recorded_revision = baseline.revision
        report.needs_migration = baseline.needs_migration
        if baseline.kind is BaselineKind.UNTRACKED:
            report.state = InstallState.UNTRACKED
            report.details.append("No install record or legacy snapshot for this file.")
            return report

        current = read_text(target)
        base = None
        if baseline.kind is BaselineKind.TRACKED:
            try:
                base = self.vcs.content_at_revision(source.mirror_root, baseline.revision, source.relative_path)
            except HistoricalContentUnavailable as e:
                report.details.append(f"Base content unavailable: {e}")
        else:
            base = baseline.read_snapshot()

        new = read_text(artifact.install_url)
        if base is not None and current != base:
            report.state = InstallState.LOCALLY_MODIFIED
            if base != new:
                report.details.append("Upstream changed as well; updating will merge.")
        elif current == new:
            report.state = InstallState.UP_TO_DATE
        else:
            report.state = InstallState.UPDATE_AVAILABLE
        return report

    def uninstall_item(self, target_path: str | Path, remove_package: bool = False) -> None:
        """Delete an installed copy along with its install record and legacy snapshot.

        With ``remove_package`` the whole folder holding the copy is deleted,
        but only when that folder was created for the artifact's base directory
        and is not an install root. Otherwise only the file goes.
        """
        target = os.path.abspath(target_path)
        is_global = self.is_global(target)
        baseline = resolve_baseline(self.state_store, self.state_key(target), is_global, target)
        parent = os.path.dirname(target)

        if remove_package and self._is_package_dir(target, parent):
            shutil.rmtree(parent)
        else:
            if remove_package:
                logger.warning("%s is not a package folder; removing only %s", parent, target)
            os.unlink(target)
            if baseline.needs_migration:
                remove_quietly(baseline.snapshot_path)
        self._record(target, None)
        self._record_package(target, None)
        logger.info("Uninstalled %s", target)

    # -- internals -----------------------------------------------------------

    def _is_package_dir(self, target: str, parent: str) -> bool:
        if parent in self.install_roots:
            return False
        return self.state_store.get(self.package_key(target), self.is_global(target)) == parent

    def resolve_source(self, artifact: Artifact) -> SourceInfo:
        """Find the artifact's mirror and its current revision.

        Raises:
            SourceResolutionError: before anything has been written.
        """
        if not artifact.install_url:
            raise SourceResolutionError(f"{artifact.display_name} has no install URL")
        try:
            root = self.vcs.repo_root_of(artifact.install_url)
            revision = self.vcs.head_revision(root)
        except (AgentSyncError, OSError) as e:
            raise SourceResolutionError(
                f"Failed to determine git details for {artifact.display_name}: {e}"
            ) from e
        relative = os.path.relpath(os.path.realpath(artifact.install_url), os.path.realpath(root))
        return SourceInfo(mirror_root=root, revision=revision, relative_path=Path(relative).as_posix())

    def _base_content(self, baseline: Baseline, source: SourceInfo, current: str) -> str:
        if baseline.kind is BaselineKind.LEGACY:
            return baseline.read_snapshot()
        try:
            return self.vcs.content_at_revision(source.mirror_root, baseline.revision, source.relative_path)
        except HistoricalContentUnavailable as e:
            # Optimistic: with no base to compare against, the local copy counts as unmodified.
            logger.warning("%s; treating the local file as unmodified", e)
            return current

    def _sync_local_copy(
        self,
        artifact: Artifact,
        target: str,
        source: SourceInfo,
        baseline: Baseline,
    ) -> MergeOutcome:
        current = read_text(target)
        base = self._base_content(baseline, source, current)

        if current == base:
            copy_file(artifact.install_url, target)
            return MergeOutcome.OVERWRITTEN

        new = read_text(artifact.install_url)
        with MergeSession(target, base, new) as session:
            clean = self.vcs.three_way_merge(target, session.base_file, session.new_file)
            session.discard_staging()
            if clean:
                return MergeOutcome.MERGED

            resolution = Resolution(self.resolver.resolve(artifact, target))
            logger.info("Conflict in %s resolved with %s", target, resolution.value)
            if resolution is Resolution.CANCEL:
                session.restore()
                return MergeOutcome.CANCELLED
            if resolution is Resolution.OVERRIDE:
                copy_file(artifact.install_url, target)
                return MergeOutcome.CONFLICT_OVERRIDDEN
            return MergeOutcome.CONFLICT_KEPT
