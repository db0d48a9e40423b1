"""Reconcile tracked files with the filesystem."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping

from .backup import BackupStore
from .errors import SyncCancelled
from .filesystem import FileSystem, is_locked
from .models import (
    BackupAndReplace,
    ConflictChoice,
    CreateSymlink,
    FileOperation,
    FileStatus,
    SymlinkResolution,
    SyncAction,
    SyncLine,
    SyncReport,
    TrackedFile,
)
from .planner import needs_backup, plan
from .prompt import ConflictOracle
from .status import classify, describe
from .transaction import apply_operations

logger = logging.getLogger(__name__)


@dataclass
class _Plan:
    operations: list[FileOperation] = field(default_factory=list)
    lines: list[SyncLine] = field(default_factory=list)
    synced: int = 0
    skipped: int = 0

    def keep(self, file: TrackedFile, status: FileStatus, action: SyncAction, message: str) -> None:
        self.synced += 1
        self.lines.append(SyncLine(file=file, status=status, action=action, message=message))

    def skip(self, file: TrackedFile, status: FileStatus, action: SyncAction, message: str) -> None:
        self.skipped += 1
        self.lines.append(SyncLine(file=file, status=status, action=action, message=message))


def _choose(oracle: ConflictOracle, file: TrackedFile) -> ConflictChoice:
    choice = oracle.resolve(file.dest_path)
    while choice is ConflictChoice.INSPECT:
        oracle.show_diff(file.repo_path, file.dest_path)
        choice = oracle.resolve(file.dest_path)
    return choice


def link_operations(file: TrackedFile, resolution: SymlinkResolution, backups: BackupStore) -> list[FileOperation]:
    """Operations that make ``file.dest_path`` point at the repository copy."""

    if needs_backup(file):
        return [
            BackupAndReplace(
                source=file.repo_path,
                target=file.dest_path,
                backup_path=backups.location_for(file.dest_path),
                resolution=resolution,
            )
        ]
    return [CreateSymlink(source=file.repo_path, target=file.dest_path, resolution=resolution)]


def migrate_operations(file: TrackedFile, resolution: SymlinkResolution, backups: BackupStore) -> list[FileOperation]:
    """Copy destination content into the repository, then link the destination."""

    return [
        BackupAndReplace(
            source=file.dest_path,
            target=file.repo_path,
            backup_path=backups.location_for(file.repo_path),
            resolution=SymlinkResolution.REPLACE,
        ),
        *link_operations(file, resolution, backups),
    ]


def _plan_file(
    file: TrackedFile,
    resolution: SymlinkResolution,
    backups: BackupStore,
    oracle: ConflictOracle,
    result: _Plan,
    verbose: bool,
) -> None:
    status = classify(file, resolution)
    action = plan(file, status)

    if action is SyncAction.SKIP:
        result.skip(file, status, action, describe(file, status))
        return

    if action is SyncAction.DO_NOTHING:
        if verbose:
            result.keep(file, status, action, describe(file, status))
        else:
            result.synced += 1
        return

    if needs_backup(file) and is_locked(file.dest_path):
        logger.warning("%s is locked (may be in use), skipping", file.dest_path)
        result.skip(file, status, action, f"{file.dest_path} is locked (may be in use elsewhere)")
        return

    if action is SyncAction.UPDATE_REPO_FROM_DEST:
        result.operations.extend(migrate_operations(file, resolution, backups))
        result.keep(file, status, action, f"Repository copy {file.repo_path} was empty; updated from {file.dest_path}")
        return

    if action is SyncAction.RESOLVE_CONFLICT:
        choice = _choose(oracle, file)
        if choice is ConflictChoice.CANCEL:
            raise SyncCancelled(file.dest_path)
        if choice is ConflictChoice.SKIP:
            result.skip(file, status, action, f"Skipped {file.dest_path}")
            return

    verb = "Copied" if resolution is SymlinkResolution.REPLACE else "Linked"
    result.operations.extend(link_operations(file, resolution, backups))
    result.keep(file, status, action, f"{verb} {file.repo_path} -> {file.dest_path}")


def sync_files(
    files: Iterable[TrackedFile],
    resolution: SymlinkResolution,
    *,
    fs: FileSystem,
    backups: BackupStore,
    oracle: ConflictOracle,
    verbose: bool = False,
    metadata: Mapping[str, str] | None = None,
) -> SyncReport:
    """Run one reconciliation pass over ``files``.

    Every decision is taken first; the resulting operations then run as a
    single transaction, so a failure or cancellation leaves no partial run.
    """

    result = _Plan()
    for file in files:
        _plan_file(file, resolution, backups, oracle, result, verbose)

    transaction_id = None
    results = ()
    if result.operations:
        info = {"timestamp": datetime.now().isoformat(timespec="seconds"), "resolution": resolution.value}
        info.update(metadata or {})
        outcome = apply_operations(result.operations, fs, backup_root=backups.root, metadata=info)
        transaction_id = outcome.transaction_id
        results = outcome.results

    return SyncReport(
        synced=result.synced,
        skipped=result.skipped,
        lines=tuple(result.lines),
        transaction_id=transaction_id,
        results=results,
        planned=tuple(fs.log),
        dry_run=fs.dry_run,
    )
