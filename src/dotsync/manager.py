"""High level orchestration for dotsync operations."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from .backup import BackupStore, home_relative
from .config import Config
from .errors import BackupError, FileLockedError
from .filesystem import FileSystem, lexists
from .models import (
    ApplyOutcome,
    BackupInfo,
    BackupRun,
    CleanupReport,
    FileOperation,
    RepoImport,
    RestoreReport,
    StatusReport,
    SyncReport,
    TrackedFile,
    ValidationReport,
)
from .prompt import AutoOracle, ConflictOracle, InteractiveOracle
from .status import check_status
from .sync import sync_files
from .transaction import apply_operations
from .validate import validate_config
from .vcs import GitRepository, VersionControl

logger = logging.getLogger(__name__)


class DotsyncManager:
    """Binds a loaded :class:`Config` to the sync engine and backup store."""

    def __init__(
        self,
        config: Config,
        *,
        oracle: ConflictOracle | None = None,
        vcs: VersionControl | None = None,
    ) -> None:
        self.config = config
        self.oracle = oracle
        if vcs is None and (config.repo_path / ".git").exists():
            vcs = GitRepository(config.repo_path)
        self.vcs = vcs

    def tracked_files(self, profile: str | None = None) -> list[TrackedFile]:
        return self.config.tracked_files(profile)

    def status(self, profile: str | None = None) -> StatusReport:
        return check_status(self.tracked_files(profile), self.config.symlink_resolution)

    def validate(self, profile: str | None = None) -> ValidationReport:
        return validate_config(self.config, profile)

    def sync(
        self,
        profile: str | None = None,
        *,
        dry_run: bool = False,
        verbose: bool = False,
        assume_yes: bool = False,
    ) -> SyncReport:
        fs = FileSystem(dry_run=dry_run)
        backups = self._store(fs)
        if dry_run or assume_yes:
            oracle: ConflictOracle = AutoOracle()
        else:
            oracle = self.oracle or InteractiveOracle()

        report = sync_files(
            self.tracked_files(profile),
            self.config.symlink_resolution,
            fs=fs,
            backups=backups,
            oracle=oracle,
            verbose=verbose,
            metadata={"profile": profile or self.config.general.current_profile},
        )

        if not dry_run and report.transaction_id is not None:
            self._stage_changes()
        return report

    def apply(self, operations: Iterable[FileOperation], *, dry_run: bool = False) -> ApplyOutcome:
        fs = FileSystem(dry_run=dry_run)
        return apply_operations(operations, fs, backup_root=self.config.backup_dir)

    def backup(self, profile: str | None = None, *, dry_run: bool = False) -> BackupRun:
        """Snapshot every existing tracked destination into one backup root."""

        fs = FileSystem(dry_run=dry_run)
        store = self._store(fs)
        files: list[Path] = []
        skipped: list[Path] = []
        for tracked in self.tracked_files(profile):
            if not lexists(tracked.dest_path):
                continue
            try:
                copied = store.backup(tracked.dest_path)
            except FileLockedError as exc:
                logger.warning("Skipping locked destination: %s", exc)
                skipped.append(tracked.dest_path)
                continue
            if copied is not None:
                files.append(copied)
        return BackupRun(root=store.run_root, files=tuple(files), planned=tuple(fs.log), skipped=tuple(skipped))

    def list_backups(self) -> list[BackupInfo]:
        return self._store(FileSystem()).list()

    def restore(self, selector: str, *, file: Path | None = None, dry_run: bool = False) -> RestoreReport:
        fs = FileSystem(dry_run=dry_run)
        store = self._store(fs)
        chosen = store.select(selector)

        if file is not None:
            target = file.expanduser()
            if not target.is_absolute():
                target = store.home / target
            store.restore(chosen, target)
            restored = [target]
        else:
            restored = store.restore_all(chosen)

        return RestoreReport(backup=chosen, restored=tuple(restored), planned=tuple(fs.log))

    def cleanup(
        self,
        keep_count: int | None = None,
        keep_days: int | None = None,
        *,
        dry_run: bool = False,
    ) -> CleanupReport:
        fs = FileSystem(dry_run=dry_run)
        store = self._store(fs)
        keep_count = self.config.backup.keep_count if keep_count is None else keep_count
        keep_days = self.config.backup.keep_days if keep_days is None else keep_days
        total = len(store.list())
        removed = store.cleanup(keep_count, keep_days)
        return CleanupReport(removed=tuple(removed), kept=total - len(removed), planned=tuple(fs.log))

    def add_backup_to_repo(
        self,
        selector: str,
        profile: str | None = None,
        *,
        dry_run: bool = False,
    ) -> RepoImport:
        """Copy a backup's files onto the repository paths they were taken from.

        Files are matched to tracked entries by destination first and by
        file name second. Unmatched files are reported, never guessed.
        """

        fs = FileSystem(dry_run=dry_run)
        store = self._store(fs)
        chosen = store.select(selector)
        tracked = self.tracked_files(profile)
        by_relative = {home_relative(item.dest_path, store.home): item for item in tracked}
        by_name = {item.dest_path.name: item for item in tracked}

        copied: list[tuple[Path, Path]] = []
        unmatched: list[Path] = []
        for entry in chosen.files:
            match = by_relative.get(entry.relative_to(chosen.path)) or by_name.get(entry.name)
            if match is None:
                logger.info("No tracked file matches backup entry '%s'", entry)
                unmatched.append(entry)
                continue
            fs.create_dir_all(match.repo_path.parent)
            fs.remove_path(match.repo_path)
            fs.copy(entry, match.repo_path)
            copied.append((entry, match.repo_path))

        if not copied and chosen.files:
            raise BackupError(f"No files in backup {chosen.path.name} match a tracked file")

        staged = False
        if copied and not dry_run:
            staged = self._stage_changes()

        return RepoImport(
            backup=chosen,
            copied=tuple(copied),
            unmatched=tuple(unmatched),
            staged=staged,
            planned=tuple(fs.log),
        )

    # ------------------------------------------------------------------
    # Internal helpers

    def _store(self, fs: FileSystem) -> BackupStore:
        return BackupStore(self.config.backup_dir, fs=fs)

    def _stage_changes(self) -> bool:
        if self.vcs is None:
            return False
        changes = self.vcs.changes()
        if changes.is_empty():
            return False
        logger.info("Staging %d changed path(s) in '%s'", len(changes.paths()), self.config.repo_path)
        self.vcs.stage(changes.paths())
        return True
