"""Atomic batches of file operations.

A transaction moves through ``started -> prepared -> committed -> verified``
and may escape to ``rolled_back`` from any non-terminal state. Rollback is
driven by an undo log recorded during commit, one entry before every
destructive step, so partially executed operations are reverted too.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Iterable, Mapping

from .backup import preserve
from .errors import (
    DotsyncError,
    TransactionCommitError,
    TransactionIntegrityError,
    TransactionRollbackError,
    TransactionStateError,
    TransactionValidationError,
)
from .filesystem import FileSystem, install_symlink, lexists, read_link
from .models import (
    ApplyOutcome,
    BackupAndReplace,
    CreateSymlink,
    FileOperation,
    OperationResult,
    RemoveCreated,
    RemoveSymlink,
    RestoreCopy,
    RestoreLink,
    TransactionState,
    UndoAction,
)

logger = logging.getLogger(__name__)


def generate_transaction_id() -> str:
    return f"tx-{uuid.uuid4().hex[:12]}"


class Transaction:
    """One atomic batch of :data:`FileOperation` values."""

    def __init__(self, transaction_id: str, staging_dir: Path, *, backup_root: Path | None = None) -> None:
        self.id = transaction_id
        self.state = TransactionState.STARTED
        self.staging_dir = staging_dir
        self.backup_root = backup_root
        self.operations: list[FileOperation] = []
        self.results: list[OperationResult] = []
        self.undo_log: list[UndoAction] = []
        self.backups: list[Path] = []
        self.metadata: dict[str, str] = {}

    @classmethod
    def begin(cls, staging_root: Path | None = None, *, backup_root: Path | None = None) -> "Transaction":
        transaction_id = generate_transaction_id()
        if staging_root is not None:
            staging_root.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f"dotsync-{transaction_id}-", dir=staging_root))
        logger.debug("Began transaction %s (staging %s)", transaction_id, staging)
        return cls(transaction_id, staging, backup_root=backup_root)

    def _require(self, *states: TransactionState, action: str) -> None:
        if self.state not in states:
            expected = " or ".join(state.value for state in states)
            raise TransactionStateError(
                f"Transaction must be {expected} to {action} (currently {self.state.value})",
                self.id,
            )

    def add_operation(self, operation: FileOperation) -> None:
        self._require(TransactionState.STARTED, action="add operations")
        self.operations.append(operation)

    def validate(self) -> None:
        self._require(TransactionState.STARTED, action="validate")
        for operation in self.operations:
            if isinstance(operation, (CreateSymlink, BackupAndReplace)) and not lexists(operation.source):
                raise TransactionValidationError(f"Source file does not exist: {operation.source}", self.id)
        self.state = TransactionState.PREPARED

    def prepare(self) -> None:
        self._require(TransactionState.PREPARED, action="prepare")

    def commit(self, fs: FileSystem) -> None:
        """Execute operations in order, rolling back on the first failure."""

        self._require(TransactionState.PREPARED, action="commit")

        for operation in self.operations:
            try:
                self._execute(operation, fs)
            except (OSError, DotsyncError) as exc:
                result = OperationResult(operation=operation, success=False, error=str(exc))
            else:
                result = OperationResult(operation=operation, success=True)
            self.results.append(result)

            if not result.success:
                logger.warning("Transaction %s failed: %s", self.id, result.error)
                try:
                    self.rollback(fs)
                except TransactionRollbackError as rollback_exc:
                    raise TransactionCommitError(
                        f"Transaction failed: {result.error}; rollback incomplete: {rollback_exc}", self.id
                    ) from rollback_exc
                raise TransactionCommitError(f"Transaction failed: {result.error}", self.id)

        self.state = TransactionState.COMMITTED

    def verify(self) -> None:
        self._require(TransactionState.COMMITTED, action="verify")

        for index, result in enumerate(self.results):
            if not result.success:
                raise TransactionIntegrityError(
                    f"Verification failed: operation did not succeed: {result.error}", self.id
                )
            operation = result.operation
            if isinstance(operation, (CreateSymlink, BackupAndReplace)):
                if not lexists(operation.target):
                    raise TransactionIntegrityError(
                        f"Verification failed: {operation.target} does not exist", self.id
                    )
            elif isinstance(operation, RemoveSymlink):
                if self._recreated_later(index, operation.target):
                    continue
                if lexists(operation.target):
                    raise TransactionIntegrityError(
                        f"Verification failed: {operation.target} still exists", self.id
                    )

        self.state = TransactionState.VERIFIED

    def _recreated_later(self, index: int, target: Path) -> bool:
        following = self.results[index + 1 : index + 2]
        return any(
            isinstance(result.operation, (CreateSymlink, BackupAndReplace)) and result.operation.target == target
            for result in following
        )

    def rollback(self, fs: FileSystem) -> None:
        """Undo every recorded step in reverse order. Calling twice is a no-op."""

        if self.state is TransactionState.ROLLED_BACK:
            return

        errors: list[str] = []
        for undo in reversed(self.undo_log):
            try:
                self._undo(undo, fs)
            except OSError as exc:
                logger.error("Rollback step for '%s' failed: %s", undo.target, exc)
                errors.append(f"{undo.target}: {exc}")

        self.undo_log.clear()
        self.state = TransactionState.ROLLED_BACK
        logger.info("Rolled back transaction %s", self.id)
        if errors:
            raise TransactionRollbackError("Rollback incomplete: " + "; ".join(errors), self.id)

    def cleanup(self) -> None:
        shutil.rmtree(self.staging_dir, ignore_errors=True)

    # ------------------------------------------------------------------
    # Execution helpers

    def _execute(self, operation: FileOperation, fs: FileSystem) -> None:
        if isinstance(operation, CreateSymlink):
            self._snapshot(operation.target, fs)
            install_symlink(operation.source, operation.target, operation.resolution, fs)
        elif isinstance(operation, RemoveSymlink):
            self._snapshot(operation.target, fs)
            fs.remove_path(operation.target)
        elif isinstance(operation, BackupAndReplace):
            self._backup_and_replace(operation, fs)
        else:  # pragma: no cover - exhaustive over FileOperation
            raise TypeError(f"Unknown operation {operation!r}")

    def _backup_and_replace(self, operation: BackupAndReplace, fs: FileSystem) -> None:
        target = operation.target
        backup = preserve(target, operation.backup_path, fs, guard_root=self.backup_root)
        if backup is not None:
            self.backups.append(backup)

        # Backups of directories are re-permissioned 0700, so directories keep a verbatim stash.
        if backup is not None and not target.is_symlink() and not target.is_dir():
            self.undo_log.append(RestoreCopy(target=target, copy_path=backup, mode=_mode_of(target)))
        else:
            self._snapshot(target, fs)
        install_symlink(operation.source, target, operation.resolution, fs)

    def _snapshot(self, target: Path, fs: FileSystem) -> None:
        """Record how to put ``target`` back the way it is now."""

        if target.is_symlink():
            link_text = read_link(target)
            if link_text is not None:
                self.undo_log.append(RestoreLink(target=target, link_text=link_text))
                return
        if not lexists(target):
            self.undo_log.append(RemoveCreated(target=target))
            return

        stash = self.staging_dir / f"{len(self.undo_log):04d}" / target.name
        fs.create_dir_all(stash.parent)
        fs.copy(target, stash)
        self.undo_log.append(RestoreCopy(target=target, copy_path=stash, mode=_mode_of(target)))

    def _undo(self, undo: UndoAction, fs: FileSystem) -> None:
        target = undo.target
        if isinstance(undo, RemoveCreated):
            fs.remove_path(target)
        elif isinstance(undo, RestoreLink):
            fs.remove_path(target)
            fs.create_dir_all(target.parent)
            fs.symlink(undo.link_text, target)
        elif isinstance(undo, RestoreCopy):
            if not lexists(undo.copy_path):
                raise FileNotFoundError(f"pre-image {undo.copy_path} is missing")
            fs.remove_path(target)
            fs.create_dir_all(target.parent)
            fs.copy(undo.copy_path, target)
            if undo.mode is not None:
                fs.chmod(target, undo.mode)


def _mode_of(path: Path) -> int | None:
    try:
        return path.lstat().st_mode & 0o7777
    except OSError:
        return None


def apply_operations(
    operations: Iterable[FileOperation],
    fs: FileSystem,
    *,
    backup_root: Path | None = None,
    metadata: Mapping[str, str] | None = None,
    staging_root: Path | None = None,
) -> ApplyOutcome:
    """Run ``operations`` through a full transaction lifecycle."""

    transaction = Transaction.begin(staging_root, backup_root=backup_root)
    transaction.metadata.update(metadata or {})
    try:
        for operation in operations:
            transaction.add_operation(operation)
        transaction.validate()
        transaction.prepare()
        transaction.commit(fs)
        if not fs.dry_run:
            transaction.verify()
    finally:
        transaction.cleanup()

    logger.info("Transaction %s finished in state %s", transaction.id, transaction.state.value)
    return ApplyOutcome(
        transaction_id=transaction.id,
        results=tuple(transaction.results),
        state=transaction.state,
        dry_run=fs.dry_run,
        planned=tuple(fs.log),
    )
