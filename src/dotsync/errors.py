"""Exception hierarchy for dotsync."""

from __future__ import annotations

from pathlib import Path


class DotsyncError(RuntimeError):
    """Raised when dotsync encounters an unrecoverable state."""


class SyncCancelled(DotsyncError):
    """Raised when the user cancels a reconciliation pass."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        message = "Operation cancelled by user"
        if path is not None:
            message = f"{message} at '{path}'"
        super().__init__(message)


class PreconditionError(DotsyncError):
    """Raised when a required source or destination is missing."""


class BackupError(DotsyncError):
    """Raised when a backup cannot be created, selected, or restored."""


class FileLockedError(BackupError):
    """Raised when a file holds an advisory lock from another process."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"'{path}' is locked (may be in use elsewhere)")


class VcsError(DotsyncError):
    """Raised when the version-control collaborator fails."""


class TransactionError(DotsyncError):
    """Base class for transaction failures."""

    def __init__(self, message: str, transaction_id: str | None = None) -> None:
        self.transaction_id = transaction_id
        super().__init__(message)


class TransactionStateError(TransactionError):
    """Raised when a phase is invoked from the wrong state."""


class TransactionValidationError(TransactionError, PreconditionError):
    """Raised when an operation's static precondition does not hold."""


class TransactionCommitError(TransactionError):
    """Raised when an operation fails during commit (after rollback)."""


class TransactionIntegrityError(TransactionError):
    """Raised when the filesystem does not match the committed operations."""


class TransactionRollbackError(TransactionError):
    """Raised when one or more undo steps could not be applied."""
