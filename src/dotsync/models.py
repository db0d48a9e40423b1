"""Shared models and enums for dotsync."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Union


class EntryType(str, Enum):
    """Kinds of filesystem entries dotsync distinguishes."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


class SymlinkResolution(str, Enum):
    """How the on-disk target of a managed symlink is computed."""

    AUTO = "auto"
    RELATIVE = "relative"
    ABSOLUTE = "absolute"
    FOLLOW = "follow"
    REPLACE = "replace"

    @classmethod
    def parse(cls, raw: str) -> "SymlinkResolution":
        try:
            return cls(raw.strip().lower())
        except ValueError:
            raise ValueError(f"Invalid symlink resolution: {raw}") from None


class FileStatus(str, Enum):
    """Result of comparing a tracked file against the live filesystem."""

    SYNCED = "synced"
    MISSING = "missing"
    MISSING_REPO = "missing_repo"
    NOT_SYMLINK = "not_symlink"
    WRONG_TARGET = "wrong_target"
    BROKEN_SYMLINK = "broken_symlink"
    CONTENT_DIFFERS = "content_differs"


class SyncAction(str, Enum):
    """What the planner decided to do with a tracked file."""

    DO_NOTHING = "do_nothing"
    CREATE_SYMLINK = "create_symlink"
    UPDATE_REPO_FROM_DEST = "update_repo_from_dest"
    RESOLVE_CONFLICT = "resolve_conflict"
    SKIP = "skip"


class ConflictChoice(str, Enum):
    """Answers the conflict oracle can give."""

    REPLACE = "replace"
    SKIP = "skip"
    INSPECT = "inspect"
    CANCEL = "cancel"


@dataclass(frozen=True, slots=True)
class TrackedFile:
    """One declared repository path mapped onto a home-directory destination."""

    tool: str
    repo_path: Path
    dest_path: Path
    profile: str | None = None


# ----------------------------------------------------------------------
# Transaction operations


@dataclass(frozen=True, slots=True)
class CreateSymlink:
    source: Path
    target: Path
    resolution: SymlinkResolution = SymlinkResolution.AUTO


@dataclass(frozen=True, slots=True)
class RemoveSymlink:
    target: Path


@dataclass(frozen=True, slots=True)
class BackupAndReplace:
    source: Path
    target: Path
    backup_path: Path
    resolution: SymlinkResolution = SymlinkResolution.AUTO


FileOperation = Union[CreateSymlink, RemoveSymlink, BackupAndReplace]


@dataclass(frozen=True, slots=True)
class OperationResult:
    """Outcome of executing one operation during commit."""

    operation: FileOperation
    success: bool
    error: str | None = None


class TransactionState(str, Enum):
    STARTED = "started"
    PREPARED = "prepared"
    COMMITTED = "committed"
    VERIFIED = "verified"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True, slots=True)
class RemoveCreated:
    """Undo step: the target did not exist before the transaction."""

    target: Path


@dataclass(frozen=True, slots=True)
class RestoreLink:
    """Undo step: the target was a symlink with ``link_text`` as its content."""

    target: Path
    link_text: str


@dataclass(frozen=True, slots=True)
class RestoreCopy:
    """Undo step: the target was a real entry preserved at ``copy_path``."""

    target: Path
    copy_path: Path
    mode: int | None = None


UndoAction = Union[RemoveCreated, RestoreLink, RestoreCopy]


@dataclass(frozen=True, slots=True)
class ApplyOutcome:
    """Result of running a batch of operations through a transaction."""

    transaction_id: str
    results: tuple[OperationResult, ...]
    state: TransactionState
    dry_run: bool = False
    planned: tuple[PlannedOperation, ...] = ()


# ----------------------------------------------------------------------
# Dry-run log


class OperationKind(str, Enum):
    CREATE_DIRECTORY = "create_directory"
    COPY = "copy"
    SYMLINK = "symlink"
    RENAME = "rename"
    REMOVE = "remove"
    CHMOD = "chmod"


@dataclass(frozen=True, slots=True)
class PlannedOperation:
    """A mutating call recorded instead of executed in dry-run mode."""

    kind: OperationKind
    path: Path
    destination: Path | str | None = None

    def describe(self) -> str:
        if self.destination is None:
            return f"{self.kind.value} {self.path}"
        return f"{self.kind.value} {self.path} -> {self.destination}"


# ----------------------------------------------------------------------
# Reports


@dataclass(frozen=True, slots=True)
class BackupInfo:
    """One timestamped backup root and the files it contains."""

    path: Path
    timestamp: datetime
    files: tuple[Path, ...]


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """Status information for a tracked file."""

    file: TrackedFile
    status: FileStatus
    details: str | None = None


@dataclass(frozen=True, slots=True)
class StatusReport:
    """Collection of status results for one inspection pass."""

    entries: tuple[StatusEntry, ...]

    @property
    def synced_count(self) -> int:
        return sum(1 for entry in self.entries if entry.status is FileStatus.SYNCED)

    @property
    def issue_count(self) -> int:
        return len(self.entries) - self.synced_count


@dataclass(frozen=True, slots=True)
class SyncLine:
    """Per-file line emitted by a sync run."""

    file: TrackedFile
    status: FileStatus
    action: SyncAction
    message: str


@dataclass(frozen=True, slots=True)
class SyncReport:
    """Summary of a reconciliation pass."""

    synced: int
    skipped: int
    lines: tuple[SyncLine, ...]
    transaction_id: str | None = None
    results: tuple[OperationResult, ...] = ()
    planned: tuple[PlannedOperation, ...] = ()
    dry_run: bool = False


@dataclass(frozen=True, slots=True)
class ChangeSet:
    """Paths changed under the repository root, as reported by the VCS."""

    added: frozenset[Path] = field(default_factory=frozenset)
    modified: frozenset[Path] = field(default_factory=frozenset)
    deleted: frozenset[Path] = field(default_factory=frozenset)

    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.deleted)

    def paths(self) -> list[Path]:
        return sorted(self.added | self.modified | self.deleted)


@dataclass(frozen=True, slots=True)
class BackupRun:
    """Destinations copied into one backup root; locked ones land in ``skipped``."""

    root: Path
    files: tuple[Path, ...]
    planned: tuple[PlannedOperation, ...] = ()
    skipped: tuple[Path, ...] = ()


@dataclass(frozen=True, slots=True)
class RestoreReport:
    backup: BackupInfo
    restored: tuple[Path, ...]
    planned: tuple[PlannedOperation, ...] = ()


@dataclass(frozen=True, slots=True)
class CleanupReport:
    removed: tuple[BackupInfo, ...]
    kept: int
    planned: tuple[PlannedOperation, ...] = ()


@dataclass(frozen=True, slots=True)
class RepoImport:
    """Backup files copied back onto their repository paths."""

    backup: BackupInfo
    copied: tuple[tuple[Path, Path], ...]
    unmatched: tuple[Path, ...]
    staged: bool = False
    planned: tuple[PlannedOperation, ...] = ()


class IssueKind(str, Enum):
    """Kinds of problem reported by configuration validation."""

    INVALID_CONFIG = "invalid_config"
    MISSING_REPO_FILE = "missing_repo_file"
    INVALID_SYMLINK = "invalid_symlink"
    ORPHANED_ENTRY = "orphaned_entry"
    MISSING_PROFILE_DIR = "missing_profile_dir"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    kind: IssueKind
    message: str
    path: Path | None = None
    tool: str | None = None


@dataclass(frozen=True, slots=True)
class ValidationReport:
    """Every problem found in one validation pass; empty means valid."""

    issues: tuple[ValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return not self.issues
