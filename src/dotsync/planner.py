"""Turn a file status into a sync action."""

from __future__ import annotations

from .filesystem import resolve_link
from .models import FileStatus, SyncAction, TrackedFile

_STATUS_ACTIONS = {
    FileStatus.SYNCED: SyncAction.DO_NOTHING,
    FileStatus.MISSING: SyncAction.CREATE_SYMLINK,
    FileStatus.NOT_SYMLINK: SyncAction.CREATE_SYMLINK,
    FileStatus.WRONG_TARGET: SyncAction.RESOLVE_CONFLICT,
    FileStatus.BROKEN_SYMLINK: SyncAction.RESOLVE_CONFLICT,
    FileStatus.CONTENT_DIFFERS: SyncAction.RESOLVE_CONFLICT,
    FileStatus.MISSING_REPO: SyncAction.SKIP,
}


def repo_is_empty_but_dest_is_not(file: TrackedFile) -> bool:
    """True when an empty repo file would clobber real destination content."""

    repo = file.repo_path
    dest = file.dest_path
    if not repo.is_file() or repo.stat().st_size != 0:
        return False
    return dest.is_file() and dest.stat().st_size > 0


def plan(file: TrackedFile, status: FileStatus) -> SyncAction:
    if status is not FileStatus.MISSING_REPO and repo_is_empty_but_dest_is_not(file):
        return SyncAction.UPDATE_REPO_FROM_DEST
    return _STATUS_ACTIONS[status]


def needs_backup(file: TrackedFile) -> bool:
    """Return ``True`` if the destination holds content worth preserving."""

    dest = file.dest_path
    if dest.is_symlink():
        target = resolve_link(dest)
        return target is not None and target.exists()
    return dest.exists()
