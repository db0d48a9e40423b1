"""Classify tracked files against the live filesystem."""

from __future__ import annotations

from typing import Iterable

from .filesystem import canonical, files_differ, resolve_link
from .models import FileStatus, StatusEntry, StatusReport, SymlinkResolution, TrackedFile


def classify(file: TrackedFile, resolution: SymlinkResolution = SymlinkResolution.AUTO) -> FileStatus:
    """Return the single status that currently holds for ``file``.

    Checks run in order and the first match wins. Nothing is cached and
    nothing on disk is touched.
    """

    repo = file.repo_path
    dest = file.dest_path

    if not repo.exists():
        return FileStatus.MISSING_REPO

    if not dest.exists() and not dest.is_symlink():
        return FileStatus.MISSING

    if dest.is_symlink():
        resolved = resolve_link(dest)
        if resolved is None or not resolved.exists():
            return FileStatus.BROKEN_SYMLINK
        if canonical(resolved) != canonical(repo):
            return FileStatus.WRONG_TARGET
        # the repo file is the content once the link resolves correctly
        return FileStatus.SYNCED

    if files_differ(repo, dest):
        return FileStatus.CONTENT_DIFFERS
    if resolution is SymlinkResolution.REPLACE:
        return FileStatus.SYNCED
    return FileStatus.NOT_SYMLINK


def describe(file: TrackedFile, status: FileStatus) -> str:
    if status is FileStatus.SYNCED:
        return f"{file.dest_path} is in sync"
    if status is FileStatus.MISSING:
        return f"{file.dest_path} does not exist"
    if status is FileStatus.MISSING_REPO:
        return f"Repository file {file.repo_path} is missing"
    if status is FileStatus.NOT_SYMLINK:
        return f"{file.dest_path} matches the repository but is not a symlink"
    if status is FileStatus.WRONG_TARGET:
        return f"{file.dest_path} points to {resolve_link(file.dest_path)}"
    if status is FileStatus.BROKEN_SYMLINK:
        return f"{file.dest_path} is a broken symlink"
    return f"{file.dest_path} differs from {file.repo_path}"


def inspect(file: TrackedFile, resolution: SymlinkResolution = SymlinkResolution.AUTO) -> StatusEntry:
    status = classify(file, resolution)
    details = None if status is FileStatus.SYNCED else describe(file, status)
    return StatusEntry(file=file, status=status, details=details)


def check_status(
    files: Iterable[TrackedFile],
    resolution: SymlinkResolution = SymlinkResolution.AUTO,
) -> StatusReport:
    return StatusReport(entries=tuple(inspect(file, resolution) for file in files))
