"""Filesystem helpers and the mutation gateway for dotsync."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from .models import EntryType, OperationKind, PlannedOperation, SymlinkResolution

if os.name == "posix":
    import fcntl
else:  # pragma: no cover - exercised on Windows only
    fcntl = None

logger = logging.getLogger(__name__)

TEMP_LINK_SUFFIX = ".dotsync-tmp"
TEMP_COPY_SUFFIX = ".dotsync-copy"
_CHUNK_SIZE = 1024 * 1024


class FileSystem:
    """Single choke point for every mutating filesystem call.

    With ``dry_run`` enabled each call is appended to :attr:`log` in order and
    nothing on disk changes. Callers share one decision path for both modes.
    """

    def __init__(self, *, dry_run: bool = False) -> None:
        self.dry_run = dry_run
        self.log: list[PlannedOperation] = []

    def _record(self, kind: OperationKind, path: Path, destination: Path | str | None = None) -> bool:
        """Record the call; return ``True`` when the caller should skip the real effect."""

        if self.dry_run:
            self.log.append(PlannedOperation(kind=kind, path=path, destination=destination))
            return True
        logger.debug("%s %s%s", kind.value, path, f" -> {destination}" if destination is not None else "")
        return False

    def create_dir_all(self, path: Path) -> None:
        if path.is_dir():
            return
        if self._record(OperationKind.CREATE_DIRECTORY, path):
            return
        path.mkdir(parents=True, exist_ok=True)

    def copy(self, source: Path, destination: Path) -> EntryType:
        """Copy ``source`` to ``destination``; trees keep their inner symlinks."""

        entry_type = EntryType.DIRECTORY if source.is_dir() else EntryType.FILE
        if self._record(OperationKind.COPY, source, destination):
            return entry_type
        if entry_type is EntryType.DIRECTORY:
            shutil.copytree(source, destination, symlinks=True, copy_function=shutil.copy2, dirs_exist_ok=True)
        else:
            shutil.copy2(source, destination)
        return entry_type

    def symlink(self, link_target: Path | str, path: Path) -> None:
        if self._record(OperationKind.SYMLINK, path, str(link_target)):
            return
        os.symlink(link_target, path)

    def rename(self, source: Path, destination: Path) -> None:
        if self._record(OperationKind.RENAME, source, destination):
            return
        os.replace(source, destination)

    def remove_path(self, path: Path) -> None:
        """Delete ``path`` whether it is a file, directory, or symlink."""

        if not path.exists() and not path.is_symlink():
            return
        if self._record(OperationKind.REMOVE, path):
            return
        if path.is_symlink() or not path.is_dir():
            path.unlink()
            return
        shutil.rmtree(path)

    def chmod(self, path: Path, mode: int) -> None:
        if self._record(OperationKind.CHMOD, path, oct(mode)):
            return
        os.chmod(path, mode)

    def secure(self, path: Path) -> None:
        """Force owner-only permissions on ``path`` and everything below it."""

        if not path.is_dir() or path.is_symlink():
            self.chmod(path, 0o600)
            return
        self.chmod(path, 0o700)
        for dirpath, dirnames, filenames in os.walk(path):
            base = Path(dirpath)
            for name in dirnames:
                child = base / name
                if not child.is_symlink():
                    self.chmod(child, 0o700)
            for name in filenames:
                child = base / name
                if not child.is_symlink():
                    self.chmod(child, 0o600)


def detect_entry_type(path: Path) -> EntryType:
    """Determine the ``EntryType`` for ``path``."""

    if path.is_symlink():
        return EntryType.SYMLINK
    if path.is_dir():
        return EntryType.DIRECTORY
    return EntryType.FILE


def lexists(path: Path) -> bool:
    return path.exists() or path.is_symlink()


def read_link(path: Path) -> str | None:
    """Return the raw link text of ``path`` or ``None`` when it cannot be read."""

    try:
        return os.readlink(path)
    except OSError:
        return None


def resolve_link(path: Path) -> Path | None:
    """Return the absolute path a symlink points at, without following further."""

    text = read_link(path)
    if text is None:
        return None
    target = Path(text)
    if not target.is_absolute():
        target = path.parent / target
    return target


def canonical(path: Path) -> Path:
    return Path(os.path.realpath(path))


def symlink_points_to(source: Path, target: Path) -> bool:
    """Return ``True`` if ``source`` symlink resolves to ``target``."""

    if not source.is_symlink():
        return False
    resolved = resolve_link(source)
    if resolved is None:
        return False
    return canonical(resolved) == canonical(target)


def files_differ(first: Path, second: Path) -> bool:
    """Compare whole files byte for byte.

    Directories are only compared by whether both sides are directories.
    """

    if not first.exists() or not second.exists():
        return True
    if first.is_dir() or second.is_dir():
        return first.is_dir() != second.is_dir()
    if first.stat().st_size != second.stat().st_size:
        return True

    with first.open("rb") as left, second.open("rb") as right:
        for chunk in iter(lambda: left.read(_CHUNK_SIZE), b""):
            if chunk != right.read(len(chunk)):
                return True
        return right.read(1) != b""


def link_target_for(source: Path, target: Path, resolution: SymlinkResolution) -> Path:
    """Compute the text stored in a symlink at ``target`` that points at ``source``."""

    if resolution is SymlinkResolution.ABSOLUTE:
        return source
    try:
        return Path(os.path.relpath(source, start=target.parent))
    except ValueError:
        return source


def temp_sibling(target: Path, suffix: str) -> Path:
    return target.with_name(f".{target.name}{suffix}")


def install_symlink(source: Path, target: Path, resolution: SymlinkResolution, fs: FileSystem) -> None:
    """Atomically make ``target`` a symlink to (or a copy of) ``source``.

    The new entry is built at a hidden sibling path and renamed over the
    destination, so ``target`` is always either the old or the new state.
    """

    fs.create_dir_all(target.parent)

    if resolution is SymlinkResolution.REPLACE:
        staged = temp_sibling(target, TEMP_COPY_SUFFIX)
        fs.remove_path(staged)
        fs.copy(source, staged)
    else:
        staged = temp_sibling(target, TEMP_LINK_SUFFIX)
        fs.remove_path(staged)
        fs.symlink(link_target_for(source, target, resolution), staged)

    try:
        if target.is_dir() and not target.is_symlink():
            # os.replace cannot rename onto a non-empty directory
            fs.remove_path(target)
        fs.rename(staged, target)
    except OSError:
        fs.remove_path(staged)
        raise


def is_locked(path: Path) -> bool:
    """Probe for an exclusive advisory lock held on ``path`` by someone else."""

    if fcntl is None or not path.is_file():
        return False
    try:
        handle = path.open("rb")
    except OSError as exc:
        logger.warning("Could not open '%s' to check lock status: %s", path, exc)
        return True
    with handle:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return True
        except OSError as exc:
            logger.warning("Lock probe unsupported for '%s': %s", path, exc)
            return False
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    return False
