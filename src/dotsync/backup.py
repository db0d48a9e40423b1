"""Timestamped backups of destination content."""

from __future__ import annotations

import logging
import stat
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable

from .errors import BackupError, FileLockedError
from .filesystem import FileSystem, canonical, is_locked, lexists, resolve_link
from .models import BackupInfo

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def home_relative(path: Path, home: Path) -> Path:
    """Return ``path`` relative to ``home``; foreign paths keep their parts minus the anchor."""

    try:
        return path.relative_to(home)
    except ValueError:
        return Path(*path.parts[1:]) if path.is_absolute() else path


def _live_file_mode(path: Path) -> int | None:
    """Mode of the regular file ``path`` currently shows, following symlinks."""

    try:
        info = path.stat()
    except OSError:
        return None
    return stat.S_IMODE(info.st_mode) if stat.S_ISREG(info.st_mode) else None

def preserve(
    path: Path,
    backup_path: Path,
    fs: FileSystem,
    *,
    guard_root: Path | None = None,
) -> Path | None:
    """Copy the content behind ``path`` to ``backup_path``.

    Symlinks are followed and the resolved content is copied. Returns ``None``
    when there is nothing to preserve (broken link) or when the content
    already lives inside ``guard_root``.
    """

    source = path
    if path.is_symlink():
        resolved = resolve_link(path)
        if resolved is None or not resolved.exists():
            logger.info("Skipping backup of broken symlink '%s'", path)
            return None
        source = resolved
    elif not path.exists():
        return None

    if guard_root is not None and canonical(source).is_relative_to(canonical(guard_root)):
        logger.info("Skipping backup of '%s': already inside backup tree '%s'", source, guard_root)
        return None

    if is_locked(path):
        raise FileLockedError(path)

    fs.create_dir_all(backup_path.parent)
    fs.copy(source, backup_path)
    fs.secure(backup_path)
    logger.info("Backed up '%s' -> '%s'", path, backup_path)
    return backup_path


def format_size(size: int) -> str:
    units = ("B", "KB", "MB", "GB")
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    if index == 0:
        return f"{int(value)} {units[0]}"
    return f"{value:.2f} {units[index]}"


class BackupStore:
    """Creates, lists, restores, and prunes backup roots under ``root``.

    Layout on disk is ``<root>/<YYYYMMDD_HHMMSS>/<path relative to $HOME>``.
    Listing and pruning parse the timestamp from the directory name and
    ignore anything that does not match.
    """

    def __init__(
        self,
        root: Path,
        *,
        fs: FileSystem | None = None,
        home: Path | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.root = root
        self.fs = fs or FileSystem()
        self.home = home or Path.home()
        self._clock = clock or datetime.now
        self._run_root: Path | None = None

    @property
    def run_root(self) -> Path:
        """Backup root for this run; the timestamp is captured on first use."""

        if self._run_root is None:
            self._run_root = self.root / self._clock().strftime(TIMESTAMP_FORMAT)
        return self._run_root

    def location_for(self, path: Path, destination_root: Path | None = None) -> Path:
        return (destination_root or self.run_root) / home_relative(path, self.home)

    def backup(self, path: Path, destination_root: Path | None = None) -> Path | None:
        return preserve(path, self.location_for(path, destination_root), self.fs, guard_root=self.root)

    def list(self) -> list[BackupInfo]:
        if not self.root.is_dir():
            return []

        backups: list[BackupInfo] = []
        for child in self.root.iterdir():
            if not child.is_dir() or child.is_symlink():
                continue
            try:
                timestamp = datetime.strptime(child.name, TIMESTAMP_FORMAT)
            except ValueError:
                continue
            files = tuple(sorted(entry for entry in child.rglob("*") if entry.is_file() or entry.is_symlink()))
            backups.append(BackupInfo(path=child, timestamp=timestamp, files=files))

        backups.sort(key=lambda info: info.timestamp, reverse=True)
        return backups

    def select(self, selector: str) -> BackupInfo:
        """Pick a backup by ``"latest"`` or its 1-based position in :meth:`list`."""

        backups = self.list()
        if not backups:
            raise BackupError(f"No backups found in '{self.root}'")
        if selector == "latest":
            return backups[0]
        try:
            index = int(selector)
        except ValueError:
            raise BackupError("Invalid backup selector. Use 'latest', 'list', or a number") from None
        if index < 1 or index > len(backups):
            raise BackupError(f"Backup index out of range (1-{len(backups)})")
        return backups[index - 1]

    def entry_for(self, backup: BackupInfo, target: Path) -> Path:
        """Locate the file inside ``backup`` that corresponds to ``target``."""

        candidate = backup.path / home_relative(target, self.home)
        if lexists(candidate):
            return candidate
        if not target.is_relative_to(self.home):
            for entry in backup.files:
                if entry.name == target.name:
                    return entry
        raise BackupError(f"File not found in backup {backup.path.name}: {target}")

    def restore(self, backup: BackupInfo, target: Path, entry: Path | None = None) -> Path:
        source = entry or self.entry_for(backup, target)
        if not lexists(source):
            raise BackupError(f"Backup file does not exist: {source}")

        mode = _live_file_mode(target) if not source.is_dir() else None
        self.fs.create_dir_all(target.parent)
        self.fs.remove_path(target)
        self.fs.copy(source, target)
        if mode is not None:
            self.fs.chmod(target, mode)
        logger.info("Restored '%s' from '%s'", target, source)
        return source

    def restore_all(self, backup: BackupInfo) -> list[Path]:
        restored: list[Path] = []
        for entry in backup.files:
            target = self.home / entry.relative_to(backup.path)
            self.restore(backup, target, entry)
            restored.append(target)
        return restored

    def expired(self, keep_count: int = 10, keep_days: int = 7, *, now: datetime | None = None) -> list[BackupInfo]:
        """Backups that are both beyond the newest ``keep_count`` and older than ``keep_days``."""

        cutoff = (now or self._clock()) - timedelta(days=keep_days)
        return [
            backup
            for index, backup in enumerate(self.list())
            if index >= keep_count and backup.timestamp <= cutoff
        ]

    def cleanup(self, keep_count: int = 10, keep_days: int = 7, *, now: datetime | None = None) -> list[BackupInfo]:
        doomed = self.expired(keep_count, keep_days, now=now)
        for backup in doomed:
            logger.info("Deleting backup '%s'", backup.path)
            self.fs.remove_path(backup.path)
        return doomed

    @staticmethod
    def size_of(backup: BackupInfo) -> int:
        return sum(entry.lstat().st_size for entry in backup.files if lexists(entry))
