"""Version-control collaborator used after a sync."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Iterable, Protocol

from .errors import VcsError
from .models import ChangeSet

logger = logging.getLogger(__name__)


class VersionControl(Protocol):
    """What the engine needs from the repository's version control."""

    def changes(self) -> ChangeSet: ...

    def stage(self, paths: Iterable[Path]) -> None: ...


def parse_porcelain(output: str, root: Path) -> ChangeSet:
    """Parse ``git status --porcelain -z`` output into a :class:`ChangeSet`."""

    added: set[Path] = set()
    modified: set[Path] = set()
    deleted: set[Path] = set()

    records = iter(output.split("\0"))
    for record in records:
        if len(record) < 4:
            continue
        code, name = record[:2], record[3:]
        path = root / name
        if "R" in code or "C" in code:
            # renames carry the original path as the next record
            next(records, None)
            added.add(path)
        elif code == "??" or "A" in code:
            added.add(path)
        elif "D" in code:
            deleted.add(path)
        else:
            modified.add(path)

    return ChangeSet(added=frozenset(added), modified=frozenset(modified), deleted=frozenset(deleted))


class GitRepository:
    """:class:`VersionControl` backed by the ``git`` executable."""

    def __init__(self, root: Path, *, executable: str = "git") -> None:
        self.root = root
        self.executable = executable

    def _run(self, *args: str) -> str:
        command = [self.executable, "-C", str(self.root), *args]
        logger.debug("Running %s", " ".join(command))
        try:
            completed = subprocess.run(command, check=True, capture_output=True, text=True)
        except FileNotFoundError as exc:
            raise VcsError(f"'{self.executable}' is not installed") from exc
        except subprocess.CalledProcessError as exc:
            raise VcsError(f"git {' '.join(args)} failed: {exc.stderr.strip()}") from exc
        return completed.stdout

    def changes(self) -> ChangeSet:
        return parse_porcelain(self._run("status", "--porcelain", "-z", "--untracked-files=all"), self.root)

    def stage(self, paths: Iterable[Path]) -> None:
        relative = [str(path.relative_to(self.root)) if path.is_absolute() else str(path) for path in paths]
        if not relative:
            return
        self._run("add", "-A", "--", *relative)
