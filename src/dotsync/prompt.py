"""Conflict resolution oracles."""

from __future__ import annotations

import difflib
from pathlib import Path
from typing import Protocol

from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.syntax import Syntax

from .models import ConflictChoice

_CHOICE_KEYS = {
    "replace": ConflictChoice.REPLACE,
    "skip": ConflictChoice.SKIP,
    "diff": ConflictChoice.INSPECT,
    "cancel": ConflictChoice.CANCEL,
}


class ConflictOracle(Protocol):
    """Decides what happens to a destination that conflicts with the repository."""

    def resolve(self, dest_path: Path) -> ConflictChoice: ...

    def show_diff(self, repo_path: Path, dest_path: Path) -> None: ...


class AutoOracle:
    """Always replaces; never prompts. Used for dry runs and ``--yes``."""

    def resolve(self, dest_path: Path) -> ConflictChoice:
        return ConflictChoice.REPLACE

    def show_diff(self, repo_path: Path, dest_path: Path) -> None:
        return None


def unified_diff(repo_path: Path, dest_path: Path) -> str | None:
    """Return a unified diff of two text files, or ``None`` if either is not text."""

    if repo_path.is_dir() or dest_path.is_dir():
        return None
    try:
        repo_lines = repo_path.read_text().splitlines(keepends=True)
        dest_lines = dest_path.read_text().splitlines(keepends=True)
    except (OSError, UnicodeDecodeError):
        return None
    return "".join(
        difflib.unified_diff(repo_lines, dest_lines, fromfile=str(repo_path), tofile=str(dest_path))
    )


class InteractiveOracle:
    """Asks a human on the console. Blocks until an answer is given."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def resolve(self, dest_path: Path) -> ConflictChoice:
        self.console.print(f"[yellow]Conflict detected at:[/yellow] {dest_path}")
        answer = Prompt.ask(
            "How would you like to proceed?",
            choices=list(_CHOICE_KEYS),
            default="replace",
            console=self.console,
        )
        return _CHOICE_KEYS[answer]

    def show_diff(self, repo_path: Path, dest_path: Path) -> None:
        diff = unified_diff(repo_path, dest_path)
        if diff is None:
            self.console.print("[yellow]Cannot show a text diff for these entries.[/yellow]")
        elif not diff:
            self.console.print("[green]No textual differences.[/green]")
        else:
            self.console.print(Syntax(diff, "diff", theme="ansi_dark"))


def confirm(question: str, *, console: Console | None = None, default: bool = True) -> bool:
    return Confirm.ask(question, console=console, default=default)
