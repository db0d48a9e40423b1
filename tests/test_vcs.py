from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from dotsync.errors import VcsError
from dotsync.vcs import GitRepository, parse_porcelain


def test_parse_porcelain_classifies_entries(tmp_path: Path) -> None:
    output = "\0".join(
        [
            " M zsh/zshrc",
            "?? git/config",
            "A  nvim/init.lua",
            " D tmux/tmux.conf",
            "R  kitty/new.conf",
            "kitty/old.conf",
            "MM bash/bashrc",
            "",
        ]
    )

    changes = parse_porcelain(output, tmp_path)

    assert changes.added == frozenset(
        {tmp_path / "git/config", tmp_path / "nvim/init.lua", tmp_path / "kitty/new.conf"}
    )
    assert changes.modified == frozenset({tmp_path / "zsh/zshrc", tmp_path / "bash/bashrc"})
    assert changes.deleted == frozenset({tmp_path / "tmux/tmux.conf"})
    assert tmp_path / "kitty/old.conf" not in changes.paths()


def test_parse_porcelain_empty_output(tmp_path: Path) -> None:
    changes = parse_porcelain("", tmp_path)

    assert changes.is_empty()
    assert changes.paths() == []


def test_missing_executable_raises(tmp_path: Path) -> None:
    repo = GitRepository(tmp_path, executable="definitely-not-git-xyz")

    with pytest.raises(VcsError, match="not installed"):
        repo.changes()


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
def test_git_repository_reports_and_stages_changes(tmp_path: Path) -> None:
    subprocess.run(["git", "init", "-q", str(tmp_path)], check=True)
    (tmp_path / "zsh").mkdir()
    (tmp_path / "zsh" / "zshrc").write_text("export EDITOR=vim\n")
    repo = GitRepository(tmp_path)

    changes = repo.changes()
    assert changes.added == frozenset({tmp_path / "zsh" / "zshrc"})

    repo.stage(changes.paths())
    staged = subprocess.run(
        ["git", "-C", str(tmp_path), "diff", "--cached", "--name-only"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert staged.stdout.split() == ["zsh/zshrc"]


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
def test_git_failure_raises(tmp_path: Path) -> None:
    with pytest.raises(VcsError, match="failed"):
        GitRepository(tmp_path / "not-a-repo").changes()
