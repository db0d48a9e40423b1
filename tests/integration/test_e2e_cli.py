from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from dotsync.cli import app
from dotsync.config import CONFIG_ENV_VAR

runner = CliRunner()


def test_cli_full_cycle(tmp_path: Path, fake_home: Path, monkeypatch) -> None:
    repo = tmp_path / "dotfiles"
    backups = tmp_path / "backups"
    config_path = tmp_path / "config" / "config.toml"
    monkeypatch.setenv(CONFIG_ENV_VAR, str(config_path))

    init_result = runner.invoke(
        app,
        ["init", "--config", str(config_path), "--repo", str(repo), "--backup-dir", str(backups)],
    )
    assert init_result.exit_code == 0

    (repo / "zsh").mkdir(parents=True)
    (repo / "zsh" / "zshrc").write_text("export EDITOR=vim\n")
    (fake_home / ".zshrc").write_text("export EDITOR=nano\n")

    dry_run = runner.invoke(app, ["sync", "--dry-run"])
    assert dry_run.exit_code == 0
    assert (fake_home / ".zshrc").read_text() == "export EDITOR=nano\n"

    sync_result = runner.invoke(app, ["sync", "--yes"])
    assert sync_result.exit_code == 0
    assert (fake_home / ".zshrc").is_symlink()
    assert (fake_home / ".zshrc").read_text() == "export EDITOR=vim\n"

    status_result = runner.invoke(app, ["status"])
    assert status_result.exit_code == 0
    assert "All tracked files are in sync" in status_result.stdout

    again = runner.invoke(app, ["sync"])
    assert again.exit_code == 0
    assert "Transaction" not in again.stdout

    saved = list(backups.glob("*/.zshrc"))
    assert [path.read_text() for path in saved] == ["export EDITOR=nano\n"]

    listed = runner.invoke(app, ["backup", "list"])
    assert listed.exit_code == 0

    restore_result = runner.invoke(app, ["backup", "restore", "latest", "--file", ".zshrc", "--yes"])
    assert restore_result.exit_code == 0
    assert not (fake_home / ".zshrc").is_symlink()
    assert (fake_home / ".zshrc").read_text() == "export EDITOR=nano\n"

    status_after = runner.invoke(app, ["status"])
    assert status_after.exit_code == 0
    assert "need attention" in status_after.stdout
