from __future__ import annotations

import os
from pathlib import Path

import pytest

from dotsync.errors import (
    PreconditionError,
    TransactionCommitError,
    TransactionIntegrityError,
    TransactionStateError,
    TransactionValidationError,
)
from dotsync.filesystem import FileSystem, symlink_points_to
from dotsync.models import (
    BackupAndReplace,
    CreateSymlink,
    RemoveSymlink,
    SymlinkResolution,
    TransactionState,
)
from dotsync.transaction import Transaction, apply_operations, generate_transaction_id


@pytest.fixture
def layout(tmp_path: Path) -> dict[str, Path]:
    repo = tmp_path / "repo"
    home = tmp_path / "home"
    repo.mkdir()
    home.mkdir()
    (repo / "a").write_text("alpha\n")
    (repo / "b").write_text("beta\n")
    return {"repo": repo, "home": home, "backups": tmp_path / "backups", "staging": tmp_path / "staging"}


def _failing_operation(tmp_path: Path, source: Path) -> CreateSymlink:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory\n")
    return CreateSymlink(source=source, target=blocker / "child")


def test_transaction_ids_are_unique() -> None:
    first = generate_transaction_id()
    second = generate_transaction_id()

    assert first.startswith("tx-")
    assert first != second


def test_full_lifecycle(layout: dict[str, Path]) -> None:
    target = layout["home"] / ".a"
    transaction = Transaction.begin(layout["staging"])
    transaction.add_operation(CreateSymlink(source=layout["repo"] / "a", target=target))

    transaction.validate()
    assert transaction.state is TransactionState.PREPARED
    transaction.prepare()
    transaction.commit(FileSystem())
    assert transaction.state is TransactionState.COMMITTED
    transaction.verify()
    assert transaction.state is TransactionState.VERIFIED

    assert symlink_points_to(target, layout["repo"] / "a")
    transaction.cleanup()
    assert not transaction.staging_dir.exists()


def test_illegal_transitions_raise(layout: dict[str, Path]) -> None:
    transaction = Transaction.begin(layout["staging"])

    with pytest.raises(TransactionStateError):
        transaction.commit(FileSystem())
    with pytest.raises(TransactionStateError):
        transaction.verify()

    transaction.validate()
    with pytest.raises(TransactionStateError):
        transaction.add_operation(CreateSymlink(source=layout["repo"] / "a", target=layout["home"] / ".a"))
    with pytest.raises(TransactionStateError):
        transaction.validate()
    transaction.cleanup()


def test_validation_rejects_missing_source(layout: dict[str, Path]) -> None:
    transaction = Transaction.begin(layout["staging"])
    transaction.add_operation(CreateSymlink(source=layout["repo"] / "missing", target=layout["home"] / ".x"))

    with pytest.raises(TransactionValidationError) as excinfo:
        transaction.validate()

    assert isinstance(excinfo.value, PreconditionError)
    assert excinfo.value.transaction_id == transaction.id
    assert transaction.state is TransactionState.STARTED
    transaction.cleanup()


def test_commit_failure_rolls_back_earlier_operations(tmp_path: Path, layout: dict[str, Path]) -> None:
    created = layout["home"] / ".a"
    operations = [
        CreateSymlink(source=layout["repo"] / "a", target=created),
        _failing_operation(tmp_path, layout["repo"] / "b"),
        CreateSymlink(source=layout["repo"] / "b", target=layout["home"] / ".b"),
    ]

    with pytest.raises(TransactionCommitError):
        apply_operations(operations, FileSystem(), staging_root=layout["staging"])

    assert not created.is_symlink()
    assert not (layout["home"] / ".b").exists()


def test_commit_stops_at_first_failure(tmp_path: Path, layout: dict[str, Path]) -> None:
    transaction = Transaction.begin(layout["staging"])
    transaction.add_operation(CreateSymlink(source=layout["repo"] / "a", target=layout["home"] / ".a"))
    transaction.add_operation(_failing_operation(tmp_path, layout["repo"] / "b"))
    transaction.add_operation(CreateSymlink(source=layout["repo"] / "b", target=layout["home"] / ".b"))
    transaction.validate()

    with pytest.raises(TransactionCommitError):
        transaction.commit(FileSystem())

    assert [result.success for result in transaction.results] == [True, False]
    assert transaction.results[1].error
    assert transaction.state is TransactionState.ROLLED_BACK
    transaction.cleanup()


def test_rollback_restores_replaced_file(tmp_path: Path, layout: dict[str, Path]) -> None:
    target = layout["home"] / ".a"
    target.write_text("local\n")
    target.chmod(0o640)
    backup_path = layout["backups"] / "20240101_000000" / ".a"
    operations = [
        BackupAndReplace(source=layout["repo"] / "a", target=target, backup_path=backup_path),
        _failing_operation(tmp_path, layout["repo"] / "b"),
    ]

    with pytest.raises(TransactionCommitError):
        apply_operations(operations, FileSystem(), backup_root=layout["backups"], staging_root=layout["staging"])

    assert not target.is_symlink()
    assert target.read_text() == "local\n"
    assert target.stat().st_mode & 0o777 == 0o640
    assert backup_path.read_text() == "local\n"


def test_rollback_restores_replaced_directory_modes(tmp_path: Path, layout: dict[str, Path]) -> None:
    (layout["repo"] / "nvim").mkdir()
    (layout["repo"] / "nvim" / "init.lua").write_text("-- repo\n")
    target = layout["home"] / "nvim"
    target.mkdir()
    script = target / "run.sh"
    script.write_text("#!/bin/sh\n")
    script.chmod(0o755)
    target.chmod(0o755)
    backup_path = layout["backups"] / "20240101_000000" / "nvim"
    operations = [
        BackupAndReplace(source=layout["repo"] / "nvim", target=target, backup_path=backup_path),
        _failing_operation(tmp_path, layout["repo"] / "b"),
    ]

    with pytest.raises(TransactionCommitError):
        apply_operations(operations, FileSystem(), backup_root=layout["backups"], staging_root=layout["staging"])

    assert not target.is_symlink()
    assert target.is_dir()
    assert script.read_text() == "#!/bin/sh\n"
    assert script.stat().st_mode & 0o777 == 0o755
    assert target.stat().st_mode & 0o777 == 0o755
    assert (backup_path / "run.sh").stat().st_mode & 0o777 == 0o600


def test_rollback_recreates_removed_symlink(tmp_path: Path, layout: dict[str, Path]) -> None:
    link = layout["home"] / ".a"
    link.symlink_to(layout["repo"] / "a")
    operations = [RemoveSymlink(target=link), _failing_operation(tmp_path, layout["repo"] / "b")]

    with pytest.raises(TransactionCommitError):
        apply_operations(operations, FileSystem(), staging_root=layout["staging"])

    assert link.is_symlink()
    assert os.readlink(link) == str(layout["repo"] / "a")


def test_rollback_restores_wrong_target_symlink(tmp_path: Path, layout: dict[str, Path]) -> None:
    link = layout["home"] / ".a"
    link.symlink_to(layout["repo"] / "b")
    operations = [
        CreateSymlink(source=layout["repo"] / "a", target=link),
        _failing_operation(tmp_path, layout["repo"] / "b"),
    ]

    with pytest.raises(TransactionCommitError):
        apply_operations(operations, FileSystem(), staging_root=layout["staging"])

    assert os.readlink(link) == str(layout["repo"] / "b")


def test_rollback_is_idempotent(layout: dict[str, Path]) -> None:
    target = layout["home"] / ".a"
    transaction = Transaction.begin(layout["staging"])
    transaction.add_operation(CreateSymlink(source=layout["repo"] / "a", target=target))
    transaction.validate()
    transaction.commit(FileSystem())

    transaction.rollback(FileSystem())
    transaction.rollback(FileSystem())

    assert transaction.state is TransactionState.ROLLED_BACK
    assert not target.is_symlink()
    transaction.cleanup()


def test_backup_and_replace_keeps_backup(layout: dict[str, Path]) -> None:
    target = layout["home"] / ".c"
    target.write_text("local\n")
    backup_path = layout["backups"] / "20240101_000000" / ".c"

    outcome = apply_operations(
        [BackupAndReplace(source=layout["repo"] / "a", target=target, backup_path=backup_path)],
        FileSystem(),
        backup_root=layout["backups"],
        staging_root=layout["staging"],
    )

    assert outcome.state is TransactionState.VERIFIED
    assert symlink_points_to(target, layout["repo"] / "a")
    assert backup_path.read_text() == "local\n"
    assert backup_path.stat().st_mode & 0o777 == 0o600


def test_verify_detects_missing_target(layout: dict[str, Path]) -> None:
    target = layout["home"] / ".a"
    transaction = Transaction.begin(layout["staging"])
    transaction.add_operation(CreateSymlink(source=layout["repo"] / "a", target=target))
    transaction.validate()
    transaction.commit(FileSystem())
    target.unlink()

    with pytest.raises(TransactionIntegrityError):
        transaction.verify()
    transaction.cleanup()


def test_verify_allows_remove_then_recreate(layout: dict[str, Path]) -> None:
    link = layout["home"] / ".a"
    link.symlink_to(layout["repo"] / "b")

    outcome = apply_operations(
        [RemoveSymlink(target=link), CreateSymlink(source=layout["repo"] / "a", target=link)],
        FileSystem(),
        staging_root=layout["staging"],
    )

    assert outcome.state is TransactionState.VERIFIED
    assert symlink_points_to(link, layout["repo"] / "a")


def test_dry_run_leaves_disk_untouched(layout: dict[str, Path]) -> None:
    target = layout["home"] / ".a"
    target.write_text("local\n")
    fs = FileSystem(dry_run=True)

    outcome = apply_operations(
        [
            BackupAndReplace(
                source=layout["repo"] / "a",
                target=target,
                backup_path=layout["backups"] / "run" / ".a",
                resolution=SymlinkResolution.ABSOLUTE,
            )
        ],
        fs,
        backup_root=layout["backups"],
        staging_root=layout["staging"],
    )

    assert outcome.dry_run
    assert outcome.state is TransactionState.COMMITTED
    assert outcome.planned
    assert target.read_text() == "local\n"
    assert not layout["backups"].exists()
