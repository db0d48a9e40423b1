"""Check a configuration against the repository and home directory."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import Config
from .filesystem import lexists, symlink_points_to
from .models import IssueKind, ValidationIssue, ValidationReport

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "default"


def validate_config(config: Config, profile: str | None = None) -> ValidationReport:
    """Report problems with ``config``; nothing on disk is changed.

    Checks, in order: the repository exists, every tracked repo file exists,
    destination symlinks point at their repo file, no repo file under a tool
    directory is left untracked, and the active profile has a directory.
    """

    repo = config.repo_path
    issues: list[ValidationIssue] = []

    if not repo.exists():
        issues.append(
            ValidationIssue(IssueKind.INVALID_CONFIG, f"Repository path does not exist: {repo}", path=repo)
        )

    for tracked in config.tracked_files(profile):
        if not tracked.repo_path.exists():
            issues.append(
                ValidationIssue(
                    IssueKind.MISSING_REPO_FILE,
                    f"Missing repo file: {tracked.repo_path}",
                    path=tracked.repo_path,
                    tool=tracked.tool,
                )
            )
            continue
        if tracked.dest_path.is_symlink() and not symlink_points_to(tracked.dest_path, tracked.repo_path):
            issues.append(
                ValidationIssue(
                    IssueKind.INVALID_SYMLINK,
                    f"Invalid symlink: {tracked.dest_path}",
                    path=tracked.dest_path,
                    tool=tracked.tool,
                )
            )

    if repo.is_dir():
        issues.extend(_orphaned_entries(config))

    active = profile or config.general.current_profile
    profile_dir = repo / "profiles" / active
    if active != DEFAULT_PROFILE and not profile_dir.is_dir():
        issues.append(
            ValidationIssue(IssueKind.MISSING_PROFILE_DIR, f"Missing profile directory: {active}", path=profile_dir)
        )

    logger.debug("Validation of '%s' found %d issue(s)", config.config_path, len(issues))
    return ValidationReport(issues=tuple(issues))


def _orphaned_entries(config: Config) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for tool in config.tools.values():
        tool_dir = config.repo_path / tool.name
        if not tool_dir.is_dir():
            continue
        # Entries of every profile count, so profile-only files are not orphans.
        tracked = [config.repo_file(tool.name, entry) for entry in tool.files]
        for path in sorted(tool_dir.rglob("*")):
            if path.is_dir() or not lexists(path):
                continue
            if any(_covers(owner, path) for owner in tracked):
                continue
            relative = path.relative_to(tool_dir)
            issues.append(
                ValidationIssue(
                    IssueKind.ORPHANED_ENTRY,
                    f"Orphaned file in {tool.name}: {relative}",
                    path=path,
                    tool=tool.name,
                )
            )
    return issues


def _covers(owner: Path, path: Path) -> bool:
    return path == owner or path.is_relative_to(owner)
