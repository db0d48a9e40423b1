"""TOML configuration loading for dotsync."""

from __future__ import annotations

import os
import re
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import DotsyncError
from .models import SymlinkResolution, TrackedFile

DEFAULT_CONFIG_FILENAME = "config.toml"
CONFIG_ENV_VAR = "DOTSYNC_CONFIG"
_PROFILE_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class ConfigError(DotsyncError):
    """Raised when a configuration file cannot be parsed or validated."""


def default_config_path() -> Path:
    return Path.home() / ".config" / "dotsync" / DEFAULT_CONFIG_FILENAME


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return expanded.resolve(strict=False)
    return (base_dir / expanded).resolve(strict=False)


def validate_profile_name(name: str) -> str:
    if not name or not _PROFILE_PATTERN.match(name):
        raise ConfigError(f"Invalid profile name '{name}': only alphanumeric, underscore, and hyphen allowed")
    return name


class GeneralConfig(BaseModel):
    """Global options from the ``[general]`` table."""

    model_config = ConfigDict(frozen=True)

    repo_path: Path
    backup_dir: Path
    current_profile: str = "default"
    symlink_resolution: SymlinkResolution = SymlinkResolution.AUTO

    @field_validator("symlink_resolution", mode="before")
    @classmethod
    def _parse_resolution(cls, value: Any) -> Any:
        if isinstance(value, str):
            return SymlinkResolution.parse(value)
        return value

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "GeneralConfig":
        repo_raw = raw.get("repo_path", "~/.dotfiles")
        backup_raw = raw.get("backup_dir", "~/.dotfiles-backup")
        for key, value in (("repo_path", repo_raw), ("backup_dir", backup_raw)):
            if not str(value).strip():
                raise ConfigError(f"{key} cannot be empty")

        profile = validate_profile_name(str(raw.get("current_profile", "default")))
        try:
            return cls(
                repo_path=_expand_path(repo_raw, base_dir=base_dir),
                backup_dir=_expand_path(backup_raw, base_dir=base_dir),
                current_profile=profile,
                symlink_resolution=raw.get("symlink_resolution", SymlinkResolution.AUTO),
            )
        except ValidationError as exc:
            raise ConfigError(f"Invalid [general] settings: {exc.errors()[0]['msg']}") from exc


class RetentionConfig(BaseModel):
    """Backup retention defaults from the ``[backup]`` table."""

    model_config = ConfigDict(frozen=True)

    keep_count: int = Field(default=10, ge=0)
    keep_days: int = Field(default=7, ge=0)


class FileEntry(BaseModel):
    """One ``{ repo, dest, profile }`` item under a tool."""

    model_config = ConfigDict(frozen=True)

    repo: str
    dest: str
    profile: str | None = None


class ToolConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    files: tuple[FileEntry, ...]

    @classmethod
    def from_raw(cls, name: str, raw: Mapping[str, Any]) -> "ToolConfig":
        files_raw = raw.get("files")
        if not files_raw:
            raise ConfigError(f"Tool '{name}' must define at least one file")
        try:
            files = tuple(FileEntry.model_validate(item) for item in files_raw)
        except ValidationError as exc:
            raise ConfigError(f"Tool '{name}' has an invalid file entry: {exc.errors()[0]['msg']}") from exc
        for entry in files:
            if entry.profile is not None:
                validate_profile_name(entry.profile)
        return cls(name=name, files=files)


class Config(BaseModel):
    """Fully parsed configuration file."""

    model_config = ConfigDict(frozen=True)

    config_path: Path
    general: GeneralConfig
    backup: RetentionConfig = Field(default_factory=RetentionConfig)
    tools: Dict[str, ToolConfig] = Field(default_factory=dict)

    @property
    def repo_path(self) -> Path:
        return self.general.repo_path

    @property
    def backup_dir(self) -> Path:
        return self.general.backup_dir

    @property
    def symlink_resolution(self) -> SymlinkResolution:
        return self.general.symlink_resolution

    def repo_file(self, tool: str, entry: FileEntry) -> Path:
        """Repository path of ``entry``; a leading ``<tool>/`` is not doubled."""

        if entry.repo.startswith(f"{tool}/"):
            return self.repo_path / entry.repo
        return self.repo_path / tool / entry.repo

    def tracked_files(self, profile: str | None = None) -> list[TrackedFile]:
        """Resolve the tracked files for ``profile`` (default: the current profile).

        Entries without a profile always apply. Entries for the active
        profile replace base entries that share their destination.
        """

        active = validate_profile_name(profile) if profile else self.general.current_profile
        home = Path.home()
        by_dest: dict[Path, TrackedFile] = {}

        for tool in self.tools.values():
            for entry in tool.files:
                if entry.profile is not None and entry.profile != active:
                    continue
                dest = Path(os.path.expandvars(entry.dest)).expanduser()
                if not dest.is_absolute():
                    dest = home / dest
                repo = self.repo_file(tool.name, entry)
                tracked = TrackedFile(tool=tool.name, repo_path=repo, dest_path=dest, profile=entry.profile)

                existing = by_dest.get(dest)
                if existing is not None and existing.profile is not None and entry.profile is None:
                    continue
                by_dest[dest] = tracked

        return list(by_dest.values())


def load_config(path: Path | None = None) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Optional path to the TOML file or its directory. Defaults to
            ``$DOTSYNC_CONFIG`` and then ``~/.config/dotsync/config.toml``.
    """

    config_path = _resolve_config_path(path)
    base_dir = config_path.parent

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"TOML parsing error in '{config_path}': {exc}") from exc

    general = GeneralConfig.from_raw(data.get("general") or {}, base_dir=base_dir)

    try:
        retention = RetentionConfig.model_validate(data.get("backup") or {})
    except ValidationError as exc:
        raise ConfigError(f"Invalid [backup] settings: {exc.errors()[0]['msg']}") from exc

    tools: Dict[str, ToolConfig] = {}
    for tool_name, tool_body in (data.get("tools") or {}).items():
        tools[tool_name] = ToolConfig.from_raw(tool_name, tool_body)

    return Config(config_path=config_path, general=general, backup=retention, tools=tools)


def _resolve_config_path(path: Path | None) -> Path:
    if path is None:
        env_value = os.environ.get(CONFIG_ENV_VAR)
        path = Path(env_value).expanduser() if env_value else default_config_path()
    else:
        path = Path(path).expanduser()

    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)


def render_default_config(*, repo_path: str = "~/.dotfiles", backup_dir: str = "~/.dotfiles-backup") -> str:
    data = {
        "general": {
            "repo_path": repo_path,
            "backup_dir": backup_dir,
            "current_profile": "default",
            "symlink_resolution": SymlinkResolution.AUTO.value,
        },
        "backup": {"keep_count": 10, "keep_days": 7},
        "tools": {
            "zsh": {"files": [{"repo": "zshrc", "dest": ".zshrc"}]},
        },
    }
    return "# dotsync configuration\n\n" + tomli_w.dumps(data)
