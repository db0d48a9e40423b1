"""Core package for the dotsync project."""

from .cli import app, run
from .config import Config, ConfigError, load_config
from .errors import DotsyncError, SyncCancelled
from .manager import DotsyncManager
from .models import (
    BackupInfo,
    FileStatus,
    StatusEntry,
    StatusReport,
    SymlinkResolution,
    SyncAction,
    SyncReport,
    TrackedFile,
    ValidationReport,
)

__all__ = [
    "Config",
    "ConfigError",
    "load_config",
    "DotsyncError",
    "SyncCancelled",
    "DotsyncManager",
    "BackupInfo",
    "FileStatus",
    "StatusEntry",
    "StatusReport",
    "SymlinkResolution",
    "SyncAction",
    "SyncReport",
    "TrackedFile",
    "ValidationReport",
    "app",
    "run",
]
