"""Configuration loader for DotVault."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from dotvault.core.models import ArchiveFormat, BackupOptions, RestoreOptions
from dotvault.core.pathutil import config_dir

log = logging.getLogger(__name__)

DEFAULTS: dict = {
    "backup": {
        "default_directory": "~/Backups",
        "compress": False,
        "compression_format": "zip",
        "preserve_permissions": True,
        "follow_symlinks": False,
        "skip_hidden_files": False,
        "exclude_patterns": ["*.log", "cache", ".cache"],
        "create_timestamp_folder": True,
    },
    "restore": {
        "preserve_permissions": True,
        "on_conflict": "overwrite",  # overwrite | skip | rename | ask
    },
    "logging": {
        "level": "info",
        "file": True,
    },
}


def config_path() -> Path:
    """Return the path to config.yaml."""
    return config_dir() / "config.yaml"


def load_config(path: Path | None = None) -> dict:
    """Load config.yaml and merge with defaults.

    Args:
        path: Explicit path to config.yaml. If None, uses default location.

    Returns:
        Merged configuration dict.
    """
    if path is None:
        path = config_path()

    user_config: dict = {}
    if path.exists():
        try:
            raw = path.read_text(encoding="utf-8")
            user_config = yaml.safe_load(raw) or {}
        except (OSError, yaml.YAMLError):
            log.warning("Failed to read config at %s, using defaults", path, exc_info=True)
        if not isinstance(user_config, dict):
            log.warning("Config at %s is not a mapping, using defaults", path)
            user_config = {}

    return _deep_merge(DEFAULTS, user_config)


def backup_options(config: dict) -> BackupOptions:
    """Build the immutable BackupOptions record from a merged config."""
    cfg = config.get("backup", {})
    return BackupOptions(
        compress=bool(cfg.get("compress", False)),
        archive_format=ArchiveFormat.parse(cfg.get("compression_format", "zip")),
        preserve_permissions=bool(cfg.get("preserve_permissions", True)),
        follow_symlinks=bool(cfg.get("follow_symlinks", False)),
        skip_hidden=bool(cfg.get("skip_hidden_files", False)),
        exclude_patterns=tuple(cfg.get("exclude_patterns") or ()),
        create_timestamp_subfolder=bool(cfg.get("create_timestamp_folder", True)),
    )


def restore_options(config: dict) -> RestoreOptions:
    cfg = config.get("restore", {})
    return RestoreOptions(preserve_permissions=bool(cfg.get("preserve_permissions", True)))


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base, returning a new dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
