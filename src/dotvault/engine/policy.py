"""Inclusion policy for files found while expanding a backup selection.

Exclude patterns use simple filename/substring rules, not globs:

- ``*suffix``  matches filenames ending with ``suffix`` (``*.log``)
- ``name/``    matches when the parent directory path contains ``name``
- anything else matches the filename exactly (``cache``, ``.DS_Store``)

The first matching pattern wins.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from dotvault.core.models import BackupOptions
from dotvault.core.pathutil import is_hidden


class SkipReason(str, Enum):
    EXCLUDED = "excluded"
    HIDDEN = "hidden"
    SYMLINK = "symlink"


def should_skip(file_path: str | Path, options: BackupOptions) -> bool:
    """True if a regular file matches one of the exclude patterns."""
    path = Path(file_path)
    filename = path.name
    parent = str(path.parent)

    for pattern in options.exclude_patterns:
        if not pattern:
            continue
        if pattern.startswith("*"):
            if filename.endswith(pattern[1:]):
                return True
        elif pattern.endswith("/"):
            if pattern[:-1] in parent:
                return True
        elif filename == pattern:
            return True
    return False


class PathPolicy:
    """Decides, per path found below a selected entry, whether it is backed up."""

    def __init__(self, options: BackupOptions) -> None:
        self.options = options

    def should_skip(self, file_path: str | Path) -> bool:
        return should_skip(file_path, self.options)

    def check_link(self, path: Path) -> SkipReason | None:
        """Symlinks are dropped unless follow_symlinks is set."""
        if not self.options.follow_symlinks and path.is_symlink():
            return SkipReason.SYMLINK
        return None

    def check_directory(self, path: Path) -> SkipReason | None:
        """Directories below a selection: hidden ones are pruned when skip_hidden."""
        reason = self.check_link(path)
        if reason:
            return reason
        if self.options.skip_hidden and is_hidden(path):
            return SkipReason.HIDDEN
        return None

    def check_file(self, path: Path) -> SkipReason | None:
        """Files below a selection: link, hidden, then exclude patterns."""
        reason = self.check_directory(path)
        if reason:
            return reason
        if self.should_skip(path):
            return SkipReason.EXCLUDED
        return None
