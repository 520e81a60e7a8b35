"""Turn raw paths into SelectedEntry records (existence, type, size)."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from dotvault.core.models import SelectedEntry
from dotvault.core.pathutil import contract_home, expand_home, get_home, path_size

log = logging.getLogger(__name__)


def scan_entry(path: str, home: Path | None = None) -> SelectedEntry:
    """Stat one path. Missing paths come back with exists=False."""
    home = home or get_home()
    full = expand_home(path, home)
    if not full.is_absolute():
        full = Path.cwd() / full
    entry = SelectedEntry(path=contract_home(full, home))
    try:
        entry.exists = full.exists() or full.is_symlink()
        if entry.exists:
            entry.is_directory = full.is_dir()
            entry.size_bytes = path_size(full)
    except OSError as e:
        log.debug("Could not get file info for %s: %s", full, e)
    return entry


def scan_paths(paths: Iterable[str], home: Path | None = None) -> list[SelectedEntry]:
    """Stat each path in order; duplicates are dropped."""
    home = home or get_home()
    seen: set[str] = set()
    entries: list[SelectedEntry] = []
    for raw in paths:
        entry = scan_entry(raw, home)
        if entry.path in seen:
            continue
        seen.add(entry.path)
        entries.append(entry)
    found = sum(1 for e in entries if e.exists)
    log.info("Scan complete: %d of %d entries exist", found, len(entries))
    return entries
