"""Path helpers: home expansion, home-relative names, sizes, glob matching."""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime
from pathlib import Path, PurePosixPath

log = logging.getLogger(__name__)

HOME_MARKER = "~"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def get_home() -> Path:
    """Home directory used for home-relative naming.

    DOTVAULT_HOME overrides the real home (used by tests and sandboxes).
    """
    env_home = os.environ.get("DOTVAULT_HOME")
    return Path(env_home).expanduser() if env_home else Path.home()


def config_dir() -> Path:
    return Path.home() / ".config" / "dotvault"


def cache_dir() -> Path:
    return Path.home() / ".cache" / "dotvault"


def log_dir() -> Path:
    return cache_dir() / "logs"


def expand_home(path: str, home: Path | None = None) -> Path:
    """Expand a leading '~' against *home* (not the process HOME)."""
    home = home or get_home()
    if path == HOME_MARKER:
        return home
    if path.startswith(HOME_MARKER + "/") or path.startswith(HOME_MARKER + os.sep):
        return home / path[2:]
    return Path(path)


def contract_home(path: str | Path, home: Path | None = None) -> str:
    """Inverse of expand_home: '/home/u/.bashrc' -> '~/.bashrc'."""
    home = home or get_home()
    p = Path(path)
    try:
        rel = p.relative_to(home)
    except ValueError:
        return str(path)
    return HOME_MARKER if rel == Path(".") else f"{HOME_MARKER}/{rel.as_posix()}"


def is_inside_home(path: str | Path, home: Path | None = None) -> bool:
    home = home or get_home()
    p = expand_home(str(path), home)
    try:
        Path(os.path.normpath(p)).relative_to(os.path.normpath(home))
    except ValueError:
        return False
    return True


def relative_to_home(path: str | Path, home: Path | None = None) -> str:
    """Archive entry name for *path*: POSIX path below home.

    Raises ValueError when *path* is not below home.
    """
    home = home or get_home()
    p = Path(os.path.normpath(expand_home(str(path), home)))
    rel = p.relative_to(os.path.normpath(home))
    if rel == Path("."):
        raise ValueError(f"{path} is the home directory itself")
    return PurePosixPath(*rel.parts).as_posix()


def is_hidden(path: str | Path) -> bool:
    name = Path(path).name
    return name.startswith(".") and len(name) > 1


def directory_size(directory: Path) -> int:
    """Sum of regular file sizes below *directory*; unreadable files count 0."""
    total = 0
    for root, _dirs, files in os.walk(directory):
        for fname in files:
            fpath = os.path.join(root, fname)
            try:
                if os.path.isfile(fpath):
                    total += os.path.getsize(fpath)
            except OSError:
                log.debug("Could not stat %s", fpath)
    return total


def path_size(path: Path) -> int:
    """Size of a file, or recursive size of a directory; 0 when missing."""
    try:
        if path.is_dir():
            return directory_size(path)
        return path.stat().st_size
    except OSError:
        return 0


def timestamped_name(prefix: str, when: datetime | None = None) -> str:
    """'backup' -> 'backup_20240131_235959'."""
    when = when or datetime.now()
    return f"{prefix}_{when.strftime(TIMESTAMP_FORMAT)}"


def format_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes} B"
    size = float(num_bytes)
    for unit in ("KB", "MB"):
        size /= 1024
        if size < 1024:
            return f"{size:.1f} {unit}"
    return f"{size / 1024:.1f} GB"


def glob_to_regex(glob: str) -> str:
    """Translate a filename glob ('*', '?') into an anchored regex.

    Used for listing filters only; backup exclusion uses
    dotvault.engine.policy.should_skip, which has different semantics.
    """
    if not glob:
        return ".*"
    out = ["^"]
    for ch in glob:
        if ch == "*":
            out.append(".*")
        elif ch == "?":
            out.append(".")
        else:
            out.append(re.escape(ch))
    out.append("$")
    return "".join(out)


def matches_glob(path: str | Path, pattern: str) -> bool:
    """Match the filename of *path* against a glob pattern."""
    return re.match(glob_to_regex(pattern), Path(path).name) is not None
