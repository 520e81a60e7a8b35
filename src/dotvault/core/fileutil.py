"""File system utilities: metadata-aware copies, modes, checksums."""

from __future__ import annotations

import hashlib
import logging
import os
import platform
import shutil
import stat
from pathlib import Path
from typing import BinaryIO

log = logging.getLogger(__name__)

BUFFER_SIZE = 64 * 1024
DEFAULT_FILE_MODE = 0o644

_IS_WINDOWS = platform.system() == "Windows"


def file_mode(path: Path, follow_symlinks: bool = True) -> int:
    """Permission bits of *path* (e.g. 0o600)."""
    return stat.S_IMODE(os.stat(path, follow_symlinks=follow_symlinks).st_mode)


def apply_mode(path: Path, mode: int | None) -> None:
    """Set permission bits when a non-zero mode is known; no-op on Windows."""
    if _IS_WINDOWS or not mode:
        return
    os.chmod(path, stat.S_IMODE(mode))


def copy_file(source: Path, target: Path, preserve: bool = True) -> int:
    """Copy *source* to *target*, replacing it. Returns bytes copied.

    With *preserve*, permission bits and timestamps follow the source;
    otherwise the target gets default permissions.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    if preserve:
        shutil.copy2(source, target)
    else:
        shutil.copyfile(source, target)
    return target.stat().st_size


def write_stream(stream: BinaryIO, target: Path) -> int:
    """Write a readable binary stream to *target*. Returns bytes written."""
    target.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    with open(target, "wb") as out:
        while True:
            chunk = stream.read(BUFFER_SIZE)
            if not chunk:
                break
            out.write(chunk)
            written += len(chunk)
    return written


def move_aside(path: Path, suffix: str = ".bak") -> Path:
    """Rename *path* to '<name><suffix>', replacing any earlier one."""
    renamed = path.with_name(path.name + suffix)
    path.replace(renamed)
    return renamed


def checksum(path: Path, algorithm: str = "md5") -> str:
    """Hex digest of a file's content."""
    digest = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(BUFFER_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def files_equal(a: Path, b: Path) -> bool:
    """Same size and same checksum."""
    if not a.is_file() or not b.is_file():
        return False
    if a.stat().st_size != b.stat().st_size:
        return False
    return checksum(a) == checksum(b)


def count_files(directory: Path) -> int:
    return sum(len(files) for _root, _dirs, files in os.walk(directory))
