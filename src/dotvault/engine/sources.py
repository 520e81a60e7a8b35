"""Restore sources: a backup directory tree, a zip archive, or a tar.gz archive.

Each source enumerates its files as SourceEntry records (home-relative POSIX
names) and knows how to write one entry to a target path. Archives are read
in a single pass; tar.gz is opened in stream mode, so ``extract`` must be
called for an entry before advancing to the next one.
"""

from __future__ import annotations

import logging
import os
import stat
import tarfile
import zipfile
import zlib
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Protocol, runtime_checkable

from dotvault.core.fileutil import apply_mode, copy_file, write_stream

log = logging.getLogger(__name__)

# Errors that mean "this archive is damaged", raised while enumerating.
ARCHIVE_ERRORS = (OSError, EOFError, zlib.error, zipfile.BadZipFile, tarfile.TarError)


class DotVaultError(Exception):
    """Base error for DotVault."""


class UnsupportedSourceError(DotVaultError):
    """Restore source is neither a directory nor a known archive type."""


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"
    OTHER = "other"  # links, devices: not restored


@dataclass
class SourceEntry:
    """One item in a restore source."""

    relative_path: str
    origin: str  # where the content comes from, reported in conflicts
    kind: EntryKind = EntryKind.FILE
    mode: int | None = None  # permission bits; None when not recorded
    size: int = 0
    handle: Any = None  # Path, ZipInfo or TarInfo


@runtime_checkable
class RestoreSource(Protocol):
    """Contract for something a restore can read from."""

    path: Path
    total_files: int  # 0 when unknown up front
    total_bytes: int

    def entries(self) -> Iterator[SourceEntry]:
        ...

    def extract(self, entry: SourceEntry, target: Path, preserve_permissions: bool) -> int:
        """Write *entry* to *target*. Returns bytes written; raises OSError."""
        ...

    def close(self) -> None:
        ...


class _CloseOnExit:
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class DirectorySource(_CloseOnExit):
    """A plain-copy backup tree."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._files = _walk_files(path)
        self.total_files = len(self._files)
        self.total_bytes = 0
        for f in self._files:
            try:
                self.total_bytes += f.stat().st_size
            except OSError:
                log.debug("Could not stat %s", f)

    def entries(self) -> Iterator[SourceEntry]:
        for f in self._files:
            rel = PurePosixPath(*f.relative_to(self.path).parts).as_posix()
            try:
                st = f.stat()
                mode, size = stat.S_IMODE(st.st_mode), st.st_size
            except OSError:
                mode, size = None, 0
            yield SourceEntry(relative_path=rel, origin=str(f), mode=mode, size=size, handle=f)

    def extract(self, entry: SourceEntry, target: Path, preserve_permissions: bool) -> int:
        return copy_file(entry.handle, target, preserve=preserve_permissions)

    def close(self) -> None:
        pass


class ZipSource(_CloseOnExit):
    """A zip archive; modes come from the unix bits of the external attributes."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._zip = zipfile.ZipFile(path)
        self._infos = self._zip.infolist()
        files = [i for i in self._infos if not i.is_dir()]
        self.total_files = len(files)
        self.total_bytes = sum(i.file_size for i in files)

    def entries(self) -> Iterator[SourceEntry]:
        for info in self._infos:
            unix_mode = info.external_attr >> 16
            if info.is_dir():
                kind = EntryKind.DIRECTORY
            elif stat.S_ISLNK(unix_mode):
                kind = EntryKind.OTHER
            else:
                kind = EntryKind.FILE
            yield SourceEntry(
                relative_path=info.filename.rstrip("/"),
                origin=str(self.path / info.filename),
                kind=kind,
                mode=stat.S_IMODE(unix_mode) or None,
                size=info.file_size,
                handle=info,
            )

    def extract(self, entry: SourceEntry, target: Path, preserve_permissions: bool) -> int:
        with self._zip.open(entry.handle) as stream:
            written = write_stream(stream, target)
        if preserve_permissions:
            apply_mode(target, entry.mode)
        return written

    def close(self) -> None:
        self._zip.close()


class TarGzSource(_CloseOnExit):
    """A gzip-compressed tar, read as a stream; file count is not known up front."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.total_files = 0
        self.total_bytes = 0
        self._tar = tarfile.open(path, "r|gz")

    def entries(self) -> Iterator[SourceEntry]:
        for member in self._tar:
            if member.isdir():
                kind = EntryKind.DIRECTORY
            elif member.isfile():
                kind = EntryKind.FILE
            else:
                kind = EntryKind.OTHER
            yield SourceEntry(
                relative_path=member.name.rstrip("/"),
                origin=str(self.path / member.name),
                kind=kind,
                mode=stat.S_IMODE(member.mode) or None,
                size=member.size,
                handle=member,
            )

    def extract(self, entry: SourceEntry, target: Path, preserve_permissions: bool) -> int:
        stream = self._tar.extractfile(entry.handle)
        if stream is None:
            raise OSError(f"No data for archive entry {entry.relative_path}")
        with stream:
            written = write_stream(stream, target)
        if preserve_permissions:
            apply_mode(target, entry.mode)
        return written

    def close(self) -> None:
        self._tar.close()


def source_kind(path: Path) -> str | None:
    """'directory', 'zip', 'tar.gz' or None, by type and file extension."""
    if path.is_dir():
        return "directory"
    name = path.name.lower()
    if name.endswith(".zip"):
        return "zip"
    if name.endswith(".tar.gz") or name.endswith(".tgz"):
        return "tar.gz"
    return None


def open_source(path: Path) -> RestoreSource:
    """Open a restore source.

    Raises:
        UnsupportedSourceError: unknown extension.
        OSError / zipfile.BadZipFile / tarfile.TarError: unreadable archive.
    """
    kind = source_kind(path)
    if kind == "directory":
        return DirectorySource(path)
    if kind == "zip":
        return ZipSource(path)
    if kind == "tar.gz":
        return TarGzSource(path)
    raise UnsupportedSourceError(f"Unsupported archive format: {path}")


def _walk_files(root: Path) -> list[Path]:
    """Regular files below *root*, depth-first with sorted names."""
    found: list[Path] = []
    for current, dirs, files in os.walk(root):
        dirs.sort()
        for fname in sorted(files):
            fpath = Path(current) / fname
            if fpath.is_file():
                found.append(fpath)
    return found
