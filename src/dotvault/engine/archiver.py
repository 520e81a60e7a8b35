"""Backup output writers: plain directory tree, zip, and tar+gzip.

All three take ArchiveEntryRecords one at a time. The archive writers read
each source file whole before writing its entry; configuration files are
small. Entry names are the record's home-relative POSIX path, so
``~/.config/nvim/init.vim`` is stored as ``.config/nvim/init.vim``.
"""

from __future__ import annotations

import io
import logging
import os
import stat
import tarfile
import time
import zipfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from dotvault.core.fileutil import DEFAULT_FILE_MODE, copy_file
from dotvault.core.models import ArchiveEntryRecord, ArchiveFormat, BackupOptions

log = logging.getLogger(__name__)

# Progress is reported every N files while writing an archive.
ARCHIVE_PROGRESS_EVERY = 10

_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


@runtime_checkable
class Archiver(Protocol):
    """Contract for a backup output target."""

    progress_every: int

    @property
    def output_path(self) -> Path:
        """Directory or archive file being written."""
        ...

    def add_file(self, record: ArchiveEntryRecord) -> int:
        """Write one file. Returns bytes written; raises OSError on failure."""
        ...

    def finalize(self) -> None:
        """Flush and close the output. Safe to call twice."""
        ...


class _FinalizeOnExit:
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.finalize()


class TreeWriter(_FinalizeOnExit):
    """Copies files into a directory tree mirroring the home layout."""

    progress_every = 1

    def __init__(self, root: Path, preserve_permissions: bool = True) -> None:
        self._root = root
        self._preserve = preserve_permissions
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def output_path(self) -> Path:
        return self._root

    def add_file(self, record: ArchiveEntryRecord) -> int:
        target = self._root / record.relative_path
        return copy_file(Path(record.source_path), target, preserve=self._preserve)

    def finalize(self) -> None:
        pass


class ZipArchiver(_FinalizeOnExit):
    """DEFLATE zip; unix permission bits go into the external attributes."""

    progress_every = ARCHIVE_PROGRESS_EVERY

    def __init__(self, path: Path, preserve_permissions: bool = True) -> None:
        self._path = path
        self._preserve = preserve_permissions
        self._zip: zipfile.ZipFile | None = zipfile.ZipFile(
            path, "w", compression=zipfile.ZIP_DEFLATED,
        )

    @property
    def output_path(self) -> Path:
        return self._path

    def add_file(self, record: ArchiveEntryRecord) -> int:
        if self._zip is None:
            raise OSError(f"Archive already finalized: {self._path}")

        data, st = _read_source(record.source_path)
        date_time = time.localtime(st.st_mtime)[:6]
        if date_time[0] < 1980:
            date_time = _ZIP_EPOCH
        info = zipfile.ZipInfo(record.relative_path, date_time=date_time)
        info.compress_type = zipfile.ZIP_DEFLATED
        info.external_attr = (stat.S_IFREG | _entry_mode(record, st, self._preserve)) << 16
        self._zip.writestr(info, data)
        return len(data)

    def finalize(self) -> None:
        if self._zip is not None:
            self._zip.close()
            self._zip = None


class TarGzArchiver(_FinalizeOnExit):
    """Gzip-compressed GNU tar; long names need no special handling."""

    progress_every = ARCHIVE_PROGRESS_EVERY

    def __init__(self, path: Path, preserve_permissions: bool = True) -> None:
        self._path = path
        self._preserve = preserve_permissions
        self._tar: tarfile.TarFile | None = tarfile.open(
            path, "w:gz", format=tarfile.GNU_FORMAT,
        )

    @property
    def output_path(self) -> Path:
        return self._path

    def add_file(self, record: ArchiveEntryRecord) -> int:
        if self._tar is None:
            raise OSError(f"Archive already finalized: {self._path}")

        data, st = _read_source(record.source_path)
        info = tarfile.TarInfo(record.relative_path)
        info.type = tarfile.REGTYPE
        info.size = len(data)
        info.mtime = int(st.st_mtime)
        info.mode = _entry_mode(record, st, self._preserve)
        self._tar.addfile(info, io.BytesIO(data))
        return len(data)

    def finalize(self) -> None:
        if self._tar is not None:
            self._tar.close()
            self._tar = None


def _read_source(path: str) -> tuple[bytes, os.stat_result]:
    """Whole content and stat of a source file.

    Read before an archive entry is started, so a file that fails to read
    or changes size mid-read never leaves a partial member behind.
    """
    with open(path, "rb") as src:
        st = os.fstat(src.fileno())
        data = src.read()
    return data, st


def _entry_mode(record: ArchiveEntryRecord, st: os.stat_result, preserve: bool) -> int:
    if not preserve:
        return DEFAULT_FILE_MODE
    if record.permission_bits is None:
        return stat.S_IMODE(st.st_mode)
    return record.permission_bits


def archive_path_for(destination: Path, archive_format: ArchiveFormat) -> Path:
    """'<parent>/<name>' -> '<parent>/<name>.zip' (or .tar.gz)."""
    return destination.parent / (destination.name + archive_format.extension)


def open_archiver(destination: Path, options: BackupOptions) -> Archiver:
    """Pick the writer for *options*. Raises OSError if the output can't be opened."""
    if not options.compress:
        return TreeWriter(destination, options.preserve_permissions)

    path = archive_path_for(destination, options.archive_format)
    log.debug("Opening %s archive at %s", options.archive_format.value, path)
    if options.archive_format is ArchiveFormat.TAR_GZ:
        return TarGzArchiver(path, options.preserve_permissions)
    return ZipArchiver(path, options.preserve_permissions)
