"""Backup engine: expands a selection, applies policy, writes a tree or archive."""

from __future__ import annotations

import logging
import os
import stat
import time
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path

from dotvault.core.models import (
    ArchiveEntryRecord,
    BackupOptions,
    BackupResult,
    ProgressEvent,
    SelectedEntry,
)
from dotvault.core.pathutil import expand_home, get_home, relative_to_home, timestamped_name
from dotvault.engine.archiver import Archiver, open_archiver
from dotvault.engine.policy import PathPolicy, SkipReason
from dotvault.engine.worker import EngineWorker

log = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

NO_ENTRIES_ERROR = "No entries selected for backup"
NO_EXISTING_ERROR = "No existing files found to backup"


@dataclass
class _BackupRun:
    """Mutable counters for one backup invocation."""

    home: Path
    options: BackupOptions
    policy: PathPolicy
    archiver: Archiver
    total_bytes: int
    on_progress: ProgressCallback | None
    files: int = 0
    bytes: int = 0
    errors: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    visited_dirs: set[str] = field(default_factory=set)
    written: set[str] = field(default_factory=set)  # entry names already in the output

    @property
    def output_path(self) -> str:
        return os.path.abspath(self.archiver.output_path)


class BackupEngine(EngineWorker):
    """Copy or archive a list of selected entries.

    Plain copies land under ``destination`` (optionally in a
    ``backup_<timestamp>`` subfolder); archives are written next to it as
    ``<destination>.zip`` or ``<destination>.tar.gz``. Per-file failures are
    collected in the result and never abort the run.
    """

    def __init__(self, home: Path | None = None) -> None:
        super().__init__("dotvault-backup")
        self._home = home

    @property
    def home(self) -> Path:
        return self._home or get_home()

    def submit(
        self,
        entries: Sequence[SelectedEntry],
        destination: Path,
        options: BackupOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Future:
        """Run backup() on the engine's worker thread."""
        return self._submit(self.backup, entries, destination, options, on_progress)

    def backup(
        self,
        entries: Sequence[SelectedEntry],
        destination: Path,
        options: BackupOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BackupResult:
        """Back up *entries* into *destination*. Always returns a result."""
        self._begin()
        try:
            return self._run(entries, Path(destination), options or BackupOptions(), on_progress)
        finally:
            self._finish()

    def _run(
        self,
        entries: Sequence[SelectedEntry],
        destination: Path,
        options: BackupOptions,
        on_progress: ProgressCallback | None,
    ) -> BackupResult:
        start = time.monotonic()

        if not entries:
            return BackupResult(success=False, errors=[NO_ENTRIES_ERROR])

        valid = [e for e in entries if e.exists]
        if not valid:
            return BackupResult(success=False, errors=[NO_EXISTING_ERROR])
        if len(valid) < len(entries):
            log.debug("Ignoring %d missing entries", len(entries) - len(valid))

        total_bytes = sum(e.size_bytes for e in valid)

        try:
            output_dir = _prepare_destination(destination, options)
            archiver = open_archiver(output_dir, options)
        except OSError as e:
            log.error("Backup setup failed for %s", destination, exc_info=True)
            return BackupResult(
                success=False,
                duration_ms=_elapsed_ms(start),
                errors=[f"Backup failed: {e}"],
            )

        log.info(
            "Backup started: %d entries, %d bytes -> %s",
            len(valid), total_bytes, archiver.output_path,
        )
        run = _BackupRun(
            home=self.home,
            options=options,
            policy=PathPolicy(options),
            archiver=archiver,
            total_bytes=total_bytes,
            on_progress=on_progress,
        )

        try:
            with archiver:
                for entry in valid:
                    if self.cancelled:
                        break
                    self._backup_entry(entry, run)
        except OSError as e:
            log.error("Failed to finalize %s", archiver.output_path, exc_info=True)
            run.errors.append(f"Failed to finalize {archiver.output_path}: {e}")

        if self.cancelled:
            log.info("Backup cancelled after %d files", run.files)
        log.info(
            "Backup finished: %d files, %d bytes, %d errors, %d skipped",
            run.files, run.bytes, len(run.errors), len(run.skipped),
        )

        return BackupResult(
            success=not run.errors or len(run.errors) < len(valid),
            output_path=str(archiver.output_path),
            total_files=run.files,
            total_bytes=run.bytes,
            duration_ms=_elapsed_ms(start),
            errors=list(run.errors),
            skipped_files=list(run.skipped),
        )

    def _backup_entry(self, entry: SelectedEntry, run: _BackupRun) -> None:
        source = expand_home(entry.path, run.home)
        try:
            relative_to_home(source, run.home)
        except ValueError:
            run.errors.append(f"Skipping {entry.path}: outside home directory {run.home}")
            return

        if run.policy.check_link(source) is SkipReason.SYMLINK:
            run.skipped.append(str(source))
            return

        if source.is_dir():
            for path in self._iter_files(source, run):
                if self.cancelled:
                    break
                self._backup_file(path, run)
        elif run.policy.should_skip(source):
            run.skipped.append(str(source))
        else:
            self._backup_file(source, run)

    def _iter_files(self, directory: Path, run: _BackupRun) -> Iterator[Path]:
        """Depth-first, name-sorted walk yielding files that pass the policy."""
        if run.options.follow_symlinks:
            real = os.path.realpath(directory)
            if real in run.visited_dirs:
                log.debug("Already visited %s, not following again", directory)
                return
            run.visited_dirs.add(real)

        try:
            with os.scandir(directory) as it:
                children = sorted(it, key=lambda d: d.name)
        except OSError as e:
            log.warning("Cannot list %s: %s", directory, e)
            run.errors.append(f"Failed to read directory {directory}: {e}")
            return

        for child in children:
            if self.cancelled:
                return
            path = Path(child.path)
            if os.path.abspath(path) == run.output_path:
                log.debug("Not backing up the backup output %s", path)
                continue
            try:
                is_dir = child.is_dir()
                is_file = not is_dir and child.is_file()
            except OSError:
                is_dir = is_file = False

            if is_dir:
                if run.policy.check_directory(path):
                    run.skipped.append(str(path))
                    continue
                yield from self._iter_files(path, run)
            elif is_file:
                if run.policy.check_file(path):
                    run.skipped.append(str(path))
                    continue
                yield path
            else:
                # Sockets, fifos, dangling links.
                log.debug("Not a regular file: %s", path)
                run.skipped.append(str(path))

    def _backup_file(self, path: Path, run: _BackupRun) -> None:
        compressing = run.options.compress
        relative_path = relative_to_home(path, run.home)
        if relative_path in run.written:
            log.debug("Already backed up %s (overlapping selection)", path)
            return
        try:
            st = path.stat()
            record = ArchiveEntryRecord(
                relative_path=relative_path,
                source_path=str(path),
                size_bytes=st.st_size,
                permission_bits=stat.S_IMODE(st.st_mode) if run.options.preserve_permissions else None,
            )
            written = run.archiver.add_file(record)
        except OSError as e:
            log.warning("Backup error: %s: %s", path, e)
            if compressing:
                run.errors.append(f"Failed to add {path} to archive: {e}")
            else:
                run.errors.append(f"Failed to copy {path}: {e}")
            return

        run.written.add(relative_path)
        run.files += 1
        run.bytes += written

        if run.on_progress is not None and run.files % run.archiver.progress_every == 0:
            run.on_progress(ProgressEvent(
                current_path=str(path),
                files_processed=run.files,
                total_files=0,
                bytes_processed=run.bytes,
                total_bytes=run.total_bytes,
            ))


def _prepare_destination(destination: Path, options: BackupOptions) -> Path:
    """Create the destination (and timestamp subfolder for plain copies)."""
    destination.mkdir(parents=True, exist_ok=True)
    if not options.compress and options.create_timestamp_subfolder:
        destination = destination / timestamped_name("backup")
        destination.mkdir(parents=True, exist_ok=True)
    return destination


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
