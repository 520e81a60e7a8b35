"""Restore engine: writes a backup tree or archive back into a destination."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from dotvault.core.fileutil import move_aside
from dotvault.core.models import (
    ConflictInfo,
    ProgressEvent,
    Resolution,
    RestoreOptions,
    RestoreResult,
)
from dotvault.engine.conflicts import ConflictResolver, always_overwrite
from dotvault.engine.sources import (
    ARCHIVE_ERRORS,
    EntryKind,
    RestoreSource,
    SourceEntry,
    UnsupportedSourceError,
    open_source,
)
from dotvault.engine.worker import EngineWorker

log = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

STATUS_RESTORED = "Restored"
STATUS_SKIPPED = "Skipped"
STATUS_FAILED = "Failed"


@dataclass
class _RestoreRun:
    """Mutable counters for one restore invocation."""

    root: Path
    source: RestoreSource
    options: RestoreOptions
    resolver: ConflictResolver
    on_progress: ProgressCallback | None
    seen: int = 0
    processed: int = 0
    restored: int = 0
    skipped: int = 0
    bytes: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    conflicts: list[ConflictInfo] = field(default_factory=list)

    def progress(self, path: str, status: str) -> None:
        if self.on_progress is None:
            return
        self.on_progress(ProgressEvent(
            current_path=path,
            files_processed=self.processed,
            total_files=self.source.total_files,
            bytes_processed=self.bytes,
            total_bytes=self.source.total_bytes,
            status=status,
        ))


class RestoreEngine(EngineWorker):
    """Restore files from a backup directory, .zip, .tar.gz or .tgz.

    Every file whose target already exists is reported as a conflict and
    handed to the resolver (default: overwrite). Per-file failures go into
    the result; nothing already written is rolled back on error or cancel.
    """

    def __init__(self) -> None:
        super().__init__("dotvault-restore")

    def submit(
        self,
        source: Path,
        destination: Path,
        options: RestoreOptions | None = None,
        on_progress: ProgressCallback | None = None,
        resolver: ConflictResolver | None = None,
    ) -> Future:
        """Run restore() on the engine's worker thread."""
        return self._submit(self.restore, source, destination, options, on_progress, resolver)

    def restore(
        self,
        source: Path,
        destination: Path,
        options: RestoreOptions | None = None,
        on_progress: ProgressCallback | None = None,
        resolver: ConflictResolver | None = None,
    ) -> RestoreResult:
        """Restore *source* into *destination*. Always returns a result."""
        self._begin()
        try:
            return self._run(
                Path(source),
                Path(destination),
                options or RestoreOptions(),
                on_progress,
                resolver or always_overwrite(),
            )
        finally:
            self._finish()

    def _run(
        self,
        source_path: Path,
        destination: Path,
        options: RestoreOptions,
        on_progress: ProgressCallback | None,
        resolver: ConflictResolver,
    ) -> RestoreResult:
        start = time.monotonic()

        if not source_path.exists():
            return _failed(start, f"Backup source not found: {source_path}")

        try:
            source = open_source(source_path)
        except UnsupportedSourceError as e:
            return _failed(start, str(e))
        except ARCHIVE_ERRORS as e:
            log.error("Cannot open %s", source_path, exc_info=True)
            return _failed(start, f"Restore failed: {e}")

        with source:
            try:
                destination.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                log.error("Cannot create restore directory %s", destination, exc_info=True)
                return _failed(start, f"Cannot create restore directory {destination}: {e}")

            log.info("Restore started: %s -> %s", source_path, destination)
            run = _RestoreRun(
                root=destination,
                source=source,
                options=options,
                resolver=resolver,
                on_progress=on_progress,
            )
            try:
                for entry in source.entries():
                    if self.cancelled:
                        break
                    self._restore_entry(entry, run)
            except ARCHIVE_ERRORS as e:
                log.error("Restore of %s aborted", source_path, exc_info=True)
                run.errors.append(f"Restore failed: {e}")

        if self.cancelled:
            log.info("Restore cancelled after %d files", run.processed)
        log.info(
            "Restore finished: %d restored, %d skipped, %d conflicts, %d errors",
            run.restored, run.skipped, len(run.conflicts), len(run.errors),
        )

        return RestoreResult(
            success=not run.errors or run.restored > 0,
            total_files=source.total_files or run.seen,
            restored_files=run.restored,
            skipped_files=run.skipped,
            duration_ms=_elapsed_ms(start),
            errors=list(run.errors),
            warnings=list(run.warnings),
            conflicts=list(run.conflicts),
        )

    def _restore_entry(self, entry: SourceEntry, run: _RestoreRun) -> None:
        target = _target_for(run.root, entry.relative_path)
        if target is None:
            run.errors.append(
                f"Refusing to restore {entry.relative_path}: path escapes {run.root}"
            )
            return

        if entry.kind is EntryKind.DIRECTORY:
            try:
                target.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                run.errors.append(f"Failed to create directory {target}: {e}")
            return
        if entry.kind is EntryKind.OTHER:
            run.warnings.append(f"Skipped unsupported entry: {entry.relative_path}")
            return

        run.seen += 1

        if target.exists() or target.is_symlink():
            conflict = ConflictInfo(source_path=entry.origin, destination_path=str(target))
            resolution = run.resolver(conflict)
            conflict.resolution = resolution
            run.conflicts.append(conflict)

            if resolution is Resolution.SKIP:
                run.skipped += 1
                run.processed += 1
                run.progress(entry.relative_path, STATUS_SKIPPED)
                return
            try:
                if resolution is Resolution.RENAME:
                    renamed = move_aside(target)
                    run.warnings.append(f"Renamed existing file: {target} -> {renamed}")
                elif target.is_symlink():
                    # Write a fresh file instead of through the link.
                    target.unlink()
            except OSError as e:
                log.warning("Restore error: %s: %s", target, e)
                run.errors.append(f"Failed to move aside {target}: {e}")
                run.processed += 1
                run.progress(entry.relative_path, STATUS_FAILED)
                return

        try:
            written = run.source.extract(entry, target, run.options.preserve_permissions)
        except OSError as e:
            log.warning("Restore error: %s: %s", target, e)
            run.errors.append(f"Failed to restore {target}: {e}")
            run.processed += 1
            run.progress(entry.relative_path, STATUS_FAILED)
            return

        run.restored += 1
        run.processed += 1
        run.bytes += written
        run.progress(entry.relative_path, STATUS_RESTORED)


def _target_for(root: Path, relative_path: str) -> Path | None:
    """root/relative_path, or None if the name is absolute or climbs out."""
    rel = PurePosixPath(relative_path.replace("\\", "/"))
    if not relative_path or rel.is_absolute() or ".." in rel.parts:
        return None
    target = root.joinpath(*rel.parts)
    if os.path.commonpath([os.path.abspath(root), os.path.abspath(target)]) != os.path.abspath(root):
        return None
    return target


def _failed(start: float, message: str) -> RestoreResult:
    return RestoreResult(success=False, duration_ms=_elapsed_ms(start), errors=[message])


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
