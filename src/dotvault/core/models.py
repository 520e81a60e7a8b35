"""Core data models for DotVault."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


# --- Enums ---


class ArchiveFormat(str, Enum):
    ZIP = "zip"
    TAR_GZ = "tar.gz"

    @property
    def extension(self) -> str:
        return ".zip" if self is ArchiveFormat.ZIP else ".tar.gz"

    @classmethod
    def parse(cls, value: str | ArchiveFormat) -> ArchiveFormat:
        """Accept 'zip', 'tar.gz', 'tar_gz' or 'tgz' (case-insensitive)."""
        if isinstance(value, ArchiveFormat):
            return value
        key = str(value).strip().lower().lstrip(".")
        if key == "zip":
            return cls.ZIP
        if key in ("tar.gz", "tar_gz", "targz", "tgz"):
            return cls.TAR_GZ
        raise ValueError(f"Unknown archive format: {value}")


class Resolution(str, Enum):
    OVERWRITE = "overwrite"
    SKIP = "skip"
    RENAME = "rename"


class ConflictKind(str, Enum):
    ALREADY_EXISTS = "already_exists"


class EngineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# --- Inputs ---


@dataclass
class SelectedEntry:
    """A path chosen for backup, as reported by the catalog scanner."""

    path: str  # absolute or "~/..."
    is_directory: bool = False
    exists: bool = False
    size_bytes: int = 0  # recursive size for directories


@dataclass(frozen=True)
class BackupOptions:
    """Per-run backup settings. Immutable; build a new one to change a field."""

    compress: bool = False
    archive_format: ArchiveFormat = ArchiveFormat.ZIP
    preserve_permissions: bool = True
    follow_symlinks: bool = False
    skip_hidden: bool = False
    exclude_patterns: tuple[str, ...] = ("*.log", "cache", ".cache")
    create_timestamp_subfolder: bool = True


@dataclass(frozen=True)
class RestoreOptions:
    """Per-run restore settings."""

    preserve_permissions: bool = True


# --- Transient records ---


@dataclass
class ArchiveEntryRecord:
    """One file produced by expanding a selected entry."""

    relative_path: str  # POSIX, relative to home
    source_path: str
    size_bytes: int = 0
    permission_bits: int | None = None
    is_directory: bool = False


@dataclass(frozen=True)
class ProgressEvent:
    """Snapshot of run progress handed to the progress callback."""

    current_path: str
    files_processed: int
    total_files: int  # 0 when unknown
    bytes_processed: int
    total_bytes: int
    status: str = ""  # "Restored" / "Skipped" during restore

    @property
    def percentage(self) -> int:
        if self.total_bytes > 0:
            return min(100, self.bytes_processed * 100 // self.total_bytes)
        if self.total_files > 0:
            return min(100, self.files_processed * 100 // self.total_files)
        return 0


@dataclass
class ConflictInfo:
    """A restore target that already has content."""

    source_path: str
    destination_path: str
    conflict_kind: ConflictKind = ConflictKind.ALREADY_EXISTS
    resolution: Resolution | None = None

    def __str__(self) -> str:
        return f"{self.conflict_kind.name}: {self.source_path} -> {self.destination_path}"


# --- Results ---


@dataclass(frozen=True)
class BackupResult:
    """Result of a backup run."""

    success: bool
    output_path: str | None = None
    total_files: int = 0
    total_bytes: int = 0
    duration_ms: int = 0
    errors: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RestoreResult:
    """Result of a restore run."""

    success: bool
    total_files: int = 0
    restored_files: int = 0
    skipped_files: int = 0
    duration_ms: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    conflicts: list[ConflictInfo] = field(default_factory=list)
