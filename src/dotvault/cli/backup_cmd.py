"""CLI command: dv backup PATH..."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path

import click

from dotvault.cli.logsetup import init_logging
from dotvault.core.config import backup_options, load_config
from dotvault.core.models import ArchiveFormat, BackupOptions, ProgressEvent
from dotvault.core.pathutil import expand_home, format_size, timestamped_name
from dotvault.core.scanner import scan_paths
from dotvault.engine.backup import BackupEngine

log = logging.getLogger(__name__)


def _apply_overrides(options: BackupOptions, **overrides) -> BackupOptions:
    """Replace option fields given on the command line (None = keep config value)."""
    changes = {k: v for k, v in overrides.items() if v is not None}
    return dataclasses.replace(options, **changes)


@click.command("backup")
@click.argument("paths", nargs=-1, required=True)
@click.option(
    "--dest",
    type=click.Path(path_type=Path),
    default=None,
    help="Backup directory (default: backup.default_directory).",
)
@click.option("--name", default=None, help="Archive base name when compressing.")
@click.option("--compress/--no-compress", default=None, help="Write an archive instead of a copy.")
@click.option(
    "--format",
    "archive_format",
    type=click.Choice(["zip", "tar.gz"]),
    default=None,
    help="Archive format when compressing.",
)
@click.option("--exclude", multiple=True, help="Exclude pattern (repeatable, replaces config).")
@click.option("--skip-hidden/--include-hidden", default=None, help="Skip hidden files inside directories.")
@click.option("--follow-symlinks/--no-follow-symlinks", default=None, help="Follow symbolic links.")
@click.option("--timestamp/--no-timestamp", default=None, help="Copy into a backup_<timestamp> subfolder.")
@click.option("--permissions/--no-permissions", default=None, help="Preserve permission bits.")
@click.option(
    "--config",
    "config_file",
    type=click.Path(path_type=Path),
    default=None,
    help="Use this config.yaml instead of the default.",
)
def backup_cmd(
    paths: tuple[str, ...],
    dest: Path | None,
    name: str | None,
    compress: bool | None,
    archive_format: str | None,
    exclude: tuple[str, ...],
    skip_hidden: bool | None,
    follow_symlinks: bool | None,
    timestamp: bool | None,
    permissions: bool | None,
    config_file: Path | None,
) -> None:
    """Back up configuration files and directories."""
    config = load_config(config_file)
    init_logging(config)
    try:
        options = _apply_overrides(
            backup_options(config),
            compress=compress,
            archive_format=ArchiveFormat.parse(archive_format) if archive_format else None,
            exclude_patterns=tuple(exclude) if exclude else None,
            skip_hidden=skip_hidden,
            follow_symlinks=follow_symlinks,
            create_timestamp_subfolder=timestamp,
            preserve_permissions=permissions,
        )
    except ValueError as e:
        raise click.ClickException(f"Invalid backup settings: {e}") from e

    dest_dir = dest or expand_home(config["backup"]["default_directory"])
    destination = dest_dir
    if options.compress:
        destination = dest_dir / (name or timestamped_name("dotfiles"))

    entries = scan_paths(paths)
    for entry in entries:
        if not entry.exists:
            click.echo(f"  missing: {entry.path}")

    total = sum(e.size_bytes for e in entries if e.exists)
    engine = BackupEngine()
    last = 0

    def on_progress(event: ProgressEvent) -> None:
        nonlocal last
        bar.update(event.bytes_processed - last)
        last = event.bytes_processed

    with click.progressbar(length=max(total, 1), label="Backing up") as bar:
        result = engine.backup(entries, destination, options, on_progress)

    for path in result.skipped_files:
        log.debug("Skipped %s", path)
    for error in result.errors:
        click.echo(f"  error: {error}")

    if not result.success:
        raise click.ClickException("Backup failed: " + "; ".join(result.errors[:3]))

    click.echo(
        f"OK: {result.total_files} files, {format_size(result.total_bytes)}, "
        f"{len(result.skipped_files)} skipped ({result.duration_ms / 1000:.1f}s)"
    )
    click.echo(f"Output: {result.output_path}")
