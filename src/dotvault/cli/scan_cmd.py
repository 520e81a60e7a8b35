"""CLI commands: dv scan, dv config."""

from __future__ import annotations

from pathlib import Path

import click
import yaml

from dotvault.cli.logsetup import init_logging
from dotvault.core.config import load_config
from dotvault.core.pathutil import format_size, matches_glob
from dotvault.core.scanner import scan_paths


@click.command("scan")
@click.argument("paths", nargs=-1, required=True)
@click.option("--filter", "pattern", default=None, help="Only list names matching this glob.")
def scan_cmd(paths: tuple[str, ...], pattern: str | None) -> None:
    """Show whether paths exist, their type and size."""
    init_logging(load_config())
    entries = scan_paths(paths)
    if pattern:
        entries = [e for e in entries if matches_glob(e.path, pattern)]

    if not entries:
        click.echo("Nothing to show.")
        return

    for entry in entries:
        if not entry.exists:
            click.echo(f"  [missing] {entry.path}")
            continue
        kind = "dir " if entry.is_directory else "file"
        click.echo(f"  [{kind}]    {entry.path}  {format_size(entry.size_bytes)}")

    found = [e for e in entries if e.exists]
    total = sum(e.size_bytes for e in found)
    click.echo(f"{len(found)} of {len(entries)} exist, {format_size(total)} total")


@click.command("config")
@click.option(
    "--config",
    "config_file",
    type=click.Path(path_type=Path),
    default=None,
    help="Use this config.yaml instead of the default.",
)
def config_cmd(config_file: Path | None) -> None:
    """Print the effective configuration."""
    config = load_config(config_file)
    click.echo(yaml.safe_dump(config, default_flow_style=False, sort_keys=False).rstrip())
