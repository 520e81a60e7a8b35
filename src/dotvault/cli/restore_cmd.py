"""CLI command: dv restore SOURCE."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import click

from dotvault.cli.logsetup import init_logging
from dotvault.core.config import load_config, restore_options
from dotvault.core.models import ConflictInfo, ProgressEvent, Resolution
from dotvault.core.pathutil import get_home
from dotvault.engine.conflicts import ConflictResolver, interactive, resolver_for
from dotvault.engine.restore import RestoreEngine

_CHOICES = {"o": Resolution.OVERWRITE, "s": Resolution.SKIP, "r": Resolution.RENAME}


def ask_resolver() -> ConflictResolver:
    """Prompt per conflict; 'O'/'S'/'R' answers, uppercase applies to the rest."""
    remembered: list[Resolution] = []

    def resolve(conflict: ConflictInfo) -> Resolution:
        if remembered:
            return remembered[0]
        answer = click.prompt(
            f"{conflict.destination_path} exists. [o]verwrite, [s]kip, [r]ename "
            "(uppercase = all)",
            type=click.Choice(["o", "s", "r", "O", "S", "R"]),
            default="o",
            show_choices=False,
        )
        resolution = _CHOICES[answer.lower()]
        if answer.isupper():
            remembered.append(resolution)
        return resolution

    return interactive(resolve)


@click.command("restore")
@click.argument("source", type=click.Path(path_type=Path))
@click.option(
    "--to",
    "target",
    type=click.Path(path_type=Path),
    default=None,
    help="Restore into this directory (default: home).",
)
@click.option(
    "--on-conflict",
    type=click.Choice(["overwrite", "skip", "rename", "ask"]),
    default=None,
    help="What to do with files that already exist (default: restore.on_conflict).",
)
@click.option("--permissions/--no-permissions", default=None, help="Restore permission bits.")
@click.option(
    "--config",
    "config_file",
    type=click.Path(path_type=Path),
    default=None,
    help="Use this config.yaml instead of the default.",
)
def restore_cmd(
    source: Path,
    target: Path | None,
    on_conflict: str | None,
    permissions: bool | None,
    config_file: Path | None,
) -> None:
    """Restore files from a backup directory or .zip / .tar.gz archive."""
    config = load_config(config_file)
    init_logging(config)
    options = restore_options(config)
    if permissions is not None:
        options = dataclasses.replace(options, preserve_permissions=permissions)

    policy = on_conflict or config["restore"].get("on_conflict", "overwrite")
    try:
        resolver = ask_resolver() if policy == "ask" else resolver_for(policy)
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    def on_progress(event: ProgressEvent) -> None:
        if event.status != "Restored":
            click.echo(f"  {event.status.lower()}: {event.current_path}")

    engine = RestoreEngine()
    result = engine.restore(source, target or get_home(), options, on_progress, resolver)

    for warning in result.warnings:
        click.echo(f"  warning: {warning}")
    for error in result.errors:
        click.echo(f"  error: {error}")

    if not result.success:
        raise click.ClickException("Restore failed: " + "; ".join(result.errors[:3]))

    click.echo(
        f"OK: {result.restored_files} restored, {result.skipped_files} skipped, "
        f"{len(result.conflicts)} conflicts ({result.duration_ms / 1000:.1f}s)"
    )
