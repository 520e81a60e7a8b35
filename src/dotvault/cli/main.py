"""CLI entry point for DotVault (dv command)."""

from __future__ import annotations

import click

from dotvault import __version__
from dotvault.cli.backup_cmd import backup_cmd
from dotvault.cli.restore_cmd import restore_cmd
from dotvault.cli.scan_cmd import config_cmd, scan_cmd


@click.group()
@click.version_option(version=__version__, prog_name="dotvault")
@click.option("--verbose", "-v", is_flag=True, help="Log to stderr as well.")
def cli(verbose: bool) -> None:
    """DotVault: back up and restore your dotfiles."""


cli.add_command(backup_cmd)
cli.add_command(restore_cmd)
cli.add_command(scan_cmd)
cli.add_command(config_cmd)


if __name__ == "__main__":
    cli()
