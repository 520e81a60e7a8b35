"""Logging setup shared by the dv commands."""

from __future__ import annotations

import logging

import click

from dotvault.core.pathutil import log_dir


def setup_logging(config: dict, verbose: bool = False) -> None:
    """Log to ~/.cache/dotvault/logs/dotvault.log, and to stderr with --verbose."""
    log_cfg = config.get("logging", {})
    level = logging.DEBUG if verbose else getattr(
        logging, str(log_cfg.get("level", "info")).upper(), logging.INFO,
    )

    handlers: list[logging.Handler] = []
    if log_cfg.get("file", True):
        log_path = log_dir() / "dotvault.log"
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(str(log_path), encoding="utf-8"))
        except OSError as e:
            click.echo(f"Cannot write log file {log_path}: {e}", err=True)
    if verbose:
        handlers.append(logging.StreamHandler())
    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )


def init_logging(config: dict) -> None:
    """Configure logging for the running command from the config it loaded.

    Picks up ``dv --verbose`` from the root command when there is one.
    """
    ctx = click.get_current_context(silent=True)
    verbose = bool(ctx is not None and ctx.find_root().params.get("verbose"))
    setup_logging(config, verbose)
