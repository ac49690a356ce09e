#!/usr/bin/env python3
"""
Main CLI Entry Point for bankrec

Provides the command-line interface to the bank reconciliation engine.
"""

import logging
import os

import click

from ..core.config import get_config, reload_config


@click.group()
@click.option(
    "--config-env",
    type=click.Choice(["development", "test", "production"]),
    help="Override environment configuration",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_env: str | None, verbose: bool, debug: bool) -> None:
    """
    bankrec - Bank Reconciliation Matching Engine

    Scores bank statement lines against receipts, invoices and expenses,
    suggests matches, auto-matches confident pairs and tracks what is left.
    """
    ctx.ensure_object(dict)

    if config_env:
        os.environ["BANKREC_ENV"] = config_env

    if debug:
        os.environ["LOG_LEVEL"] = "DEBUG"
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger("bankrec").setLevel(logging.DEBUG)

    try:
        config_obj = reload_config() if (config_env or debug) else get_config()
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["config"] = config_obj

    if verbose:
        click.echo(f"Environment: {config_obj.environment.value}")
        click.echo(f"Data directory: {config_obj.data_dir}")

    if debug:
        click.echo("Debug logging enabled")


@main.command()
def version() -> None:
    """Show version information."""
    from bankrec import __author__, __version__

    click.echo(f"bankrec v{__version__}")
    click.echo(f"Author: {__author__}")


@main.command()
@click.pass_context
def config(ctx: click.Context) -> None:
    """Show current configuration."""
    config_obj = ctx.obj["config"]
    matching = config_obj.matching

    click.echo("Current Configuration:")
    click.echo(f"  Environment: {config_obj.environment.value}")
    click.echo(f"  Data Directory: {config_obj.data_dir}")
    click.echo(f"  Ledger File: {config_obj.store.ledger_file}")
    click.echo(f"  Auto-Match Threshold: {matching.auto_match_threshold}")
    click.echo(f"  Minimum Score: {matching.min_score}")
    click.echo(f"  Max Suggestions: {matching.max_suggestions}")
    click.echo(f"  Rules File: {matching.rules_file or '(none)'}")
    click.echo(f"  Default Actor: {config_obj.default_actor}")
    click.echo(f"  Debug Mode: {config_obj.debug}")
    click.echo(f"  Log Level: {config_obj.log_level}")


from .reconcile import (  # noqa: E402
    automatch,
    ignore,
    load_lines,
    load_records,
    match,
    stats,
    suggest,
    unignore,
    unmatch,
)

for command in (load_lines, load_records, suggest, automatch, match, unmatch, ignore, unignore, stats):
    main.add_command(command)


if __name__ == "__main__":
    main()
