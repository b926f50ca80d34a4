"""Command line entry point for ruuvitrack."""

import sys
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.markup import escape

from ruuvitrack import __version__
from ruuvitrack.shared.logging import setup_logging

from .config import ConfigError, load_config
from .tracker_service import EXIT_ERROR, run_tracker

console = Console()


def print_token_help() -> None:
    """Explain how to get an API token."""
    console.print("[red]No API token was provided.[/red]")
    console.print()
    console.print("📚 Usage instructions")
    console.print()
    console.print("1. Go to anturi.nuudeli.com and register to get API token")
    console.print("2. Run this command again:")
    console.print()
    console.print("  [green]ruuvitrack -t TOKEN[/green]")
    console.print()
    console.print("See other options with [green]ruuvitrack --help[/green]")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, prog_name="ruuvitrack")
@click.option("--url", help="Send sensor data to this URL.")
@click.option(
    "--filter",
    "filters",
    multiple=True,
    metavar="MAC",
    help="Send only these sensor MAC addresses (repeatable or comma separated).",
)
@click.option("--timeout", type=float, metavar="SECONDS", help="Exit after this many seconds.")
@click.option("-t", "--token", help="Your API token.")
@click.option(
    "--failure-threshold",
    type=int,
    help="Exit after this many consecutive delivery failures.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="YAML configuration file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity.",
)
def main(
    url: Optional[str],
    filters: Tuple[str, ...],
    timeout: Optional[float],
    token: Optional[str],
    failure_threshold: Optional[int],
    config_path: Optional[str],
    log_level: Optional[str],
) -> None:
    """Track Ruuvi sensors and send their data to a collection endpoint."""
    overrides = {
        "url": url,
        "filter": list(filters) or None,
        "timeout": timeout,
        "token": token,
        "failure_threshold": failure_threshold,
        "log_level": log_level,
    }

    try:
        config = load_config(config_path, overrides)
    except (ConfigError, FileNotFoundError) as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        sys.exit(EXIT_ERROR)

    if not config.token:
        print_token_help()
        sys.exit(EXIT_ERROR)

    setup_logging(config.log_level)
    sys.exit(run_tracker(config))
