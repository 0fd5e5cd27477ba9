"""Main CLI entry point for the SwingTrainer application.

This module defines the Typer application, registers the subcommands and
configures logging from the global options. Settings can also come from
SWING_* environment variables or a ``.env`` file in the working directory.
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console

from src.config.logging import setup_logging

app = typer.Typer(
    name="swing-trainer",
    help="SwingTrainer - Practise swing trading on replayed market history.",
    add_completion=True,
    rich_markup_mode="rich",
    no_args_is_help=True,
)

console = Console()
logger = logging.getLogger(__name__)


def _log_level(verbose: bool, quiet: bool) -> Optional[str]:
    """Level requested on the command line; None defers to the environment."""
    if verbose:
        if quiet:
            console.print("[yellow]Warning:[/yellow] --verbose overrides --quiet.")
        return "DEBUG"
    if quiet:
        return "WARNING"
    return None


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log engine and playback details (DEBUG).",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only log warnings and errors.",
    ),
    log_file: Optional[str] = typer.Option(
        None,
        "--log-file",
        help="Also write JSON log lines to this file.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Write JSON log lines to stderr instead of colored text.",
    ),
    env_file: Optional[str] = typer.Option(
        None,
        "--env-file",
        help="Read SWING_* settings from this file instead of ./.env.",
    ),
) -> None:
    """SwingTrainer.

    Replays a random stock's history one day at a time so you can practise
    entries, exits and risk rules without real money.
    """
    load_dotenv(env_file)

    setup_logging(
        level=_log_level(verbose, quiet),
        log_file=Path(log_file) if log_file else None,
        use_json=json_logs,
    )


# Registered after the app exists so command modules can import shared helpers
from src.cli.commands.legacy import import_legacy  # noqa: E402
from src.cli.commands.new import new  # noqa: E402
from src.cli.commands.sessions import sessions, show  # noqa: E402
from src.cli.commands.trade import close, next_bar, order, play, reflect  # noqa: E402

app.command(name="new")(new)
app.command(name="sessions")(sessions)
app.command(name="show")(show)
app.command(name="play")(play)
app.command(name="next")(next_bar)
app.command(name="order")(order)
app.command(name="close")(close)
app.command(name="reflect")(reflect)
app.command(name="import-legacy")(import_legacy)


def cli_main() -> None:
    """Entry point for the swing-trainer script."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        raise typer.Exit(code=130) from None
    except Exception as e:
        logger.exception("Unhandled error")
        console.print(f"\n[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e


if __name__ == "__main__":
    cli_main()
