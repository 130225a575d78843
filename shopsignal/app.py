# ==============================================================================
# ShopSignal CLI
# ==============================================================================
"""
Command-line interface for the shopsignal session engine.

Usage:
    shopsignal --help
    shopsignal status
    shopsignal config show
    shopsignal replay session.json
    shopsignal db init
"""

import logging
import os

import typer

from shopsignal.utils.config import get_settings

# Set consistent terminal width for help output formatting
if "COLUMNS" not in os.environ:
    os.environ["COLUMNS"] = "115"

app = typer.Typer(
    name="shopsignal",
    help="Storefront behavioral telemetry engine CLI",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.callback()
def _configure_logging(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    level = logging.DEBUG if verbose else getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


config_app = typer.Typer(
    help="Configuration management",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

from shopsignal.cli.config import config_show

config_app.command("show")(config_show)

db_app = typer.Typer(
    help="Sink database operations",
    no_args_is_help=True,
)
app.add_typer(db_app, name="db")

from shopsignal.cli.db import db_init

db_app.command("init")(db_init)

from shopsignal.cli.replay import replay

app.command("replay")(replay)

from shopsignal.cli.status import show_status

app.command("status")(show_status)


# ==============================================================================
# Entry Point
# ==============================================================================


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
