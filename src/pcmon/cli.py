"""Command line entry point for pcmon."""

from pathlib import Path
from typing import Optional

import typer

from pcmon.app import PcmonApp
from pcmon.logging_setup import configure_logging
from pcmon.models import DEFAULT_INTERVAL, MAX_INTERVAL, MIN_INTERVAL

app = typer.Typer(help="Live PC performance monitor", add_completion=False)


@app.command()
def main(
    interval: int = typer.Option(
        DEFAULT_INTERVAL,
        "--interval",
        "-i",
        min=MIN_INTERVAL,
        max=MAX_INTERVAL,
        help="Refresh interval in seconds.",
    ),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Write logs to this file."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level."),
) -> None:
    """Run the pcmon monitor."""
    configure_logging(log_level.upper(), log_file)
    PcmonApp(interval=interval).run()


if __name__ == "__main__":
    app()
