"""Waypoint CLI - Command-line interface for the tracking agent."""

import typer

from waypoint import __version__
from waypoint.cli_commands import (
    config_app,
    queue_app,
    status_command,
    summary_command,
    sync_command,
    track_app,
)

app = typer.Typer(
    name="waypoint",
    help="Waypoint Agent - position tracking that keeps working offline.",
    no_args_is_help=True,
)

# Register subcommands
app.add_typer(track_app, name="track")
app.add_typer(queue_app, name="queue")
app.add_typer(config_app, name="config")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"waypoint-agent {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Waypoint Agent - offline-buffered position tracking."""
    pass


app.command(name="status")(status_command)
app.command(name="sync")(sync_command)
app.command(name="summary")(summary_command)


if __name__ == "__main__":
    app()
