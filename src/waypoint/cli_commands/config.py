"""Configuration CLI commands."""

import json

import typer

from waypoint.config import config_file_path, get_settings

config_app = typer.Typer(
    name="config",
    help="Configuration management - view settings.",
    no_args_is_help=True,
)


@config_app.command()
def show(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show current configuration (tokens are never printed)."""
    settings = get_settings()

    config_data = {
        "server_url": settings.server_url,
        "track_url": settings.track_url,
        "summary_path": settings.summary_path,
        "token_configured": settings.token is not None,
        "token_file": str(settings.token_file) if settings.token_file else None,
        "upload_timeout": settings.upload_timeout,
        "sync_interval": settings.sync_interval,
        "connectivity_poll_interval": settings.connectivity_poll_interval,
        "capture_poll_interval": settings.capture_poll_interval,
        "max_rejections": settings.max_rejections,
        "max_pending": settings.max_pending,
        "data_dir": str(settings.data_path),
        "config_file": str(config_file_path()),
        "log_level": settings.log_level,
    }

    if output_json:
        typer.echo(json.dumps(config_data, indent=2))
        return

    typer.echo("")
    typer.echo("Waypoint Configuration")
    typer.echo("----------------------")
    for key, value in config_data.items():
        label = key.replace("_", " ").capitalize()
        typer.echo(f"{label}: {value if value is not None else '-'}")
    typer.echo("")
    typer.echo("Set values using environment variables with WAYPOINT_ prefix")
    typer.echo(f"or in {config_file_path()}")
    typer.echo("Example: WAYPOINT_SYNC_INTERVAL=120")
