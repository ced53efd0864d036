"""CLI command modules for the Waypoint agent."""

from waypoint.cli_commands.config import config_app
from waypoint.cli_commands.queue import queue_app
from waypoint.cli_commands.remote import summary_command, sync_command
from waypoint.cli_commands.status import status_command
from waypoint.cli_commands.track import track_app

__all__ = [
    "config_app",
    "queue_app",
    "status_command",
    "summary_command",
    "sync_command",
    "track_app",
]
