"""Waypoint - offline-buffered position tracking agent."""

__version__ = "0.1.0"
