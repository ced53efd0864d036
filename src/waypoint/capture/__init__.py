"""Capture module for position samples and their sources."""

from waypoint.capture.loop import CaptureLoop, CaptureState
from waypoint.capture.sample import Sample
from waypoint.capture.source import PositionSource, ReplayPositionSource

__all__ = ["CaptureLoop", "CaptureState", "PositionSource", "ReplayPositionSource", "Sample"]
