"""Engine module for routing, syncing and orchestration."""

from waypoint.engine.orchestrator import TrackingService
from waypoint.engine.router import RouteDecision, SampleRouter
from waypoint.engine.sync_engine import DrainReport, SyncEngine

__all__ = ["DrainReport", "RouteDecision", "SampleRouter", "SyncEngine", "TrackingService"]
