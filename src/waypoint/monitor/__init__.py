"""Monitor module for connectivity tracking and state broadcast."""

from waypoint.monitor.channel import Channel, Subscription
from waypoint.monitor.connectivity import (
    ConnectivityMonitor,
    ConnectivityState,
    HttpProbe,
    ReachabilityProbe,
    TcpProbe,
)

__all__ = [
    "Channel",
    "ConnectivityMonitor",
    "ConnectivityState",
    "HttpProbe",
    "ReachabilityProbe",
    "Subscription",
    "TcpProbe",
]
