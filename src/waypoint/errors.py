"""Exception types raised by the Waypoint agent."""


class WaypointError(Exception):
    """Base class for all Waypoint errors."""


class StorageError(WaypointError):
    """Local persistence fault.

    Raised by the sample queue when SQLite (or the filesystem underneath it)
    fails. The queue is left in its last committed state.
    """
