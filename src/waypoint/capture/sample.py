"""Position sample value type."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


def _aware(value: datetime) -> datetime:
    # Naive timestamps from device clocks are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class Sample:
    """One captured position reading.

    Attributes:
        latitude: Degrees north, -90..90
        longitude: Degrees east, -180..180
        captured_at: Timezone-aware capture time from the device clock
    """

    latitude: float
    longitude: float
    captured_at: datetime

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")
        object.__setattr__(self, "latitude", float(self.latitude))
        object.__setattr__(self, "longitude", float(self.longitude))
        object.__setattr__(self, "captured_at", _aware(self.captured_at))

    @classmethod
    def now(cls, latitude: float, longitude: float) -> "Sample":
        """Create a sample stamped with the current UTC time."""
        return cls(latitude, longitude, datetime.now(timezone.utc))

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "Sample":
        """Build a sample from a wire/replay payload.

        A missing timestamp is stamped with the current UTC time.

        Raises:
            KeyError: latitude or longitude missing
            ValueError: unparseable timestamp or out-of-range coordinates
        """
        raw_ts = data.get("timestamp")
        captured_at = (
            datetime.fromisoformat(raw_ts) if raw_ts else datetime.now(timezone.utc)
        )
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            captured_at=captured_at,
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the collection endpoint's JSON body."""
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.captured_at.isoformat(),
        }

    def restamped(self, captured_at: datetime | None = None) -> "Sample":
        """Return the same position with a new capture time."""
        return Sample(
            self.latitude,
            self.longitude,
            captured_at or datetime.now(timezone.utc),
        )
