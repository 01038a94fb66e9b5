"""Data models for location samples, stops and per-user statistics."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Final


DEFAULT_TZ: Final[str] = "Asia/Jerusalem"

# Owner marker for statistics and stop clusters aggregated across users.
COMBINED_USER_ID: Final[str] = "all_users"

HOURS_PER_DAY: Final[int] = 24


@dataclass(frozen=True, slots=True)
class LocationSample:
    """A single raw location reading.

    Attributes:
        user_id: Opaque user identifier.
        latitude: Latitude in decimal degrees (WGS84).
        longitude: Longitude in decimal degrees (WGS84).
        timestamp_ms: Unix epoch milliseconds. Not unique or ordered on input.
        accuracy_m: Reported horizontal accuracy in meters, advisory only.
    """

    user_id: str
    latitude: float
    longitude: float
    timestamp_ms: int
    accuracy_m: float | None = None


@dataclass(frozen=True, slots=True)
class StopEpisode:
    """A contiguous run of samples where the user stayed roughly in place."""

    user_id: str
    latitude: float
    longitude: float
    start_ms: int
    end_ms: int
    points: int

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms

    @property
    def duration_minutes(self) -> float:
        return self.duration_ms / 60_000.0


@dataclass(slots=True)
class StopCluster:
    """A named dwell location aggregating one or more stop episodes.

    Note:
        Position stays at the value of the episode that created the cluster.
        ``average_duration_minutes`` is an incremental weighted mean and is
        never recomputed from the full visit history, so it may drift from
        an exact recomputation by floating point error.
    """

    latitude: float
    longitude: float
    visit_count: int
    average_duration_minutes: float
    name: str
    user_id: str

    def absorb(self, visits: int, average_minutes: float) -> None:
        """Merge ``visits`` visits averaging ``average_minutes`` into this cluster."""

        total = self.visit_count + visits
        self.average_duration_minutes = (
            self.average_duration_minutes * self.visit_count + average_minutes * visits
        ) / total
        self.visit_count = total

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "visit_count": self.visit_count,
            "average_duration_minutes": self.average_duration_minutes,
            "user_id": self.user_id,
        }


def empty_activity_hours() -> dict[int, int]:
    """Hour-of-day histogram with all 24 buckets present and zeroed."""

    return {hour: 0 for hour in range(HOURS_PER_DAY)}


@dataclass(frozen=True, slots=True)
class UserStatistics:
    """Aggregate mobility statistics for one user or a combined group of users."""

    user_id: str
    total_locations: int = 0
    total_distance_meters: float = 0.0
    first_timestamp_ms: int | None = None
    last_timestamp_ms: int | None = None
    activity_hours: dict[int, int] = field(default_factory=empty_activity_hours)
    region_visits: dict[str, int] = field(default_factory=dict)
    stops: list[StopCluster] = field(default_factory=list)

    @property
    def total_distance_km(self) -> float:
        return self.total_distance_meters / 1000.0

    @property
    def active_hours(self) -> int:
        """Number of hour-of-day buckets with at least one sample."""

        return sum(1 for count in self.activity_hours.values() if count > 0)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready mapping using the reporting wire names."""

        return {
            "user_id": self.user_id,
            "total_locations": self.total_locations,
            "distance_traveled_meters": self.total_distance_meters,
            "first_location_timestamp": self.first_timestamp_ms,
            "last_location_timestamp": self.last_timestamp_ms,
            "activity_hours": {str(h): c for h, c in sorted(self.activity_hours.items())},
            "city_visits": dict(self.region_visits),
            "common_stops": [s.to_dict() for s in self.stops],
        }
