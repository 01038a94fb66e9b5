"""Exception types raised by the mobility statistics pipeline."""

from __future__ import annotations

import math


class MobilityStatsError(Exception):
    """Base class for errors raised by mobility_stats."""


class InvalidArgumentError(MobilityStatsError, ValueError):
    """Malformed input: non-finite coordinates, negative thresholds, bad configuration."""


def require_finite_coordinate(lat: float, lon: float) -> None:
    """Raise InvalidArgumentError unless both coordinates are finite."""

    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidArgumentError(f"non-finite coordinate: ({lat!r}, {lon!r})")


def require_non_negative(name: str, value: float) -> None:
    """Raise InvalidArgumentError unless ``value`` is finite and >= 0."""

    if not math.isfinite(value) or value < 0:
        raise InvalidArgumentError(f"{name} must be a finite non-negative number, got {value!r}")
