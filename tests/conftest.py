from __future__ import annotations

from datetime import UTC, datetime
from typing import Callable

import pytest

from mobility_stats.models import LocationSample
from mobility_stats.timeutils import epoch_ms_from_dt

from track_data import JITTER, MINUTE_MS, NORTH_TEL_AVIV, TEL_AVIV


@pytest.fixture
def t0() -> int:
    """2024-01-15 08:00:00 UTC in epoch ms."""

    return epoch_ms_from_dt(datetime(2024, 1, 15, 8, 0, 0, tzinfo=UTC))


@pytest.fixture
def make_dwell() -> Callable[..., list[LocationSample]]:
    """Build ``n`` jittered samples around ``center`` spaced ``step_ms`` apart."""

    def _make(
        center: tuple[float, float],
        start_ms: int,
        n: int = 12,
        step_ms: int = MINUTE_MS,
        user_id: str = "u1",
    ) -> list[LocationSample]:
        lat, lon = center
        return [
            LocationSample(
                user_id=user_id,
                latitude=lat + JITTER[i % len(JITTER)][0],
                longitude=lon + JITTER[i % len(JITTER)][1],
                timestamp_ms=start_ms + i * step_ms,
            )
            for i in range(n)
        ]

    return _make


@pytest.fixture
def two_place_track(make_dwell, t0) -> list[LocationSample]:
    """50 samples: four 11-minute dwells alternating between two places >2 km apart."""

    mid = ((TEL_AVIV[0] + NORTH_TEL_AVIV[0]) / 2, TEL_AVIV[1])
    track: list[LocationSample] = []
    cursor = t0
    for i, center in enumerate([TEL_AVIV, NORTH_TEL_AVIV, TEL_AVIV, NORTH_TEL_AVIV]):
        dwell = make_dwell(center, cursor)
        track.extend(dwell)
        cursor = dwell[-1].timestamp_ms + 5 * MINUTE_MS
        if i in (0, 2):
            track.append(LocationSample("u1", mid[0], mid[1], cursor))
            cursor += 5 * MINUTE_MS
    return track
