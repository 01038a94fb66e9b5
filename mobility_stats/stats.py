"""Per-user mobility statistics and their combination across users."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Final, Iterable, Mapping, Sequence

from mobility_stats.clustering import cluster_episodes, combine_clusters
from mobility_stats.dedup import deduplicate
from mobility_stats.errors import InvalidArgumentError, require_finite_coordinate, require_non_negative
from mobility_stats.geo import haversine_m
from mobility_stats.models import (
    COMBINED_USER_ID,
    DEFAULT_TZ,
    LocationSample,
    StopCluster,
    UserStatistics,
    empty_activity_hours,
)
from mobility_stats.regions import DEFAULT_GAZETTEER, Gazetteer, tally_regions
from mobility_stats.stops import find_stop_episodes
from mobility_stats.timeutils import local_hour, tzinfo_from_name

logger = logging.getLogger(__name__)

STOP_DISTANCE_M: Final[float] = 150.0
MIN_STOP_DURATION_MS: Final[int] = 5 * 60 * 1000
MAX_STOPS: Final[int] = 20
CLUSTER_DISTANCE_M: Final[float] = 800.0
COMBINE_DISTANCE_M: Final[float] = 200.0


@dataclass(frozen=True, slots=True)
class StatsParams:
    """Thresholds and timezone used by compute_statistics."""

    tz_name: str = DEFAULT_TZ
    stop_distance_m: float = STOP_DISTANCE_M
    min_stop_duration_ms: int = MIN_STOP_DURATION_MS
    max_stops: int = MAX_STOPS
    # Episodes closer than this are counted as visits to the same place.
    cluster_distance_m: float = CLUSTER_DISTANCE_M
    # Radius of the second pass that merges clusters of different users.
    combine_distance_m: float = COMBINE_DISTANCE_M

    def __post_init__(self) -> None:
        require_non_negative("stop_distance_m", self.stop_distance_m)
        require_non_negative("min_stop_duration_ms", self.min_stop_duration_ms)
        require_non_negative("max_stops", self.max_stops)
        require_non_negative("cluster_distance_m", self.cluster_distance_m)
        require_non_negative("combine_distance_m", self.combine_distance_m)
        try:
            tzinfo_from_name(self.tz_name)
        except ValueError as exc:
            raise InvalidArgumentError(str(exc)) from exc


def _path_length_m(points: Sequence[LocationSample]) -> float:
    total = 0.0
    for prev, cur in zip(points, points[1:]):
        total += haversine_m(prev.latitude, prev.longitude, cur.latitude, cur.longitude)
    return total


def compute_statistics(
    user_id: str,
    samples: Sequence[LocationSample],
    params: StatsParams | None = None,
    gazetteer: Gazetteer = DEFAULT_GAZETTEER,
) -> UserStatistics:
    """Compute mobility statistics for one user.

    Steps: deduplicate, sort by time, sum the haversine path length, bucket
    samples by local hour, detect and cluster stops, and tally regions over
    every raw input sample.

    Args:
        user_id: Owner of the samples.
        samples: The user's samples for one time window, any order.
        params: Thresholds and timezone (canonical defaults if None).
        gazetteer: Region data for naming stops and counting region visits.

    Returns:
        UserStatistics. Empty input yields zero counts, ``None`` timestamps,
        24 zero hour buckets and no stops.

    Raises:
        InvalidArgumentError: If any sample has non-finite coordinates.
    """

    params = params or StatsParams()
    if not samples:
        return UserStatistics(user_id=user_id)
    for s in samples:
        require_finite_coordinate(s.latitude, s.longitude)

    pts = sorted(deduplicate(samples), key=lambda s: s.timestamp_ms)

    hours = empty_activity_hours()
    for s in pts:
        hours[local_hour(s.timestamp_ms, params.tz_name)] += 1

    episodes = find_stop_episodes(
        pts,
        distance_threshold_m=params.stop_distance_m,
        min_duration_ms=params.min_stop_duration_ms,
    )
    stops = cluster_episodes(
        episodes,
        cluster_threshold_m=params.cluster_distance_m,
        max_stops=params.max_stops,
        gazetteer=gazetteer,
    )

    stats = UserStatistics(
        user_id=user_id,
        total_locations=len(pts),
        total_distance_meters=_path_length_m(pts),
        first_timestamp_ms=pts[0].timestamp_ms,
        last_timestamp_ms=pts[-1].timestamp_ms,
        activity_hours=hours,
        region_visits=tally_regions(samples, gazetteer),
        stops=stops,
    )
    logger.debug(
        "user %s: %s samples (%s unique), %.1f m, %s stops",
        user_id,
        len(samples),
        len(pts),
        stats.total_distance_meters,
        len(stops),
    )
    return stats


def combine_statistics(
    stats_list: Iterable[UserStatistics],
    *,
    user_id: str = COMBINED_USER_ID,
    cluster_threshold_m: float = COMBINE_DISTANCE_M,
    max_stops: int = MAX_STOPS,
) -> UserStatistics:
    """Merge several users' statistics into one combined view.

    Counts and distances are summed, the time span is the min/max over the
    users that have one, region and hour counts are added key-wise, and the
    stop lists are concatenated and re-clustered with ``combine_clusters``.
    """

    total_locations = 0
    total_distance = 0.0
    first: int | None = None
    last: int | None = None
    hours = empty_activity_hours()
    regions: dict[str, int] = {}
    all_stops: list[StopCluster] = []
    users = 0

    for st in stats_list:
        users += 1
        total_locations += st.total_locations
        total_distance += st.total_distance_meters
        if st.first_timestamp_ms is not None:
            first = st.first_timestamp_ms if first is None else min(first, st.first_timestamp_ms)
        if st.last_timestamp_ms is not None:
            last = st.last_timestamp_ms if last is None else max(last, st.last_timestamp_ms)
        for hour, count in st.activity_hours.items():
            hours[hour] = hours.get(hour, 0) + count
        for name, count in st.region_visits.items():
            regions[name] = regions.get(name, 0) + count
        all_stops.extend(st.stops)

    stops = combine_clusters(
        all_stops,
        cluster_threshold_m=cluster_threshold_m,
        max_stops=max_stops,
        user_id=user_id,
    )
    logger.debug("combined statistics of %s users into %s", users, user_id)
    return UserStatistics(
        user_id=user_id,
        total_locations=total_locations,
        total_distance_meters=total_distance,
        first_timestamp_ms=first,
        last_timestamp_ms=last,
        activity_hours=hours,
        region_visits=regions,
        stops=stops,
    )


def compute_combined_statistics(
    samples_by_user: Mapping[str, Sequence[LocationSample]],
    params: StatsParams | None = None,
    gazetteer: Gazetteer = DEFAULT_GAZETTEER,
    *,
    workers: int = 1,
    user_id: str = COMBINED_USER_ID,
) -> UserStatistics:
    """Compute each user's statistics, then combine them.

    Per-user computations are independent; with ``workers > 1`` they run on a
    thread pool. Results are gathered in the mapping's order so the combined
    stop clustering does not depend on scheduling.
    """

    params = params or StatsParams()
    items = list(samples_by_user.items())
    if workers > 1 and len(items) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(compute_statistics, uid, pts, params, gazetteer) for uid, pts in items]
            per_user = [f.result() for f in futures]
    else:
        per_user = [compute_statistics(uid, pts, params, gazetteer) for uid, pts in items]

    return combine_statistics(
        per_user,
        user_id=user_id,
        cluster_threshold_m=params.combine_distance_m,
        max_stops=params.max_stops,
    )
