"""Stop (dwell) detection over a user's time-ordered samples."""

from __future__ import annotations

import logging
from typing import Sequence

from mobility_stats.clustering import cluster_episodes
from mobility_stats.dedup import deduplicate
from mobility_stats.errors import require_finite_coordinate, require_non_negative
from mobility_stats.geo import haversine_m
from mobility_stats.models import LocationSample, StopCluster, StopEpisode
from mobility_stats.regions import DEFAULT_GAZETTEER, Gazetteer

logger = logging.getLogger(__name__)

MIN_STOP_POINTS = 3


def _close_run(run: list[LocationSample], min_duration_ms: int, out: list[StopEpisode]) -> None:
    if len(run) < MIN_STOP_POINTS:
        return
    start_ms = run[0].timestamp_ms
    end_ms = run[-1].timestamp_ms
    if end_ms - start_ms < min_duration_ms:
        return
    n = len(run)
    out.append(
        StopEpisode(
            user_id=run[0].user_id,
            latitude=sum(s.latitude for s in run) / n,
            longitude=sum(s.longitude for s in run) / n,
            start_ms=start_ms,
            end_ms=end_ms,
            points=n,
        )
    )


def find_stop_episodes(
    samples: Sequence[LocationSample],
    *,
    distance_threshold_m: float,
    min_duration_ms: int,
) -> list[StopEpisode]:
    """Segment a sample sequence into dwell episodes.

    A run starts at a sample and keeps absorbing following samples while they
    stay within ``distance_threshold_m`` of the run's *first* sample. When a
    sample falls outside, the run is emitted if it has at least three members
    and spans at least ``min_duration_ms``, and a new run starts at that
    sample. The trailing run is flushed the same way.

    Args:
        samples: Deduplicated samples of one user, sorted ascending by time.
        distance_threshold_m: Maximum distance from the run anchor in meters.
        min_duration_ms: Minimum span (last - first timestamp) of an episode.

    Returns:
        Episodes in time order. Fewer than three samples yields an empty list.

    Raises:
        InvalidArgumentError: On negative thresholds or non-finite coordinates.
    """

    require_non_negative("distance_threshold_m", distance_threshold_m)
    require_non_negative("min_duration_ms", min_duration_ms)
    for s in samples:
        require_finite_coordinate(s.latitude, s.longitude)

    if len(samples) < MIN_STOP_POINTS:
        return []

    episodes: list[StopEpisode] = []
    run: list[LocationSample] = [samples[0]]
    for cur in samples[1:]:
        anchor = run[0]
        if haversine_m(anchor.latitude, anchor.longitude, cur.latitude, cur.longitude) <= distance_threshold_m:
            run.append(cur)
            continue
        _close_run(run, min_duration_ms, episodes)
        run = [cur]
    _close_run(run, min_duration_ms, episodes)

    logger.debug("found %s stop episodes in %s samples", len(episodes), len(samples))
    return episodes


def find_stops(
    samples: Sequence[LocationSample],
    distance_threshold_m: float = 150.0,
    min_duration_ms: int = 5 * 60 * 1000,
    max_stops: int = 20,
    *,
    cluster_threshold_m: float | None = None,
    gazetteer: Gazetteer = DEFAULT_GAZETTEER,
) -> list[StopCluster]:
    """Detect and cluster the stops of one user.

    Input may be unsorted and contain duplicates; it is deduplicated and
    sorted by timestamp first.

    Args:
        samples: Raw samples of a single user.
        distance_threshold_m: Stop radius around the run anchor.
        min_duration_ms: Minimum dwell duration.
        max_stops: Maximum number of clusters returned.
        cluster_threshold_m: Merge radius for clustering episodes. Defaults
            to ``distance_threshold_m``.
        gazetteer: Region data used to name clusters.

    Returns:
        Stop clusters, most visited first.
    """

    require_non_negative("max_stops", max_stops)
    pts = sorted(deduplicate(samples), key=lambda s: s.timestamp_ms)
    episodes = find_stop_episodes(
        pts,
        distance_threshold_m=distance_threshold_m,
        min_duration_ms=min_duration_ms,
    )
    return cluster_episodes(
        episodes,
        cluster_threshold_m=distance_threshold_m if cluster_threshold_m is None else cluster_threshold_m,
        max_stops=max_stops,
        gazetteer=gazetteer,
    )
