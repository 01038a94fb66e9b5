"""Merge stop episodes into named stop clusters."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Sequence

from mobility_stats.errors import require_non_negative
from mobility_stats.geo import haversine_m
from mobility_stats.models import COMBINED_USER_ID, StopCluster, StopEpisode
from mobility_stats.regions import DEFAULT_GAZETTEER, Gazetteer

logger = logging.getLogger(__name__)


def _first_within(clusters: Sequence[StopCluster], lat: float, lon: float, threshold_m: float) -> StopCluster | None:
    """First cluster (creation order) whose center is within threshold_m of the point."""

    for c in clusters:
        if haversine_m(c.latitude, c.longitude, lat, lon) <= threshold_m:
            return c
    return None


def _rank(clusters: list[StopCluster], max_stops: int) -> list[StopCluster]:
    # sorted() is stable: equal visit counts keep creation order
    return sorted(clusters, key=lambda c: c.visit_count, reverse=True)[:max_stops]


def cluster_episodes(
    episodes: Iterable[StopEpisode],
    *,
    cluster_threshold_m: float,
    max_stops: int,
    gazetteer: Gazetteer = DEFAULT_GAZETTEER,
) -> list[StopCluster]:
    """Group stop episodes into clusters by proximity.

    Episodes are processed in the given order. Each one joins the first
    existing cluster whose center lies within ``cluster_threshold_m``; the
    cluster's visit count is incremented and its average duration updated as
    a running mean. Cluster centers stay where the founding episode put them.
    Unmatched episodes found a new cluster named after their region.

    Args:
        episodes: Stop episodes in emission order.
        cluster_threshold_m: Merge radius in meters.
        max_stops: Maximum number of clusters returned.
        gazetteer: Region data used to name new clusters.

    Returns:
        Clusters sorted by visit count (descending, ties in creation order),
        truncated to ``max_stops``.

    Raises:
        InvalidArgumentError: On negative or non-finite thresholds.
    """

    require_non_negative("cluster_threshold_m", cluster_threshold_m)
    require_non_negative("max_stops", max_stops)

    clusters: list[StopCluster] = []
    for ep in episodes:
        match = _first_within(clusters, ep.latitude, ep.longitude, cluster_threshold_m)
        if match is not None:
            match.absorb(1, ep.duration_minutes)
            continue
        clusters.append(
            StopCluster(
                latitude=ep.latitude,
                longitude=ep.longitude,
                visit_count=1,
                average_duration_minutes=ep.duration_minutes,
                name=gazetteer.classify(ep.latitude, ep.longitude),
                user_id=ep.user_id,
            )
        )

    logger.debug("clustered episodes into %s stop clusters (radius=%sm)", len(clusters), cluster_threshold_m)
    return _rank(clusters, int(max_stops))


def combine_clusters(
    clusters: Iterable[StopCluster],
    *,
    cluster_threshold_m: float,
    max_stops: int,
    user_id: str = COMBINED_USER_ID,
) -> list[StopCluster]:
    """Second clustering pass over already-clustered stops (e.g. several users).

    Works on copies, so the input clusters are left untouched. A cluster that
    falls within ``cluster_threshold_m`` of an earlier one is merged into it:
    visit counts add up and durations are averaged weighted by visit count.
    A merged cluster keeps its owner only when every contributor shares it;
    otherwise it is attributed to ``user_id``.
    """

    require_non_negative("cluster_threshold_m", cluster_threshold_m)
    require_non_negative("max_stops", max_stops)

    merged: list[StopCluster] = []
    for c in clusters:
        match = _first_within(merged, c.latitude, c.longitude, cluster_threshold_m)
        if match is None:
            merged.append(replace(c))
            continue
        match.absorb(c.visit_count, c.average_duration_minutes)
        if match.user_id != c.user_id:
            match.user_id = user_id

    logger.debug("combined stop clusters into %s (radius=%sm)", len(merged), cluster_threshold_m)
    return _rank(merged, int(max_stops))
