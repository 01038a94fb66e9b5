"""Duplicate removal and per-user grouping of raw samples."""

from __future__ import annotations

from typing import Iterable

from mobility_stats.models import LocationSample


def deduplicate(samples: Iterable[LocationSample]) -> list[LocationSample]:
    """Drop repeated readings of the same user at the same timestamp.

    The first occurrence of each ``(user_id, timestamp_ms)`` key is kept and
    input order is preserved (output is not re-sorted). Repeats come from
    retransmission or from the ingestion layer fanning out jittered copies of
    a reading; they must not inflate distance or stop durations.
    """

    seen: set[tuple[str, int]] = set()
    out: list[LocationSample] = []
    for s in samples:
        key = (s.user_id, s.timestamp_ms)
        if key in seen:
            continue
        seen.add(key)
        out.append(s)
    return out


def group_by_user(samples: Iterable[LocationSample]) -> dict[str, list[LocationSample]]:
    """Split a mixed batch into per-user lists, users in first-seen order."""

    grouped: dict[str, list[LocationSample]] = {}
    for s in samples:
        grouped.setdefault(s.user_id, []).append(s)
    return grouped
