from __future__ import annotations

from datetime import date, datetime, time, timedelta
from pathlib import Path

import streamlit as st

from mobility_stats.csv_io import load_location_samples
from mobility_stats.dedup import group_by_user
from mobility_stats.models import COMBINED_USER_ID, DEFAULT_TZ, LocationSample, UserStatistics
from mobility_stats.regions import DEFAULT_GAZETTEER, load_gazetteer
from mobility_stats.stats import (
    CLUSTER_DISTANCE_M,
    COMBINE_DISTANCE_M,
    MAX_STOPS,
    MIN_STOP_DURATION_MS,
    STOP_DISTANCE_M,
    StatsParams,
    compute_combined_statistics,
    compute_statistics,
)
from mobility_stats.timeutils import dt_from_epoch_ms, tzinfo_from_name

ALL_USERS_LABEL = "All users"
DEFAULT_WORKERS = 4


def _range_to_epoch_ms(start_d: date, end_d: date, tz_name: str) -> tuple[int, int]:
    """Convert date range to epoch-ms [start, end) in tz."""

    tz = tzinfo_from_name(tz_name)
    start_dt = datetime.combine(start_d, time.min).replace(tzinfo=tz)
    end_dt = datetime.combine(end_d + timedelta(days=1), time.min).replace(tzinfo=tz)
    return int(start_dt.timestamp() * 1000), int(end_dt.timestamp() * 1000)


@st.cache_data(show_spinner=False)
def _load_samples(csv_path: str, mtime: float) -> list[LocationSample]:
    _ = mtime  # part of cache key so updated files reload automatically
    samples, _summary = load_location_samples(csv_path)
    return samples


def _render(stats: UserStatistics, tz_name: str, users: int) -> None:
    st.subheader("Summary")
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Users", str(users))
    c2.metric("Locations", str(stats.total_locations))
    c3.metric("Distance (km)", f"{stats.total_distance_km:.1f}")
    c4.metric("Active hours", str(stats.active_hours))

    if stats.first_timestamp_ms is not None and stats.last_timestamp_ms is not None:
        first = dt_from_epoch_ms(stats.first_timestamp_ms, tz_name)
        last = dt_from_epoch_ms(stats.last_timestamp_ms, tz_name)
        st.caption(f"From {first.isoformat(sep=' ')} to {last.isoformat(sep=' ')}")

    st.subheader("Activity by hour of day")
    st.bar_chart({"samples": [stats.activity_hours[h] for h in range(24)]})

    left, right = st.columns(2)
    with left:
        st.subheader("Region visits")
        rows = [
            {"region": name, "samples": count}
            for name, count in sorted(stats.region_visits.items(), key=lambda kv: kv[1], reverse=True)
        ]
        st.dataframe(rows, use_container_width=True, height=420)
    with right:
        st.subheader("Common stops")
        rows = [
            {
                "name": s.name,
                "visits": s.visit_count,
                "avg_minutes": round(s.average_duration_minutes, 1),
                "latitude": round(s.latitude, 5),
                "longitude": round(s.longitude, 5),
                "user_id": s.user_id,
            }
            for s in stats.stops
        ]
        st.dataframe(rows, use_container_width=True, height=420)


def main() -> None:
    st.set_page_config(page_title="Mobility statistics", layout="wide")
    st.title("Mobility statistics")

    with st.sidebar:
        st.subheader("Data")
        tz_name = st.text_input("Timezone (IANA)", value=DEFAULT_TZ)
        csv_path = st.text_input("Locations CSV", value="locations.csv")
        gazetteer_path = st.text_input("Gazetteer JSON (optional)", value="")

        with st.expander("Thresholds", expanded=False):
            stop_distance_m = st.number_input("Stop radius (m)", value=STOP_DISTANCE_M, step=10.0)
            min_minutes = st.number_input("Minimum stop (min)", value=MIN_STOP_DURATION_MS / 60_000, step=1.0)
            cluster_distance_m = st.number_input("Stop merge radius (m)", value=CLUSTER_DISTANCE_M, step=50.0)
            combine_distance_m = st.number_input("Cross-user merge radius (m)", value=COMBINE_DISTANCE_M, step=50.0)
            max_stops = st.number_input("Max stops", value=MAX_STOPS, step=1, min_value=0)
            workers = st.number_input("Workers", value=DEFAULT_WORKERS, step=1, min_value=1)

    p = Path(csv_path)
    if not p.exists():
        st.error(f"File not found: {csv_path!r}")
        return

    try:
        samples = _load_samples(csv_path, p.stat().st_mtime)
        params = StatsParams(
            tz_name=tz_name,
            stop_distance_m=float(stop_distance_m),
            min_stop_duration_ms=int(float(min_minutes) * 60 * 1000),
            max_stops=int(max_stops),
            cluster_distance_m=float(cluster_distance_m),
            combine_distance_m=float(combine_distance_m),
        )
        gazetteer = load_gazetteer(gazetteer_path) if gazetteer_path else DEFAULT_GAZETTEER
    except Exception as exc:
        st.exception(exc)
        return

    by_user = group_by_user(samples)
    with st.sidebar:
        st.subheader("User and period")
        choice = st.selectbox("User", [ALL_USERS_LABEL, *sorted(by_user)])
        today = datetime.now(tzinfo_from_name(tz_name)).date()
        start_d = st.date_input("Start date", value=today.replace(day=1))
        end_d = st.date_input("End date", value=today)

    if start_d > end_d:
        st.error("Start date must not be after end date.")
        return

    start_ms, end_ms = _range_to_epoch_ms(start_d, end_d, tz_name)
    in_range = {
        uid: [s for s in pts if start_ms <= s.timestamp_ms < end_ms]
        for uid, pts in by_user.items()
    }

    with st.spinner("Computing statistics ..."):
        if choice == ALL_USERS_LABEL:
            stats = compute_combined_statistics(
                in_range, params, gazetteer, workers=int(workers), user_id=COMBINED_USER_ID
            )
            users = len(in_range)
        else:
            stats = compute_statistics(choice, in_range[choice], params, gazetteer)
            users = 1

    _render(stats, tz_name, users)
    st.caption(
        "Dates are interpreted in the selected timezone as [start 00:00, end+1 00:00). "
        "Region names come from the built-in or supplied gazetteer."
    )


if __name__ == "__main__":
    main()
