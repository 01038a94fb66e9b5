import math

import pytest

from mobility_stats.errors import InvalidArgumentError
from mobility_stats.models import COMBINED_USER_ID, LocationSample, StopCluster, UserStatistics
from mobility_stats.stats import (
    StatsParams,
    combine_statistics,
    compute_combined_statistics,
    compute_statistics,
)

from track_data import HAIFA, JERUSALEM, MINUTE_MS

UTC_PARAMS = StatsParams(tz_name="UTC")


def test_empty_input_yields_zeroed_statistics():
    stats = compute_statistics("u1", [], UTC_PARAMS)

    assert stats.user_id == "u1"
    assert stats.total_locations == 0
    assert stats.total_distance_meters == 0
    assert stats.first_timestamp_ms is None
    assert stats.last_timestamp_ms is None
    assert stats.activity_hours == {h: 0 for h in range(24)}
    assert stats.region_visits == {}
    assert stats.stops == []


def test_single_sample():
    stats = compute_statistics("u1", [LocationSample("u1", *JERUSALEM, 0)], UTC_PARAMS)

    assert stats.total_locations == 1
    assert stats.total_distance_meters == 0
    assert stats.first_timestamp_ms == stats.last_timestamp_ms == 0
    assert stats.activity_hours[0] == 1
    assert stats.region_visits == {"Jerusalem": 1}


def test_ten_km_one_hour_apart(t0):
    d_lat = math.degrees(10_000 / 6_371_000)
    samples = [
        LocationSample("u1", 32.0, 34.9, t0),
        LocationSample("u1", 32.0 + d_lat, 34.9, t0 + 60 * MINUTE_MS),
    ]

    stats = compute_statistics("u1", samples, UTC_PARAMS)

    assert stats.total_distance_meters == pytest.approx(10_000, rel=0.01)
    assert {h: c for h, c in stats.activity_hours.items() if c} == {8: 1, 9: 1}
    assert len(stats.activity_hours) == 24
    assert stats.active_hours == 2
    assert stats.stops == []


def test_local_hour_uses_timezone(t0):
    # 08:00 UTC is 10:00 in Jerusalem in January
    stats = compute_statistics("u1", [LocationSample("u1", *JERUSALEM, t0)], StatsParams(tz_name="Asia/Jerusalem"))
    assert stats.activity_hours[10] == 1


def test_distance_follows_time_order_not_input_order(t0):
    a = LocationSample("u1", *JERUSALEM, t0)
    b = LocationSample("u1", *HAIFA, t0 + MINUTE_MS)
    c = LocationSample("u1", *JERUSALEM, t0 + 2 * MINUTE_MS)

    in_order = compute_statistics("u1", [a, b, c], UTC_PARAMS)
    shuffled = compute_statistics("u1", [c, a, b], UTC_PARAMS)

    assert shuffled.total_distance_meters == pytest.approx(in_order.total_distance_meters)
    assert shuffled.first_timestamp_ms == t0
    assert shuffled.last_timestamp_ms == t0 + 2 * MINUTE_MS


def test_duplicates_do_not_inflate_distance(t0):
    a = LocationSample("u1", *JERUSALEM, t0)
    jittered = LocationSample("u1", JERUSALEM[0] + 0.0002, JERUSALEM[1] + 0.0002, t0)
    b = LocationSample("u1", *HAIFA, t0 + MINUTE_MS)

    stats = compute_statistics("u1", [a, jittered, b], UTC_PARAMS)
    clean = compute_statistics("u1", [a, b], UTC_PARAMS)

    assert stats.total_locations == 2
    assert stats.total_distance_meters == pytest.approx(clean.total_distance_meters)
    # region visits are tallied over every raw sample
    assert sum(stats.region_visits.values()) == 3


def test_stops_for_two_places(two_place_track):
    stats = compute_statistics("u1", two_place_track, UTC_PARAMS)

    assert stats.total_locations == 50
    assert len(stats.stops) == 2
    assert [s.visit_count for s in stats.stops] == [2, 2]
    assert all(s.user_id == "u1" for s in stats.stops)
    assert sum(stats.region_visits.values()) == 50


def test_non_finite_sample_rejected(t0):
    with pytest.raises(InvalidArgumentError):
        compute_statistics("u1", [LocationSample("u1", math.inf, 34.0, t0)], UTC_PARAMS)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"stop_distance_m": -1.0},
        {"min_stop_duration_ms": -1},
        {"max_stops": -1},
        {"cluster_distance_m": math.nan},
        {"combine_distance_m": -0.5},
        {"tz_name": "Not/AZone"},
    ],
)
def test_invalid_params_rejected(kwargs):
    with pytest.raises(InvalidArgumentError):
        StatsParams(**kwargs)


def test_combined_total_locations(two_place_track, make_dwell, t0):
    other = make_dwell(JERUSALEM, t0, n=7, user_id="u2")
    s1 = compute_statistics("u1", two_place_track, UTC_PARAMS)
    s2 = compute_statistics("u2", other, UTC_PARAMS)

    combined = combine_statistics([s1, s2])

    assert combined.user_id == COMBINED_USER_ID
    assert combined.total_locations == s1.total_locations + s2.total_locations
    assert combined.total_distance_meters == pytest.approx(s1.total_distance_meters + s2.total_distance_meters)
    assert combined.activity_hours[8] == s1.activity_hours[8] + s2.activity_hours[8]
    assert sum(combined.activity_hours.values()) == 57
    assert combined.region_visits["Jerusalem"] == 7


def test_combine_ignores_missing_timestamps():
    empty = UserStatistics(user_id="u0")
    a = UserStatistics(user_id="u1", total_locations=2, first_timestamp_ms=500, last_timestamp_ms=900)
    b = UserStatistics(user_id="u2", total_locations=3, first_timestamp_ms=100, last_timestamp_ms=700)

    combined = combine_statistics([empty, a, b], user_id="team")

    assert combined.user_id == "team"
    assert combined.total_locations == 5
    assert combined.first_timestamp_ms == 100
    assert combined.last_timestamp_ms == 900


def test_combine_nothing():
    combined = combine_statistics([])
    assert combined.total_locations == 0
    assert combined.first_timestamp_ms is None
    assert combined.activity_hours == {h: 0 for h in range(24)}
    assert combined.stops == []


def test_combine_unions_regions_and_reclusters_stops():
    stop_a = StopCluster(*JERUSALEM, visit_count=2, average_duration_minutes=10.0, name="Jerusalem", user_id="u1")
    stop_b = StopCluster(
        JERUSALEM[0] + 0.0005, JERUSALEM[1], visit_count=2, average_duration_minutes=20.0, name="Jerusalem", user_id="u2"
    )
    stop_c = StopCluster(*HAIFA, visit_count=1, average_duration_minutes=7.0, name="Haifa", user_id="u2")
    a = UserStatistics(user_id="u1", region_visits={"Jerusalem": 4}, stops=[stop_a])
    b = UserStatistics(user_id="u2", region_visits={"Jerusalem": 1, "Haifa": 2}, stops=[stop_b, stop_c])

    combined = combine_statistics([a, b])

    assert combined.region_visits == {"Jerusalem": 5, "Haifa": 2}
    assert [s.name for s in combined.stops] == ["Jerusalem", "Haifa"]
    assert combined.stops[0].visit_count == 4
    assert combined.stops[0].average_duration_minutes == pytest.approx(15.0)
    assert combined.stops[0].user_id == COMBINED_USER_ID
    assert combined.stops[1].user_id == "u2"
    # inputs untouched
    assert stop_a.visit_count == 2


def test_parallel_and_sequential_agree(two_place_track, make_dwell, t0):
    by_user = {
        "u1": two_place_track,
        "u2": make_dwell(JERUSALEM, t0, n=9, user_id="u2"),
        "u3": make_dwell(HAIFA, t0, n=15, user_id="u3"),
        "u4": [],
    }

    sequential = compute_combined_statistics(by_user, UTC_PARAMS, workers=1)
    parallel = compute_combined_statistics(by_user, UTC_PARAMS, workers=4)

    assert parallel.to_dict() == sequential.to_dict()
    assert sequential.total_locations == 50 + 9 + 15


def test_to_dict_uses_wire_names(two_place_track):
    payload = compute_statistics("u1", two_place_track, UTC_PARAMS).to_dict()

    assert payload["user_id"] == "u1"
    assert payload["total_locations"] == 50
    assert set(payload["activity_hours"]) == {str(h) for h in range(24)}
    assert payload["common_stops"][0]["visit_count"] == 2
    assert "city_visits" in payload
    assert "distance_traveled_meters" in payload
