import json
import math

import pytest

from mobility_stats.errors import InvalidArgumentError
from mobility_stats.models import LocationSample
from mobility_stats.regions import (
    DEFAULT_GAZETTEER,
    Gazetteer,
    Region,
    RegionBand,
    classify_region,
    load_gazetteer,
    tally_regions,
)


@pytest.mark.parametrize(
    "lat, lon, expected",
    [
        (31.7683, 35.2137, "Jerusalem"),
        (32.7940, 34.9896, "Haifa"),
        (29.5577, 34.9519, "Eilat"),
        (33.2824, 35.5691, "Metula"),
        (30.5000, 34.8000, "Negev Desert"),
    ],
)
def test_city_centers(lat, lon, expected):
    assert classify_region(lat, lon) == expected


def test_smaller_region_listed_first_wins():
    # Mitzpe Ramon lies inside the Negev Desert circle but is listed before it
    assert classify_region(30.6103, 34.8011) == "Mitzpe Ramon"


def test_first_match_not_nearest_match():
    # Tel Aviv's own center is within Ramat Gan's 4 km radius, which is listed earlier
    assert classify_region(32.0853, 34.7818) == "Ramat Gan"


@pytest.mark.parametrize(
    "lat, lon, expected",
    [
        (33.5, 35.0, "Northern Border"),
        (33.0, 30.0, "Northern Border"),
        (32.7, 20.0, "Upper Galilee"),
        (32.2, 34.0, "Central Coast"),
        (32.2, 36.5, "Lower Galilee"),
        (31.7, 30.0, "Central Plain"),
        (31.7, 40.0, "West Bank"),
        (31.2, 30.0, "Southern Coast"),
        (31.2, 40.0, "Judean Hills"),
        (30.5, 20.0, "Northern Negev"),
        (0.0, 0.0, "Southern Desert"),
        (-89.0, 179.0, "Southern Desert"),
    ],
)
def test_fallback_bands(lat, lon, expected):
    assert classify_region(lat, lon) == expected


def test_classification_is_total():
    for i in range(-12, 13):
        for j in range(-12, 13):
            assert classify_region(i * 7.5, j * 15.0)


@pytest.mark.parametrize("lat, lon", [(float("nan"), 34.0), (32.0, float("inf")), (-math.inf, 0.0)])
def test_non_finite_input_rejected(lat, lon):
    with pytest.raises(InvalidArgumentError):
        classify_region(lat, lon)


def test_tally_counts_every_sample():
    samples = [
        LocationSample("u1", 31.7683, 35.2137, 1),
        LocationSample("u1", 31.7684, 35.2138, 2),
        LocationSample("u1", 32.7940, 34.9896, 3),
    ]
    assert tally_regions(samples) == {"Jerusalem": 2, "Haifa": 1}


def test_custom_gazetteer():
    gaz = Gazetteer(
        [Region("Office", 52.52, 13.405, 500)],
        [RegionBand(50.0, "North"), RegionBand(-math.inf, "South")],
    )
    assert classify_region(52.52, 13.405, gaz) == "Office"
    assert classify_region(51.0, 10.0, gaz) == "North"
    assert classify_region(49.9, 10.0, gaz) == "South"


@pytest.mark.parametrize(
    "bands",
    [
        [],
        [RegionBand(30.0, "A")],
        [RegionBand(-math.inf, "A"), RegionBand(10.0, "B")],
        [RegionBand(10.0, "A"), RegionBand(10.0, "B"), RegionBand(-math.inf, "C")],
        [RegionBand(10.0, "A", split_longitude=5.0), RegionBand(-math.inf, "C")],
        [RegionBand(-math.inf, "")],
    ],
)
def test_invalid_band_chain_rejected(bands):
    with pytest.raises(InvalidArgumentError):
        Gazetteer([], bands)


def test_negative_radius_rejected():
    with pytest.raises(InvalidArgumentError):
        Gazetteer([Region("X", 0.0, 0.0, -1.0)], [RegionBand(-math.inf, "Y")])


def test_load_gazetteer_from_json(tmp_path):
    path = tmp_path / "gaz.json"
    path.write_text(
        json.dumps(
            {
                "regions": [{"name": "Campus", "lat": 40.0, "lon": -75.0, "radius_m": 1000}],
                "bands": [
                    {"min_lat": 40.0, "name": "Uptown", "split_lon": -75.0, "east_name": "Uptown East"},
                    {"min_lat": None, "name": "Downtown"},
                ],
            }
        ),
        encoding="utf-8",
    )

    gaz = load_gazetteer(path)

    assert len(gaz.regions) == 1
    assert classify_region(40.0, -75.0, gaz) == "Campus"
    assert classify_region(41.0, -80.0, gaz) == "Uptown"
    assert classify_region(41.0, -70.0, gaz) == "Uptown East"
    assert classify_region(39.0, -70.0, gaz) == "Downtown"


def test_load_gazetteer_without_open_band_rejected(tmp_path):
    path = tmp_path / "gaz.json"
    path.write_text(json.dumps({"regions": [], "bands": [{"min_lat": 0.0, "name": "North"}]}), encoding="utf-8")
    with pytest.raises(InvalidArgumentError):
        load_gazetteer(path)


def test_load_gazetteer_malformed(tmp_path):
    path = tmp_path / "gaz.json"
    path.write_text(json.dumps({"regions": [{"name": "X"}], "bands": []}), encoding="utf-8")
    with pytest.raises(InvalidArgumentError):
        load_gazetteer(path)


def test_default_gazetteer_is_valid():
    assert DEFAULT_GAZETTEER.bands[-1].min_latitude == -math.inf
    assert DEFAULT_GAZETTEER.regions[0].name == "Caesarea"


def test_load_gazetteer_missing_file(tmp_path):
    with pytest.raises(InvalidArgumentError, match="cannot read"):
        load_gazetteer(tmp_path / "missing.json")
