"""Coarse place naming from a static gazetteer (no geocoding service).

A gazetteer is an ordered list of named circles plus an ordered chain of
latitude bands. Circles are scanned in priority order and the first one that
contains the point wins, so small towns must be listed before the large
cities and regional areas that enclose them. Points outside every circle fall
through to the band chain, which ends in an open-ended band and therefore
always yields a name.
"""

from __future__ import annotations

import json
import math
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Sequence

from mobility_stats.errors import InvalidArgumentError, require_finite_coordinate
from mobility_stats.geo import is_inside_circle
from mobility_stats.models import LocationSample


@dataclass(frozen=True, slots=True)
class Region:
    """A named circle (center + radius)."""

    name: str
    center_lat: float
    center_lon: float
    radius_m: float


@dataclass(frozen=True, slots=True)
class RegionBand:
    """Fallback band covering every latitude >= ``min_latitude``.

    If ``split_longitude`` is set, points with ``lon <= split_longitude`` get
    ``name`` and the rest get ``east_name``.
    """

    min_latitude: float
    name: str
    split_longitude: float | None = None
    east_name: str | None = None

    def label(self, lon: float) -> str:
        if self.split_longitude is None or lon <= self.split_longitude:
            return self.name
        return self.east_name or self.name


class Gazetteer:
    """Priority-ordered regions plus an exhaustive latitude band chain."""

    def __init__(self, regions: Sequence[Region], bands: Sequence[RegionBand]) -> None:
        self.regions: tuple[Region, ...] = tuple(regions)
        self.bands: tuple[RegionBand, ...] = tuple(bands)
        self._validate()

    def _validate(self) -> None:
        for r in self.regions:
            if not r.name:
                raise InvalidArgumentError("region name must not be empty")
            require_finite_coordinate(r.center_lat, r.center_lon)
            if not (r.radius_m >= 0):
                raise InvalidArgumentError(f"region {r.name!r} has invalid radius {r.radius_m!r}")

        if not self.bands:
            raise InvalidArgumentError("gazetteer needs at least one fallback band")
        prev = math.inf
        for b in self.bands:
            if not b.name:
                raise InvalidArgumentError("band name must not be empty")
            if b.split_longitude is not None and not b.east_name:
                raise InvalidArgumentError(f"band {b.name!r} splits by longitude but has no east_name")
            if math.isnan(b.min_latitude) or b.min_latitude >= prev:
                raise InvalidArgumentError("bands must be ordered by strictly decreasing min_latitude")
            prev = b.min_latitude
        if self.bands[-1].min_latitude != -math.inf:
            raise InvalidArgumentError("last band must be open-ended (min_latitude = -inf)")

    def classify(self, lat: float, lon: float) -> str:
        """Return the name of the first region containing the point, else its band label."""

        require_finite_coordinate(lat, lon)
        for r in self.regions:
            if is_inside_circle(lat, lon, r.center_lat, r.center_lon, r.radius_m):
                return r.name
        for b in self.bands:
            if lat >= b.min_latitude:
                return b.label(lon)
        # unreachable: the last band is open-ended
        return self.bands[-1].label(lon)

    def __repr__(self) -> str:
        return f"Gazetteer(regions={len(self.regions)}, bands={len(self.bands)})"


def _gazetteer_from_dict(data: dict[str, Any]) -> Gazetteer:
    regions = [
        Region(
            name=str(item["name"]),
            center_lat=float(item["lat"]),
            center_lon=float(item["lon"]),
            radius_m=float(item["radius_m"]),
        )
        for item in data.get("regions", [])
    ]
    bands = []
    for item in data.get("bands", []):
        min_lat = item.get("min_lat")
        split = item.get("split_lon")
        bands.append(
            RegionBand(
                min_latitude=-math.inf if min_lat is None else float(min_lat),
                name=str(item["name"]),
                split_longitude=None if split is None else float(split),
                east_name=item.get("east_name"),
            )
        )
    return Gazetteer(regions, bands)


def load_gazetteer(path: str | Path) -> Gazetteer:
    """Load a gazetteer from JSON.

    Expected shape::

        {
          "regions": [{"name": "Haifa", "lat": 32.794, "lon": 34.9896, "radius_m": 10000}],
          "bands": [
            {"min_lat": 32.0, "name": "North", "split_lon": 35.0, "east_name": "North East"},
            {"min_lat": null, "name": "South"}
          ]
        }

    A ``null`` ``min_lat`` marks the open-ended last band.

    Raises:
        InvalidArgumentError: If the file is not a valid gazetteer.
    """

    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except OSError as exc:
        raise InvalidArgumentError(f"cannot read gazetteer file {str(p)!r}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise InvalidArgumentError(f"gazetteer file {str(p)!r} is not valid JSON: {exc}") from exc
    try:
        return _gazetteer_from_dict(data)
    except InvalidArgumentError:
        raise
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise InvalidArgumentError(f"gazetteer file {str(p)!r} is malformed: {exc}") from exc


# Small/specific places first, large cities next, regional areas last.
_ISRAEL_REGIONS: tuple[Region, ...] = (
    Region("Caesarea", 32.5016, 34.8933, 4000),
    Region("Herzliya", 32.1624, 34.8441, 5000),
    Region("Ramat Gan", 32.0823, 34.8140, 4000),
    Region("Bnei Brak", 32.0808, 34.8338, 3500),
    Region("Holon", 32.0167, 34.7667, 4000),
    Region("Petah Tikva", 32.0878, 34.8878, 5000),
    Region("Maaleh Adumim", 31.7730, 35.2954, 4000),
    Region("Metula", 33.2824, 35.5691, 3000),
    Region("Ein Gedi", 31.4619, 35.3888, 4000),
    Region("Sderot", 31.5240, 34.5965, 4000),
    Region("Umm al-Fahm", 32.5189, 35.1522, 4000),
    Region("Netanya", 32.3226, 34.8533, 6000),
    Region("Hadera", 32.4341, 34.9191, 5000),
    Region("Nahariya", 33.0073, 35.0950, 5000),
    Region("Acre", 32.9234, 35.0818, 5000),
    Region("Ashkelon", 31.6688, 34.5742, 7000),
    Region("Ashdod", 31.8040, 34.6550, 8000),
    Region("Kiryat Gat", 31.6100, 34.7642, 5000),
    Region("Bethlehem", 31.7054, 35.2024, 5000),
    Region("Ramallah", 31.8996, 35.2042, 6000),
    Region("Hebron", 31.5326, 35.0998, 6000),
    Region("Kiryat Shmona", 33.2072, 35.5695, 5000),
    Region("Safed", 32.9647, 35.4950, 5000),
    Region("Tiberias", 32.7940, 35.5300, 6000),
    Region("Afula", 32.6044, 35.2897, 6000),
    Region("Nazareth", 32.7018, 35.2985, 6000),
    Region("Jenin", 32.4615, 35.2969, 5000),
    Region("Beit Shean", 32.4969, 35.4997, 5000),
    Region("Arad", 31.2587, 35.2137, 5000),
    Region("Dimona", 31.0686, 35.0299, 5000),
    Region("Mitzpe Ramon", 30.6103, 34.8011, 5000),
    Region("Gaza", 31.5017, 34.4668, 6000),
    Region("Jericho", 31.8607, 35.4444, 5000),
    Region("Jordan Valley", 32.2000, 35.5500, 8000),
    Region("Tel Aviv", 32.0853, 34.7818, 8000),
    Region("Jerusalem", 31.7683, 35.2137, 12000),
    Region("Haifa", 32.7940, 34.9896, 10000),
    Region("Beer Sheva", 31.2530, 34.7915, 10000),
    Region("Eilat", 29.5577, 34.9519, 8000),
    Region("Dead Sea Region", 31.3000, 35.4500, 15000),
    Region("Golan Heights", 32.9000, 35.7500, 12000),
    Region("Negev Desert", 30.5000, 34.8000, 25000),
)

_ISRAEL_BANDS: tuple[RegionBand, ...] = (
    RegionBand(33.0, "Northern Border"),
    RegionBand(32.5, "Upper Galilee"),
    RegionBand(32.0, "Central Coast", split_longitude=35.0, east_name="Lower Galilee"),
    RegionBand(31.5, "Central Plain", split_longitude=34.8, east_name="West Bank"),
    RegionBand(31.0, "Southern Coast", split_longitude=34.7, east_name="Judean Hills"),
    RegionBand(30.0, "Northern Negev"),
    RegionBand(-math.inf, "Southern Desert"),
)

DEFAULT_GAZETTEER = Gazetteer(_ISRAEL_REGIONS, _ISRAEL_BANDS)


def classify_region(lat: float, lon: float, gazetteer: Gazetteer = DEFAULT_GAZETTEER) -> str:
    """Map a coordinate to a region name (never empty).

    Raises:
        InvalidArgumentError: If lat/lon is not finite.
    """

    return gazetteer.classify(lat, lon)


def tally_regions(
    samples: Iterable[LocationSample],
    gazetteer: Gazetteer = DEFAULT_GAZETTEER,
) -> dict[str, int]:
    """Count samples per region name, keys in first-seen order."""

    counts: Counter[str] = Counter()
    for s in samples:
        counts[gazetteer.classify(s.latitude, s.longitude)] += 1
    return dict(counts)
