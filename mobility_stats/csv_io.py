"""CSV input/output for location samples and stop clusters."""

from __future__ import annotations

import csv
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from mobility_stats.models import LocationSample, StopCluster

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("latitude", "longitude", "timestamp")


@dataclass(frozen=True, slots=True)
class CsvSummary:
    """Quick summary of CSV parsing."""

    rows_total: int
    rows_parsed: int
    rows_skipped: int
    fieldnames: Sequence[str]


def _parse_int(value: str) -> int:
    return int(value.strip())


def _parse_float(value: str) -> float:
    v = float(value.strip())
    if not math.isfinite(v):
        raise ValueError(f"non-finite value {value!r}")
    return v


def _parse_row(row: dict[str, str], default_user_id: str) -> LocationSample:
    lat = _parse_float(row["latitude"])
    lon = _parse_float(row["longitude"])
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        raise ValueError(f"coordinate out of range: ({lat}, {lon})")
    accuracy_text = (row.get("accuracy") or "").strip()
    accuracy = _parse_float(accuracy_text) if accuracy_text else None
    if accuracy is not None and accuracy < 0:
        accuracy = None
    return LocationSample(
        user_id=(row.get("user_id") or "").strip() or default_user_id,
        latitude=lat,
        longitude=lon,
        timestamp_ms=_parse_int(row["timestamp"]),
        accuracy_m=accuracy,
    )


def load_location_samples(
    csv_path: str | Path,
    default_user_id: str = "unknown",
) -> tuple[list[LocationSample], CsvSummary]:
    """Load all samples into memory.

    Expected columns: ``user_id, latitude, longitude, timestamp, accuracy``
    where ``timestamp`` is epoch milliseconds. ``user_id`` and ``accuracy``
    are optional. Rows that cannot be parsed or whose coordinates fall outside
    the WGS84 range are skipped.

    Args:
        csv_path: Path to the CSV file.
        default_user_id: Owner for rows without a user_id.

    Returns:
        (samples, summary)

    Raises:
        KeyError: If a required column is missing.
    """

    p = Path(csv_path)
    rows_total = 0
    parsed: list[LocationSample] = []

    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        fieldnames: Sequence[str] = reader.fieldnames or ()
        missing = [name for name in REQUIRED_FIELDS if name not in fieldnames]
        if missing and fieldnames:
            raise KeyError(f"CSV is missing required columns {missing}; present: {list(fieldnames)}")
        for row in reader:
            rows_total += 1
            try:
                parsed.append(_parse_row(row, default_user_id))
            except (KeyError, ValueError, TypeError, AttributeError):
                # damaged or partial rows are skipped
                continue

    summary = CsvSummary(
        rows_total=rows_total,
        rows_parsed=len(parsed),
        rows_skipped=rows_total - len(parsed),
        fieldnames=fieldnames,
    )
    if summary.rows_skipped > 0:
        logger.warning("skipped %s of %s CSV rows that failed to parse", summary.rows_skipped, rows_total)
    return parsed, summary


def write_stops_csv(stops: Sequence[StopCluster], out_path: str | Path) -> None:
    """Write stop clusters to CSV, one row per cluster in the given order."""

    p = Path(out_path)
    with p.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(
            f,
            fieldnames=[
                "rank",
                "name",
                "latitude",
                "longitude",
                "visit_count",
                "average_duration_minutes",
                "user_id",
            ],
        )
        w.writeheader()
        for rank, s in enumerate(stops, start=1):
            w.writerow(
                {
                    "rank": rank,
                    "name": s.name,
                    "latitude": f"{s.latitude:.6f}",
                    "longitude": f"{s.longitude:.6f}",
                    "visit_count": s.visit_count,
                    "average_duration_minutes": f"{s.average_duration_minutes:.2f}",
                    "user_id": s.user_id,
                }
            )
