"""Command-line interface for mobility_stats.

Run:
    python -m mobility_stats stats --csv locations.csv --all-users
"""

from __future__ import annotations

import argparse
import json
import logging
from typing import Sequence

from mobility_stats.csv_io import load_location_samples, write_stops_csv
from mobility_stats.dedup import group_by_user
from mobility_stats.errors import MobilityStatsError
from mobility_stats.models import COMBINED_USER_ID, DEFAULT_TZ, LocationSample, UserStatistics
from mobility_stats.regions import DEFAULT_GAZETTEER, Gazetteer, classify_region, load_gazetteer
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
from mobility_stats.stops import find_stops
from mobility_stats.timeutils import dt_from_epoch_ms, epoch_ms_from_dt, parse_dt

logger = logging.getLogger(__name__)


def _gazetteer(args: argparse.Namespace) -> Gazetteer:
    if getattr(args, "gazetteer", None):
        return load_gazetteer(args.gazetteer)
    return DEFAULT_GAZETTEER


def _filter_range(points: list[LocationSample], args: argparse.Namespace) -> list[LocationSample]:
    if args.range_start is None and args.range_end is None:
        return points
    start_ms = epoch_ms_from_dt(parse_dt(args.range_start, args.tz)) if args.range_start else None
    end_ms = epoch_ms_from_dt(parse_dt(args.range_end, args.tz)) if args.range_end else None
    if start_ms is not None:
        points = [p for p in points if p.timestamp_ms >= start_ms]
    if end_ms is not None:
        points = [p for p in points if p.timestamp_ms <= end_ms]
    return points


def _params(args: argparse.Namespace) -> StatsParams:
    return StatsParams(
        tz_name=args.tz,
        stop_distance_m=args.distance_m,
        min_stop_duration_ms=int(args.min_duration_minutes * 60 * 1000),
        max_stops=args.max_stops,
        cluster_distance_m=args.cluster_distance_m,
        combine_distance_m=args.combine_distance_m,
    )


def _print_report(stats: UserStatistics, tz_name: str, users: int) -> None:
    print(f"### User: {stats.user_id} (users={users})")
    print(f"locations={stats.total_locations}, distance={stats.total_distance_km:.1f} km, active_hours={stats.active_hours}")
    print()

    if stats.first_timestamp_ms is not None and stats.last_timestamp_ms is not None:
        start = dt_from_epoch_ms(stats.first_timestamp_ms, tz_name)
        end = dt_from_epoch_ms(stats.last_timestamp_ms, tz_name)
        print("### Time range (local)")
        print(f"start={start.isoformat(sep=' ')}, end={end.isoformat(sep=' ')}")
        print()

    print("### Activity by hour")
    print(", ".join(f"{h:02d}={c}" for h, c in sorted(stats.activity_hours.items()) if c > 0) or "(none)")
    print()

    print("### Region visits")
    for name, count in sorted(stats.region_visits.items(), key=lambda kv: kv[1], reverse=True):
        print(f"{name}: {count}")
    print()

    print("### Common stops")
    if not stats.stops:
        print("(none)")
    for i, s in enumerate(stats.stops, start=1):
        print(
            f"{i:2d}. {s.name} ({s.latitude:.5f}, {s.longitude:.5f}) "
            f"visits={s.visit_count} avg={s.average_duration_minutes:.1f} min"
        )


def _cmd_stats(args: argparse.Namespace) -> int:
    points, summary = load_location_samples(args.csv, default_user_id=args.default_user)
    points = _filter_range(points, args)
    params = _params(args)
    gazetteer = _gazetteer(args)
    by_user = group_by_user(points)

    if args.user is not None and not args.all_users:
        stats = compute_statistics(args.user, by_user.get(args.user, []), params, gazetteer)
        users = 1
    else:
        stats = compute_combined_statistics(by_user, params, gazetteer, workers=args.workers, user_id=COMBINED_USER_ID)
        users = len(by_user)

    if args.json:
        payload = stats.to_dict() | {
            "users": users,
            "rows_total": summary.rows_total,
            "rows_skipped": summary.rows_skipped,
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        _print_report(stats, args.tz, users)
    return 0


def _cmd_stops(args: argparse.Namespace) -> int:
    points, _ = load_location_samples(args.csv, default_user_id=args.default_user)
    points = _filter_range(points, args)
    if args.user is not None:
        points = [p for p in points if p.user_id == args.user]
    elif len(group_by_user(points)) > 1:
        logger.error("CSV holds several users; pick one with --user")
        return 2

    stops = find_stops(
        points,
        args.distance_m,
        int(args.min_duration_minutes * 60 * 1000),
        args.max_stops,
        cluster_threshold_m=args.cluster_distance_m,
        gazetteer=_gazetteer(args),
    )
    write_stops_csv(stops, args.out)
    print(f"found {len(stops)} stops, written to {args.out}")
    return 0


def _cmd_classify(args: argparse.Namespace) -> int:
    print(classify_region(args.lat, args.lon, _gazetteer(args)))
    return 0


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--csv", type=str, default="locations.csv", help="input CSV path")
    p.add_argument("--user", type=str, default=None, help="only this user_id")
    p.add_argument("--default-user", type=str, default="unknown", help="user_id for rows without one")
    p.add_argument("--tz", type=str, default=DEFAULT_TZ, help=f"IANA timezone, default {DEFAULT_TZ}")
    p.add_argument("--gazetteer", type=str, default=None, help="gazetteer JSON (default: built-in)")
    p.add_argument("--range-start", type=str, default=None, help="ignore samples before, e.g. 2025-03-01 00:00:00")
    p.add_argument("--range-end", type=str, default=None, help="ignore samples after, e.g. 2025-03-31 23:59:59")
    p.add_argument("--distance-m", type=float, default=STOP_DISTANCE_M, help="stop radius around the run anchor")
    p.add_argument(
        "--min-duration-minutes",
        type=float,
        default=MIN_STOP_DURATION_MS / 60_000,
        help="minimum dwell time of a stop",
    )
    p.add_argument("--max-stops", type=int, default=MAX_STOPS, help="maximum number of stops reported")


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""

    p = argparse.ArgumentParser(prog="mobility_stats")
    p.add_argument("-v", "--verbose", action="count", default=0, help="more logging (-vv for debug)")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_st = sub.add_parser("stats", help="distance, activity hours, regions and stops per user or combined")
    _add_common(p_st)
    p_st.add_argument("--all-users", action="store_true", help="combine every user in the CSV (default without --user)")
    p_st.add_argument(
        "--cluster-distance-m",
        type=float,
        default=CLUSTER_DISTANCE_M,
        help="radius for merging a user's stop episodes",
    )
    p_st.add_argument(
        "--combine-distance-m",
        type=float,
        default=COMBINE_DISTANCE_M,
        help="radius for merging stops across users",
    )
    p_st.add_argument("--workers", type=int, default=1, help="threads for per-user computation")
    p_st.add_argument("--json", action="store_true", help="print JSON instead of the text report")
    p_st.set_defaults(func=_cmd_stats)

    p_sp = sub.add_parser("stops", help="export a single user's stop clusters to CSV")
    _add_common(p_sp)
    p_sp.add_argument(
        "--cluster-distance-m",
        type=float,
        default=None,
        help="radius for merging stop episodes (default: --distance-m)",
    )
    p_sp.add_argument("--out", type=str, default="stops.csv", help="output CSV path")
    p_sp.set_defaults(func=_cmd_stops)

    p_cl = sub.add_parser("classify", help="print the region name of a coordinate")
    p_cl.add_argument("--lat", type=float, required=True)
    p_cl.add_argument("--lon", type=float, required=True)
    p_cl.add_argument("--gazetteer", type=str, default=None, help="gazetteer JSON (default: built-in)")
    p_cl.set_defaults(func=_cmd_classify)

    return p


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)
    level = logging.WARNING if args.verbose == 0 else logging.INFO if args.verbose == 1 else logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    try:
        return int(args.func(args))
    except (MobilityStatsError, ValueError, KeyError, OSError) as exc:
        logger.error("%s", exc)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
