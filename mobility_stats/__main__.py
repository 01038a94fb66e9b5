"""Module entry point: python -m mobility_stats ..."""

from __future__ import annotations

from mobility_stats.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
