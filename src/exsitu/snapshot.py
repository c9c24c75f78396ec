"""CLI entry point for static arc-map snapshots.

Run:
    uv run exsitu-snapshot --zoom 2
    uv run exsitu-snapshot --zoom 9 --north 53.6 --south 50.7 --east 7.3 --west 3.3
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from exsitu.compute import aggregate_by_country, select_arcs
from exsitu.config import Settings, configure_logging
from exsitu.errors import ApiError, ConfigError
from exsitu.fetch import MuseumApiClient
from exsitu.models import WORLD_BOUNDS, ViewBounds
from exsitu.renderers.static import save_static_map

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Render museum-object provenance arcs to a PNG."
    )
    parser.add_argument("--zoom", type=float, default=0.0, help="Web-map zoom level")
    parser.add_argument("--north", type=float, default=WORLD_BOUNDS.north)
    parser.add_argument("--south", type=float, default=WORLD_BOUNDS.south)
    parser.add_argument("--east", type=float, default=WORLD_BOUNDS.east)
    parser.add_argument("--west", type=float, default=WORLD_BOUNDS.west)
    parser.add_argument("--page-size", type=int, default=100)
    parser.add_argument(
        "--max-pages", type=int, default=None, help="Stop after this many pages"
    )
    parser.add_argument(
        "--countries", action="store_true", help="Overlay country bubbles"
    )
    parser.add_argument("--output", type=Path, default=None)
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        bounds = ViewBounds(
            north=args.north, south=args.south, east=args.east, west=args.west
        )
        with MuseumApiClient(settings) as client:
            records = client.fetch_all_records(
                bounds, page_size=args.page_size, max_pages=args.max_pages
            )
    except (ConfigError, ApiError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    arcs = select_arcs(records, args.zoom, bounds)
    countries = aggregate_by_country(records) if args.countries else ()
    logger.info("%d records → %d arcs", len(records), len(arcs))

    path = save_static_map(arcs, args.output, countries=countries, bounds=bounds)
    print(f"Saved: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
