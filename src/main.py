"""Command line entry point for navsync: bounds, tile estimates, basemaps and profiles."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from domain.errors import InvalidBounds
from domain.models import SyncSettings
from geo.bounds import classify_bounds, parse_bounds_string
from geo.polygon import area_square_miles, format_area
from services import settings_service
from services.basemaps import downloadable_basemaps
from shared.constants import BASEMAP_LABELS, LOG_FORMAT, BasemapProvider
from tiles.coverage import format_bytes, plan_pyramid

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO, log_file: Path | None = None) -> None:
    """Configure logging to stderr and, optionally, a log file."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(str(log_file), encoding='utf-8'))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def _cmd_classify(args: argparse.Namespace) -> int:
    classified = classify_bounds(*parse_bounds_string(args.bounds))
    for box in classified.boxes:
        print(','.join(f'{v:g}' for v in box.as_list()))
    return 0


def _cmd_estimate(args: argparse.Namespace) -> int:
    settings = settings_service.load_profile(args.profile) if args.profile else settings_service.load_active()
    min_zoom = settings.default_min_zoom if args.min_zoom is None else args.min_zoom
    max_zoom = settings.default_max_zoom if args.max_zoom is None else args.max_zoom
    basemap = args.basemap or settings.default_basemap.value
    classified = classify_bounds(*parse_bounds_string(args.bounds))
    estimate = plan_pyramid(classified, min_zoom, max_zoom, basemap)

    for z, n in estimate.by_zoom.items():
        print(f'z{z:<2} {n:>10}')
    print(f'tiles: {estimate.tile_count}')
    print(f'size:  {format_bytes(estimate.size_bytes)}')
    print(f'area:  {format_area(area_square_miles(classified))}')
    if estimate.tile_count > settings.max_tile_count:
        logger.error('Tile count %d exceeds the limit %d', estimate.tile_count, settings.max_tile_count)
        return 1
    if estimate.tile_count > settings.warning_tile_count:
        logger.warning('Large download: %d tiles', estimate.tile_count)
    return 0


def _cmd_basemaps(args: argparse.Namespace) -> int:
    keys = settings_service.load_api_keys(args.env_file)
    offline = {p for p, _ in downloadable_basemaps(keys)}
    for provider in BasemapProvider:
        mark = 'offline' if provider in offline else 'online'
        print(f'{provider.value:<24} {BASEMAP_LABELS[provider]:<20} {mark}')
    return 0


def _cmd_save_profile(args: argparse.Namespace) -> int:
    settings = settings_service.load_profile(args.source) if args.source else SyncSettings()
    path = settings_service.save_profile(args.name, settings)
    print(path)
    if args.activate:
        settings_service.set_active_profile(args.name)
    return 0


def _cmd_use_profile(args: argparse.Namespace) -> int:
    settings_service.set_active_profile(args.name)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='navsync',
        description='navsync - chart bounds, offline tile pack planning and sync profiles',
    )
    parser.add_argument('--log-file', type=Path, default=None, help='Also write the log to this file')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('classify', help='Split bounds crossing the antimeridian')
    p.add_argument('bounds', help='"west,south,east,north" (put "--" before a negative west)')
    p.set_defaults(func=_cmd_classify)

    p = sub.add_parser('estimate', help='Tile count and size for bounds and zoom range')
    p.add_argument('bounds', help='"west,south,east,north" (put "--" before a negative west)')
    p.add_argument('--min-zoom', type=int, default=None)
    p.add_argument('--max-zoom', type=int, default=None)
    p.add_argument('--basemap', choices=[b.value for b in BasemapProvider], default=None)
    p.add_argument('--profile', default=None, help='Profile name or path to a .toml file')
    p.set_defaults(func=_cmd_estimate)

    p = sub.add_parser('basemaps', help='List basemap providers')
    p.add_argument('--env-file', default=None, help='.env file with ESRI_API_KEY')
    p.set_defaults(func=_cmd_basemaps)

    p = sub.add_parser('save-profile', help='Write a sectioned TOML profile')
    p.add_argument('name')
    p.add_argument('--from', dest='source', default=None, help='Profile name or .toml file to copy settings from')
    p.add_argument('--activate', action='store_true', help='Make it the active profile')
    p.set_defaults(func=_cmd_save_profile)

    p = sub.add_parser('use-profile', help='Set the active profile')
    p.add_argument('name')
    p.set_defaults(func=_cmd_use_profile)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main application entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)
    try:
        return args.func(args)
    except InvalidBounds as e:
        logger.error('Invalid bounds: %s', e)
        return 1
    except (ValueError, FileNotFoundError) as e:
        logger.error('%s', e)
        return 1


if __name__ == '__main__':
    sys.exit(main())
