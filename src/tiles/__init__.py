"""Tile pyramid planning.

This module provides:
- TileRange: inclusive tile index range at one zoom
- tile counts per box, per zoom and per classified bounds
- download size estimates per basemap provider
"""

from tiles.coverage import (
    PyramidEstimate,
    TileRange,
    estimate_bytes,
    format_bytes,
    pack_tile_url,
    plan_pyramid,
    tile_count,
    tile_count_by_zoom,
    tile_count_for_bounds,
    tile_range_at_zoom,
)

__all__ = [
    'PyramidEstimate',
    'TileRange',
    'estimate_bytes',
    'format_bytes',
    'pack_tile_url',
    'plan_pyramid',
    'tile_count',
    'tile_count_by_zoom',
    'tile_count_for_bounds',
    'tile_range_at_zoom',
]
