"""Web Mercator tile pyramid planning for offline downloads."""

from __future__ import annotations

import math
from collections.abc import Iterator
from dataclasses import dataclass, field

from domain.errors import InvalidBounds
from geo.bounds import Box, ClassifiedBounds
from shared.constants import (
    MERCATOR_MAX_LAT_DEG,
    PACK_TILE_URL_TEMPLATE,
    TILE_SIZE_ESTIMATES,
    WORLD_LNG_HALF_SPAN_DEG,
    WORLD_LNG_SPAN_DEG,
    BasemapProvider,
)

_BYTE_UNITS = ('B', 'KB', 'MB', 'GB', 'TB')
_BYTE_STEP = 1024


@dataclass(frozen=True)
class TileRange:
    """Inclusive XYZ tile index range at one zoom level."""

    zoom: int
    min_x: int
    max_x: int
    min_y: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x + 1

    @property
    def height(self) -> int:
        return self.max_y - self.min_y + 1

    @property
    def count(self) -> int:
        return self.width * self.height

    def iter_tiles(self) -> Iterator[tuple[int, int, int]]:
        """Yield ``(z, x, y)`` row by row."""
        for y in range(self.min_y, self.max_y + 1):
            for x in range(self.min_x, self.max_x + 1):
                yield self.zoom, x, y


@dataclass(frozen=True)
class PyramidEstimate:
    """Tile count and size estimate for a bounds and zoom range."""

    tile_count: int
    size_bytes: int
    by_zoom: dict[int, int] = field(default_factory=dict)


def _clamp_lat(lat: float) -> float:
    return max(-MERCATOR_MAX_LAT_DEG, min(MERCATOR_MAX_LAT_DEG, lat))


def lon_to_tile_x(lon: float, zoom: int) -> int:
    """Tile column for a longitude, clamped into the world."""
    n = 2**zoom
    x = math.floor((lon + WORLD_LNG_HALF_SPAN_DEG) / WORLD_LNG_SPAN_DEG * n)
    return max(0, min(n - 1, x))


def lat_to_tile_y(lat: float, zoom: int) -> int:
    """Tile row for a latitude (XYZ scheme, y=0 at the top)."""
    n = 2**zoom
    lat_rad = math.radians(_clamp_lat(lat))
    y = math.floor(
        (1 - math.log(math.tan(lat_rad) + 1 / math.cos(lat_rad)) / math.pi) / 2 * n
    )
    return max(0, min(n - 1, y))


def xyz_to_tms_y(y: int, zoom: int) -> int:
    """Flip an XYZ row into the TMS scheme (y=0 at the bottom)."""
    return (1 << zoom) - 1 - y


def tile_range_at_zoom(box: Box, zoom: int) -> TileRange | None:
    """
    Tile index range covering ``box`` at ``zoom``.

    Returns None for a degenerate box (zero width, or zero height once
    latitudes are clamped to the Mercator limit).

    Raises:
        InvalidBounds: the box crosses the antimeridian (``west > east``);
            split it with ``classify_bounds`` first.

    """
    if zoom < 0:
        msg = f'Zoom must be non-negative: {zoom}'
        raise ValueError(msg)
    if box.west > box.east:
        msg = f'Box crosses the antimeridian, classify it first: {box}'
        raise InvalidBounds(msg)
    north = _clamp_lat(box.north)
    south = _clamp_lat(box.south)
    if box.west == box.east or north <= south:
        return None
    return TileRange(
        zoom=zoom,
        min_x=lon_to_tile_x(box.west, zoom),
        max_x=lon_to_tile_x(box.east, zoom),
        min_y=lat_to_tile_y(north, zoom),
        max_y=lat_to_tile_y(south, zoom),
    )


def tile_count_by_zoom(box: Box, min_zoom: int, max_zoom: int) -> dict[int, int]:
    """Tiles per zoom level for ``min_zoom..max_zoom`` inclusive."""
    counts: dict[int, int] = {}
    for z in range(min_zoom, max_zoom + 1):
        rng = tile_range_at_zoom(box, z)
        counts[z] = rng.count if rng is not None else 0
    return counts


def tile_count(box: Box, min_zoom: int, max_zoom: int) -> int:
    """Total tiles over ``min_zoom..max_zoom``; 0 for an empty zoom range."""
    return sum(tile_count_by_zoom(box, min_zoom, max_zoom).values())


def tile_count_for_bounds(
    bounds: ClassifiedBounds,
    min_zoom: int,
    max_zoom: int,
) -> int:
    """Total tiles for every box of a classified bounds."""
    return sum(tile_count(b, min_zoom, max_zoom) for b in bounds.boxes)


def estimate_bytes(count: int, provider_key: str | BasemapProvider = 'default') -> int:
    """Estimated download size using the provider's average tile size."""
    key = provider_key.value if isinstance(provider_key, BasemapProvider) else provider_key
    avg = TILE_SIZE_ESTIMATES.get(key, TILE_SIZE_ESTIMATES['default'])
    return count * avg


def plan_pyramid(
    bounds: ClassifiedBounds,
    min_zoom: int,
    max_zoom: int,
    provider_key: str | BasemapProvider = 'default',
) -> PyramidEstimate:
    """Per-zoom counts, total and byte estimate in one pass."""
    by_zoom: dict[int, int] = dict.fromkeys(range(min_zoom, max_zoom + 1), 0)
    for box in bounds.boxes:
        for z, n in tile_count_by_zoom(box, min_zoom, max_zoom).items():
            by_zoom[z] += n
    total = sum(by_zoom.values())
    return PyramidEstimate(
        tile_count=total,
        size_bytes=estimate_bytes(total, provider_key),
        by_zoom=by_zoom,
    )


def format_bytes(size: int) -> str:
    """Human-readable size, e.g. ``'1.5 MB'``."""
    if size <= 0:
        return '0 B'
    idx = min(int(math.log(size, _BYTE_STEP)), len(_BYTE_UNITS) - 1)
    value = size / _BYTE_STEP**idx
    return f'{float(f"{value:.1f}"):g} {_BYTE_UNITS[idx]}'


def pack_tile_url(pack_id: str, z: int, x: int, y: int) -> str:
    """Tile address of a downloaded pack, served by the host application."""
    return PACK_TILE_URL_TEMPLATE.format(pack_id=pack_id, z=z, x=x, y=y)
