"""Bounding box classification with antimeridian handling.

Chart catalogs and drawn polygons describe coverage as a raw
``(west, south, east, north)`` box. Such a box may cross the 180° meridian,
be written "the long way round", or simply be inverted. ``classify_bounds``
turns any of these into one or two non-crossing boxes (``west <= east``)
covering the same physical longitude span.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from domain.errors import InvalidBounds
from shared.constants import (
    ANTIMERIDIAN_LONG_WAY_SPAN_DEG,
    WORLD_LAT_MAX_DEG,
    WORLD_LNG_HALF_SPAN_DEG,
)

logger = logging.getLogger(__name__)

_BOUNDS_PARTS = 4


@dataclass(frozen=True)
class Box:
    """Non-crossing box in decimal degrees."""

    west: float
    south: float
    east: float
    north: float

    @property
    def width(self) -> float:
        return self.east - self.west

    @property
    def height(self) -> float:
        return self.north - self.south

    def as_list(self) -> list[float]:
        return [self.west, self.south, self.east, self.north]

    def ring(self) -> list[list[float]]:
        """Closed polygon ring (lon, lat) for GeoJSON."""
        return [
            [self.west, self.south],
            [self.east, self.south],
            [self.east, self.north],
            [self.west, self.north],
            [self.west, self.south],
        ]


@dataclass(frozen=True)
class SingleBox:
    """Coverage that does not cross the antimeridian."""

    box: Box

    @property
    def boxes(self) -> tuple[Box, ...]:
        return (self.box,)

    @property
    def span_degrees(self) -> float:
        return self.box.width

    @property
    def south(self) -> float:
        return self.box.south

    @property
    def north(self) -> float:
        return self.box.north


@dataclass(frozen=True)
class SplitBox:
    """Coverage crossing the antimeridian: one logical area, two boxes.

    ``west`` is the piece west of the antimeridian (``[lon, 180]``),
    ``east`` the piece east of it (``[-180, lon]``).
    """

    west: Box
    east: Box

    @property
    def boxes(self) -> tuple[Box, ...]:
        return (self.west, self.east)

    @property
    def span_degrees(self) -> float:
        return self.west.width + self.east.width

    @property
    def south(self) -> float:
        return self.west.south

    @property
    def north(self) -> float:
        return self.west.north


ClassifiedBounds = SingleBox | SplitBox


def _validate(west: float, south: float, east: float, north: float) -> None:
    values = (west, south, east, north)
    if not all(isinstance(v, (int, float)) for v in values):
        msg = f'Bounds must be numeric: {values!r}'
        raise InvalidBounds(msg)
    if not all(math.isfinite(v) for v in values):
        msg = f'Bounds contain NaN or infinite values: {values!r}'
        raise InvalidBounds(msg)
    for lon in (west, east):
        if not -WORLD_LNG_HALF_SPAN_DEG <= lon <= WORLD_LNG_HALF_SPAN_DEG:
            msg = f'Longitude out of range: {lon}'
            raise InvalidBounds(msg)
    for lat in (south, north):
        if not -WORLD_LAT_MAX_DEG <= lat <= WORLD_LAT_MAX_DEG:
            msg = f'Latitude out of range: {lat}'
            raise InvalidBounds(msg)


def _split(
    west_start: float,
    east_end: float,
    south: float,
    north: float,
) -> ClassifiedBounds:
    """Build the two halves ``[west_start, 180]`` and ``[-180, east_end]``."""
    west_part = Box(west_start, south, WORLD_LNG_HALF_SPAN_DEG, north)
    east_part = Box(-WORLD_LNG_HALF_SPAN_DEG, south, east_end, north)
    # A zero-width half adds nothing; keep the layer in one slot.
    if east_part.width == 0:
        return SingleBox(west_part)
    if west_part.width == 0:
        return SingleBox(east_part)
    return SplitBox(west=west_part, east=east_part)


def classify_bounds(
    west: float,
    south: float,
    east: float,
    north: float,
) -> ClassifiedBounds:
    """
    Classify a raw box into one or two non-crossing boxes.

    Cases, in priority order:
      1. ``west > 0 and east < 0``: crossing eastward through 180°
         (e.g. 175 -> -175).
      2. ``west < 0 and east > 0`` with a nominal span over 180°: the same
         crossing written the long way (e.g. -174.5 -> 175.5 is ~10° wide).
      3. ``west > east`` otherwise: inverted input, swapped.
      4. normal box, unchanged.

    Raises:
        InvalidBounds: NaN/infinite values or coordinates out of range.

    """
    _validate(west, south, east, north)
    if south > north:
        south, north = north, south

    if west > 0 and east < 0:
        return _split(west, east, south, north)

    if west < 0 and east > 0 and (east - west) > ANTIMERIDIAN_LONG_WAY_SPAN_DEG:
        # Real coverage runs from `east` through 180° to `west`.
        return _split(east, west, south, north)

    if west > east:
        return SingleBox(Box(east, south, west, north))

    return SingleBox(Box(west, south, east, north))


def normalize_lon(lon: float) -> float:
    """Wrap a longitude from a repeated world copy back into [-180, 180]."""
    if -WORLD_LNG_HALF_SPAN_DEG <= lon <= WORLD_LNG_HALF_SPAN_DEG:
        return lon
    return ((lon + WORLD_LNG_HALF_SPAN_DEG) % 360.0) - WORLD_LNG_HALF_SPAN_DEG


def parse_bounds_string(raw: str) -> tuple[float, float, float, float]:
    """Parse the catalog bounds format ``"west,south,east,north"``."""
    parts = [p.strip() for p in raw.split(',')]
    if len(parts) != _BOUNDS_PARTS:
        msg = f'Expected 4 comma-separated values, got {len(parts)}: {raw!r}'
        raise InvalidBounds(msg)
    try:
        west, south, east, north = (float(p) for p in parts)
    except ValueError:
        msg = f'Bounds are not numeric: {raw!r}'
        raise InvalidBounds(msg) from None
    return west, south, east, north


def classify_bounds_string(raw: str | None) -> ClassifiedBounds | None:
    """
    Parse and classify a catalog bounds string.

    Returns None when the string is empty. Malformed content raises
    InvalidBounds so the caller can skip that one entity.
    """
    if raw is None or not raw.strip():
        return None
    return classify_bounds(*parse_bounds_string(raw))


def outline_features(
    classified: ClassifiedBounds,
    properties: dict[str, object] | None = None,
) -> list[dict[str, object]]:
    """GeoJSON polygon features outlining each box of a classified bounds."""
    props = dict(properties or {})
    return [
        {
            'type': 'Feature',
            'properties': {**props, 'part': idx},
            'geometry': {'type': 'Polygon', 'coordinates': [box.ring()]},
        }
        for idx, box in enumerate(classified.boxes)
    ]
