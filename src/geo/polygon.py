"""Drawn polygon helpers: bounds, area estimates and GeoJSON."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from geo.bounds import Box, ClassifiedBounds, classify_bounds
from shared.constants import (
    ACRES_PER_SQ_MI,
    EARTH_RADIUS_NM,
    MIN_POLYGON_POINTS,
    SQ_NM_TO_SQ_MI,
)

# Area thresholds for format_area (sq mi)
_AREA_ACRES_BELOW = 1
_AREA_ONE_DECIMAL_BELOW = 100


@dataclass(frozen=True)
class PolygonPoint:
    lat: float
    lon: float


def polygon_to_box(points: Sequence[PolygonPoint]) -> Box | None:
    """Min/max box of the polygon vertices; None below three points."""
    if len(points) < MIN_POLYGON_POINTS:
        return None
    lons = [p.lon for p in points]
    lats = [p.lat for p in points]
    return Box(min(lons), min(lats), max(lons), max(lats))


def polygon_bounds(points: Sequence[PolygonPoint]) -> ClassifiedBounds | None:
    """
    Classified bounds of a drawn polygon.

    A polygon whose vertices span more than 180° of longitude is read as
    crossing the antimeridian, so it yields a split box instead of a box
    covering most of the world.
    """
    box = polygon_to_box(points)
    if box is None:
        return None
    return classify_bounds(box.west, box.south, box.east, box.north)


def is_valid_polygon(points: Sequence[PolygonPoint], min_span_deg: float) -> bool:
    """At least three points and an extent above ``min_span_deg`` on both axes."""
    bounds = polygon_bounds(points)
    if bounds is None:
        return False
    lat_span = bounds.north - bounds.south
    return lat_span > min_span_deg and bounds.span_degrees > min_span_deg


def polygon_area_degrees(points: Sequence[PolygonPoint]) -> float:
    """Shoelace area in square degrees."""
    n = len(points)
    if n < MIN_POLYGON_POINTS:
        return 0.0
    area = 0.0
    for i in range(n):
        j = (i + 1) % n
        area += points[i].lon * points[j].lat
        area -= points[j].lon * points[i].lat
    return abs(area / 2)


def box_area_square_nm(box: Box) -> float:
    """Approximate area of a box on a sphere, square nautical miles."""
    lat_diff = math.radians(box.north - box.south)
    lon_diff = math.radians(box.east - box.west)
    avg_lat = math.radians((box.north + box.south) / 2)
    height = lat_diff * EARTH_RADIUS_NM
    width = lon_diff * EARTH_RADIUS_NM * math.cos(avg_lat)
    return abs(width * height)


def area_square_nm(bounds: ClassifiedBounds) -> float:
    return sum(box_area_square_nm(b) for b in bounds.boxes)


def area_square_miles(bounds: ClassifiedBounds) -> float:
    return area_square_nm(bounds) * SQ_NM_TO_SQ_MI


def format_area(sq_miles: float) -> str:
    if sq_miles < _AREA_ACRES_BELOW:
        return f'{sq_miles * ACRES_PER_SQ_MI:.0f} acres'
    if sq_miles < _AREA_ONE_DECIMAL_BELOW:
        return f'{sq_miles:.1f} sq mi'
    return f'{sq_miles:.0f} sq mi'


def polygon_to_geojson(
    points: Sequence[PolygonPoint],
    *,
    closed: bool = False,
) -> dict[str, object]:
    """Polygon feature when closed (>= 3 points), LineString otherwise."""
    coords = [[p.lon, p.lat] for p in points]
    if closed and len(points) >= MIN_POLYGON_POINTS:
        return {
            'type': 'Feature',
            'properties': {},
            'geometry': {'type': 'Polygon', 'coordinates': [[*coords, coords[0]]]},
        }
    return {
        'type': 'Feature',
        'properties': {},
        'geometry': {'type': 'LineString', 'coordinates': coords},
    }


def polygon_vertices_to_geojson(points: Sequence[PolygonPoint]) -> dict[str, object]:
    """Vertex markers as a point FeatureCollection."""
    return {
        'type': 'FeatureCollection',
        'features': [
            {
                'type': 'Feature',
                'properties': {'index': idx},
                'geometry': {'type': 'Point', 'coordinates': [p.lon, p.lat]},
            }
            for idx, p in enumerate(points)
        ],
    }
