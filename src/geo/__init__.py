"""Geo module - bounds classification and polygon geometry."""

from .bounds import (
    Box,
    ClassifiedBounds,
    SingleBox,
    SplitBox,
    classify_bounds,
    classify_bounds_string,
    normalize_lon,
    outline_features,
    parse_bounds_string,
)
from .polygon import PolygonPoint, polygon_bounds, polygon_to_box

__all__ = [
    'Box',
    'ClassifiedBounds',
    'PolygonPoint',
    'SingleBox',
    'SplitBox',
    'classify_bounds',
    'classify_bounds_string',
    'normalize_lon',
    'outline_features',
    'parse_bounds_string',
    'polygon_bounds',
    'polygon_to_box',
]
