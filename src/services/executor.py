"""Best-effort application of reconciler operations to a map surface."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from domain.models import PointEntity
from services.layer_reconciler import (
    AddLayer,
    AddSource,
    LayerOperation,
    MoveLayer,
    RemoveLayer,
    RemoveSource,
    UpdateOpacity,
)
from services.marker_reconciler import (
    CreateMarker,
    DestroyMarker,
    MarkerOperation,
    MoveMarker,
)
from shared.constants import RASTER_OPACITY_PROPERTY

logger = logging.getLogger(__name__)


class MapSurface(Protocol):
    """Imperative rendering surface. Any call may raise."""

    def add_source(self, source_id: str, spec: dict[str, object]) -> None: ...

    def add_layer(self, spec: dict[str, object], before_id: str | None = None) -> None: ...

    def has_layer(self, layer_id: str) -> bool: ...

    def move_layer(self, layer_id: str, before_id: str | None = None) -> None: ...

    def set_paint_property(self, layer_id: str, name: str, value: object) -> None: ...

    def remove_layer(self, layer_id: str) -> None: ...

    def remove_source(self, source_id: str) -> None: ...

    def create_marker(self, entity: PointEntity, lat: float, lon: float) -> object: ...

    def move_marker(self, handle: object, lat: float, lon: float) -> None: ...

    def remove_marker(self, handle: object) -> None: ...


@dataclass
class ApplyResult:
    applied: int = 0
    failed: list[tuple[object, Exception]] = field(default_factory=list)
    # entity_id -> handle for markers created in this batch
    created: dict[str, object] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def _apply_layer_op(surface: MapSurface, op: LayerOperation) -> None:
    if isinstance(op, AddSource):
        surface.add_source(op.source_id, op.spec)
    elif isinstance(op, AddLayer):
        surface.add_layer(op.spec(), op.before_id)
    elif isinstance(op, UpdateOpacity):
        surface.set_paint_property(op.layer_id, RASTER_OPACITY_PROPERTY, op.opacity)
    elif isinstance(op, MoveLayer):
        surface.move_layer(op.layer_id, op.before_id)
    elif isinstance(op, RemoveLayer):
        surface.remove_layer(op.layer_id)
    elif isinstance(op, RemoveSource):
        surface.remove_source(op.source_id)
    else:
        msg = f'Unknown layer operation: {op!r}'
        raise TypeError(msg)


def apply_layer_operations(surface: MapSurface, ops: Iterable[LayerOperation]) -> ApplyResult:
    """Apply every operation; a failing one is logged and skipped."""
    result = ApplyResult()
    for op in ops:
        try:
            _apply_layer_op(surface, op)
        except Exception as e:
            logger.exception('Layer operation failed: %r', op)
            result.failed.append((op, e))
        else:
            result.applied += 1
    return result


def apply_marker_operations(surface: MapSurface, ops: Iterable[MarkerOperation]) -> ApplyResult:
    """Apply every operation; a failing one is logged and skipped."""
    result = ApplyResult()
    for op in ops:
        try:
            if isinstance(op, CreateMarker):
                result.created[op.entity_id] = surface.create_marker(op.entity, op.lat, op.lon)
            elif isinstance(op, MoveMarker):
                surface.move_marker(op.handle, op.lat, op.lon)
            elif isinstance(op, DestroyMarker):
                surface.remove_marker(op.handle)
            else:
                msg = f'Unknown marker operation: {op!r}'
                raise TypeError(msg)
        except Exception as e:
            logger.exception('Marker operation failed: %r', op)
            result.failed.append((op, e))
        else:
            result.applied += 1
    return result
