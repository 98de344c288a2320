"""Keeps a map surface in step with chart layers and point entities.

The synchronizer is the single writer of both snapshots: it runs a
reconciler, applies the plan through the executor and stores the snapshot
the reconciler returned, adjusted for operations that failed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from domain.models import ChartLayer, PointEntity
from services.executor import ApplyResult, MapSurface, apply_layer_operations, apply_marker_operations
from services.layer_reconciler import (
    AddLayer,
    AddSource,
    LayerOperation,
    LayerPlan,
    LayerSnapshot,
    RemoveLayer,
    RemoveSource,
    forget_layers,
    reconcile_layers,
)
from services.marker_reconciler import (
    DragOverlay,
    MarkerSnapshot,
    bind_marker_handles,
    drag_move,
    reconcile_markers,
)

logger = logging.getLogger(__name__)

DragEndCallback = Callable[[str, float, float], None]


class MapSynchronizer:
    """Owns the layer and marker snapshots for one surface."""

    def __init__(
        self,
        surface: MapSurface,
        *,
        ceiling_layer_id: str | None = None,
        on_drag_end: DragEndCallback | None = None,
    ) -> None:
        self._surface = surface
        self._ceiling_layer_id = ceiling_layer_id
        self._on_drag_end = on_drag_end
        self._epoch = 0
        self._layers = LayerSnapshot()
        self._markers = MarkerSnapshot()
        self._overlay = DragOverlay()
        self._last_chart_layers: list[ChartLayer] = []
        self._last_all_hidden = False
        self._entities: dict[str, PointEntity] = {}
        self._last_entities: list[PointEntity] = []

    @property
    def layer_snapshot(self) -> LayerSnapshot:
        return self._layers

    @property
    def marker_snapshot(self) -> MarkerSnapshot:
        return self._markers

    @property
    def overlay(self) -> DragOverlay:
        return self._overlay

    @property
    def epoch(self) -> int:
        return self._epoch

    # --- Layers

    def sync_layers(self, layers: Sequence[ChartLayer], *, all_hidden: bool = False) -> ApplyResult:
        self._last_chart_layers = list(layers)
        self._last_all_hidden = all_hidden
        plan = reconcile_layers(
            layers,
            self._layers,
            all_hidden=all_hidden,
            epoch=self._epoch,
            ceiling_layer_id=self._present_ceiling(),
        )
        if plan.is_empty:
            self._layers = plan.snapshot
            return ApplyResult()
        logger.debug('Applying %d layer operations', len(plan.operations))
        result = apply_layer_operations(self._surface, plan.operations)
        failed_charts = self._failed_charts(plan.snapshot, result)
        if failed_charts:
            self._rollback(plan, result, failed_charts)
        self._layers = forget_layers(plan.snapshot, failed_charts)
        return result

    def _present_ceiling(self) -> str | None:
        """Ceiling layer id if the surface currently has that layer."""
        ceiling = self._ceiling_layer_id
        if ceiling is None:
            return None
        try:
            present = self._surface.has_layer(ceiling)
        except Exception:
            logger.exception('Could not look up ceiling layer %s', ceiling)
            return None
        if not present:
            logger.debug('Ceiling layer %s not on the surface, adding charts on top', ceiling)
            return None
        return ceiling

    @staticmethod
    def _failed_charts(snapshot: LayerSnapshot, result: ApplyResult) -> list[str]:
        failed_ids = set()
        for op, _ in result.failed:
            if isinstance(op, AddSource):
                failed_ids.add(op.source_id)
            elif isinstance(op, AddLayer):
                failed_ids.add(op.layer_id)
        return [
            chart_id
            for chart_id, registered in snapshot.registered.items()
            if any(s.source_id in failed_ids or s.layer_id in failed_ids for s in registered.slots)
        ]

    def _rollback(self, plan: LayerPlan, result: ApplyResult, chart_ids: list[str]) -> None:
        """Remove the parts of half-added charts so the retry starts clean."""
        slots = [s for cid in chart_ids for s in plan.snapshot.registered[cid].slots]
        source_ids = {s.source_id for s in slots}
        layer_ids = {s.layer_id for s in slots}
        failed = [op for op, _ in result.failed]
        layer_undo: list[LayerOperation] = []
        source_undo: list[LayerOperation] = []
        for op in plan.operations:
            if op in failed:
                continue
            if isinstance(op, AddLayer) and op.layer_id in layer_ids:
                layer_undo.append(RemoveLayer(op.layer_id))
            elif isinstance(op, AddSource) and op.source_id in source_ids:
                source_undo.append(RemoveSource(op.source_id))
        if layer_undo or source_undo:
            logger.warning('Rolling back partially added charts: %s', ', '.join(chart_ids))
            apply_layer_operations(self._surface, [*layer_undo, *source_undo])

    def surface_rebuilt(self, *, ceiling_layer_id: str | None = None) -> ApplyResult:
        """
        The surface dropped every source and layer (e.g. style swap).

        Starts a new epoch and re-adds the last known chart layers. The
        ceiling layer id is replaced only when one is given.
        """
        self._epoch += 1
        if ceiling_layer_id is not None:
            self._ceiling_layer_id = ceiling_layer_id
        logger.info('Surface rebuilt, epoch %d', self._epoch)
        return self.sync_layers(self._last_chart_layers, all_hidden=self._last_all_hidden)

    # --- Markers

    def sync_markers(self, entities: Sequence[PointEntity]) -> ApplyResult:
        self._last_entities = list(entities)
        self._entities = {e.entity_id: e for e in entities}
        plan = reconcile_markers(entities, self._markers, overlay=self._overlay)
        result = apply_marker_operations(self._surface, plan.operations)
        self._markers = bind_marker_handles(plan.snapshot, result.created)
        return result

    def begin_drag(self, entity_id: str) -> None:
        entity = self._entities.get(entity_id)
        if entity is None:
            msg = f'Unknown marker: {entity_id}'
            raise KeyError(msg)
        self._overlay = self._overlay.start(entity)

    def drag_to(self, entity_id: str, lat: float, lon: float) -> ApplyResult:
        step = drag_move(self._markers, self._overlay, entity_id, lat, lon)
        self._overlay = step.overlay
        result = apply_marker_operations(self._surface, step.operations)
        if result.ok:
            self._markers = step.snapshot
        return result

    def end_drag(self, entity_id: str) -> tuple[float, float]:
        """Finish a drag and hand the final position to the persist callback."""
        (lat, lon), self._overlay = self._overlay.end(entity_id)
        if self._on_drag_end is not None:
            self._on_drag_end(entity_id, lat, lon)
        return lat, lon

    def cancel_drag(self, entity_id: str) -> ApplyResult:
        """Abort a drag and move the marker back to where it started."""
        _, self._overlay = self._overlay.cancel(entity_id)
        return self.sync_markers(self._last_entities)
