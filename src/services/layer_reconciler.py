"""Chart layer reconciliation against the rendering surface.

``reconcile_layers`` is pure: it takes the desired chart layers and the
snapshot of what the previous pass registered, and returns the operations to
apply plus the snapshot that will be true once they are applied. Nothing here
touches the surface; see ``services.executor`` for that.

Stacking, bottom to top::

    basemap-layer | chart layers by z_order | ceiling overlay
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from domain.errors import InvalidBounds
from domain.models import ChartLayer
from geo.bounds import Box, ClassifiedBounds, SplitBox, classify_bounds_string
from shared.constants import (
    CHART_LAYER_PREFIX,
    CHART_SOURCE_PREFIX,
    CHART_TILE_URL_TEMPLATE,
    RASTER_OPACITY_PROPERTY,
    SPLIT_EAST_SUFFIX,
    SPLIT_WEST_SUFFIX,
    TILE_SIZE,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LayerSlot:
    """One source/layer pair on the surface."""

    source_id: str
    layer_id: str
    box: Box


@dataclass(frozen=True)
class RegisteredLayer:
    """What the surface holds for one chart: one slot, or two when split."""

    chart_id: str
    slots: tuple[LayerSlot, ...]
    opacity: float
    min_zoom: int
    max_zoom: int

    @property
    def lowest_layer_id(self) -> str:
        return self.slots[0].layer_id


@dataclass(frozen=True)
class LayerSnapshot:
    epoch: int = 0
    registered: dict[str, RegisteredLayer] = field(default_factory=dict)
    # Registered chart ids, bottom to top
    order: tuple[str, ...] = ()


# --- Operations


@dataclass(frozen=True)
class AddSource:
    source_id: str
    spec: dict[str, object]


@dataclass(frozen=True)
class AddLayer:
    layer_id: str
    source_id: str
    # Insert below this layer; None puts it on top
    before_id: str | None
    opacity: float
    min_zoom: int
    max_zoom: int

    def spec(self) -> dict[str, object]:
        return {
            'id': self.layer_id,
            'type': 'raster',
            'source': self.source_id,
            'minzoom': self.min_zoom,
            'maxzoom': self.max_zoom,
            'paint': {RASTER_OPACITY_PROPERTY: self.opacity},
        }


@dataclass(frozen=True)
class UpdateOpacity:
    layer_id: str
    opacity: float


@dataclass(frozen=True)
class MoveLayer:
    layer_id: str
    before_id: str | None


@dataclass(frozen=True)
class RemoveLayer:
    layer_id: str


@dataclass(frozen=True)
class RemoveSource:
    source_id: str


LayerOperation = AddSource | AddLayer | UpdateOpacity | MoveLayer | RemoveLayer | RemoveSource


@dataclass(frozen=True)
class LayerPlan:
    operations: list[LayerOperation]
    snapshot: LayerSnapshot

    @property
    def is_empty(self) -> bool:
        return not self.operations


def source_id_for(chart_id: str, suffix: str = '') -> str:
    return f'{CHART_SOURCE_PREFIX}{chart_id}{suffix}'


def layer_id_for(chart_id: str, suffix: str = '') -> str:
    return f'{CHART_LAYER_PREFIX}{chart_id}{suffix}'


def slots_for(chart_id: str, bounds: ClassifiedBounds) -> tuple[LayerSlot, ...]:
    """Slots a chart occupies, bottom to top."""
    if isinstance(bounds, SplitBox):
        return (
            LayerSlot(
                source_id_for(chart_id, SPLIT_WEST_SUFFIX),
                layer_id_for(chart_id, SPLIT_WEST_SUFFIX),
                bounds.west,
            ),
            LayerSlot(
                source_id_for(chart_id, SPLIT_EAST_SUFFIX),
                layer_id_for(chart_id, SPLIT_EAST_SUFFIX),
                bounds.east,
            ),
        )
    return (LayerSlot(source_id_for(chart_id), layer_id_for(chart_id), bounds.box),)


def chart_source_spec(chart_id: str, slot: LayerSlot, min_zoom: int, max_zoom: int) -> dict[str, object]:
    return {
        'type': 'raster',
        'tiles': [CHART_TILE_URL_TEMPLATE.format(chart_id=chart_id)],
        'tileSize': TILE_SIZE,
        'minzoom': min_zoom,
        'maxzoom': max_zoom,
        'bounds': slot.box.as_list(),
    }


def _desired_layers(
    layers: Sequence[ChartLayer],
    all_hidden: bool,
) -> dict[str, tuple[ChartLayer, ClassifiedBounds]]:
    """Visible, classifiable layers keyed by chart id, bottom to top."""
    desired: dict[str, tuple[ChartLayer, ClassifiedBounds]] = {}
    if all_hidden:
        return desired
    # sorted() is stable: equal z_order keeps the input order
    for layer in sorted(layers, key=lambda item: item.z_order):
        if not layer.enabled:
            continue
        try:
            bounds = classify_bounds_string(layer.raw_bounds)
        except InvalidBounds as e:
            logger.warning('Skipping chart %s: %s', layer.chart_id, e)
            continue
        if bounds is None:
            logger.debug('Skipping chart %s: no bounds', layer.chart_id)
            continue
        if layer.chart_id in desired:
            logger.warning('Duplicate chart id %s, keeping the last one', layer.chart_id)
            del desired[layer.chart_id]
        desired[layer.chart_id] = (layer, bounds)
    return desired


def _same_geometry(registered: RegisteredLayer, layer: ChartLayer, bounds: ClassifiedBounds) -> bool:
    return (
        tuple(s.box for s in registered.slots) == bounds.boxes
        and registered.min_zoom == layer.min_zoom
        and registered.max_zoom == layer.max_zoom
    )


def _removal_ops(registered: RegisteredLayer) -> list[LayerOperation]:
    ops: list[LayerOperation] = []
    for slot in registered.slots:
        ops.append(RemoveLayer(slot.layer_id))
        ops.append(RemoveSource(slot.source_id))
    return ops


def reconcile_layers(
    layers: Sequence[ChartLayer],
    snapshot: LayerSnapshot,
    *,
    all_hidden: bool = False,
    epoch: int | None = None,
    ceiling_layer_id: str | None = None,
) -> LayerPlan:
    """
    Diff desired chart layers against the registered snapshot.

    Args:
        layers: chart layers from the catalog, any order.
        snapshot: snapshot returned by the previous pass.
        all_hidden: global override hiding every chart.
        epoch: surface generation; a new value means the surface was rebuilt
            and the snapshot no longer describes it.
        ceiling_layer_id: overlay present on the surface that must stay above
            every chart, or None.

    Returns:
        Operations in apply order (removals, moves, additions top-down,
        opacity updates) and the snapshot valid after applying them.

    """
    if epoch is not None and epoch != snapshot.epoch:
        logger.info(
            'Surface epoch %s -> %s, re-adding all chart layers',
            snapshot.epoch,
            epoch,
        )
        snapshot = LayerSnapshot(epoch=epoch)

    desired = _desired_layers(layers, all_hidden)
    desired_order = list(desired)

    removals: list[LayerOperation] = []
    survivors: dict[str, RegisteredLayer] = {}
    for chart_id, registered in snapshot.registered.items():
        entry = desired.get(chart_id)
        if entry is None:
            logger.debug('Removing chart %s', chart_id)
            removals.extend(_removal_ops(registered))
            continue
        layer, bounds = entry
        if not _same_geometry(registered, layer, bounds):
            # Source bounds and zooms are immutable once added
            logger.debug('Re-adding chart %s: bounds or zoom window changed', chart_id)
            removals.extend(_removal_ops(registered))
            continue
        survivors[chart_id] = registered

    # Re-stack survivors top-down if their relative order changed
    moves: list[LayerOperation] = []
    current = [cid for cid in snapshot.order if cid in survivors]
    wanted = [cid for cid in desired_order if cid in survivors]
    if current != wanted:
        logger.debug('Restacking charts: %s -> %s', current, wanted)
        before_id = ceiling_layer_id
        for chart_id in reversed(wanted):
            for slot in reversed(survivors[chart_id].slots):
                moves.append(MoveLayer(slot.layer_id, before_id))
                before_id = slot.layer_id

    additions: list[LayerOperation] = []
    opacity_updates: list[LayerOperation] = []
    registered_after: dict[str, RegisteredLayer] = {}
    before_id = ceiling_layer_id
    for chart_id in reversed(desired_order):
        layer, bounds = desired[chart_id]
        existing = survivors.get(chart_id)
        if existing is not None:
            if existing.opacity != layer.opacity:
                opacity_updates.extend(
                    UpdateOpacity(slot.layer_id, layer.opacity) for slot in existing.slots
                )
                existing = RegisteredLayer(
                    chart_id=chart_id,
                    slots=existing.slots,
                    opacity=layer.opacity,
                    min_zoom=existing.min_zoom,
                    max_zoom=existing.max_zoom,
                )
            registered_after[chart_id] = existing
            before_id = existing.lowest_layer_id
            continue

        logger.debug('Adding chart %s below %s', chart_id, before_id)
        slots = slots_for(chart_id, bounds)
        # Both halves of a split chart go in together
        for slot in reversed(slots):
            additions.append(
                AddSource(
                    slot.source_id,
                    chart_source_spec(chart_id, slot, layer.min_zoom, layer.max_zoom),
                ),
            )
            additions.append(
                AddLayer(
                    layer_id=slot.layer_id,
                    source_id=slot.source_id,
                    before_id=before_id,
                    opacity=layer.opacity,
                    min_zoom=layer.min_zoom,
                    max_zoom=layer.max_zoom,
                ),
            )
            before_id = slot.layer_id
        registered_after[chart_id] = RegisteredLayer(
            chart_id=chart_id,
            slots=slots,
            opacity=layer.opacity,
            min_zoom=layer.min_zoom,
            max_zoom=layer.max_zoom,
        )

    new_snapshot = LayerSnapshot(
        epoch=snapshot.epoch,
        registered={cid: registered_after[cid] for cid in desired_order},
        order=tuple(desired_order),
    )
    return LayerPlan(
        operations=[*removals, *moves, *additions, *opacity_updates],
        snapshot=new_snapshot,
    )


def forget_layers(snapshot: LayerSnapshot, chart_ids: Sequence[str]) -> LayerSnapshot:
    """Drop charts whose addition failed so the next pass retries them."""
    dropped = set(chart_ids)
    if not dropped:
        return snapshot
    return LayerSnapshot(
        epoch=snapshot.epoch,
        registered={k: v for k, v in snapshot.registered.items() if k not in dropped},
        order=tuple(cid for cid in snapshot.order if cid not in dropped),
    )
