"""Point marker reconciliation.

A marker is recreated only when its entity's fingerprint changes; a position
change alone moves the existing marker. Interactive drags are previewed
through a ``DragOverlay`` value so the entity itself is never mutated while
the pointer is down.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace

from domain.models import PointEntity
from shared.constants import POSITION_EPSILON_DEG

logger = logging.getLogger(__name__)

Position = tuple[float, float]


@dataclass(frozen=True)
class MarkerEntry:
    fingerprint: str
    # Surface handle; None until the executor reports the created marker
    handle: object | None
    lat: float
    lon: float

    @property
    def position(self) -> Position:
        return self.lat, self.lon


@dataclass(frozen=True)
class MarkerSnapshot:
    entries: dict[str, MarkerEntry] = field(default_factory=dict)


# --- Operations


@dataclass(frozen=True)
class CreateMarker:
    entity: PointEntity
    lat: float
    lon: float

    @property
    def entity_id(self) -> str:
        return self.entity.entity_id


@dataclass(frozen=True)
class MoveMarker:
    entity_id: str
    handle: object
    lat: float
    lon: float


@dataclass(frozen=True)
class DestroyMarker:
    entity_id: str
    handle: object


MarkerOperation = CreateMarker | MoveMarker | DestroyMarker


@dataclass(frozen=True)
class MarkerPlan:
    operations: list[MarkerOperation]
    snapshot: MarkerSnapshot

    @property
    def is_empty(self) -> bool:
        return not self.operations


@dataclass(frozen=True)
class DragState:
    origin: Position
    position: Position


@dataclass(frozen=True)
class DragOverlay:
    """Positions being dragged, keyed by entity id."""

    drags: dict[str, DragState] = field(default_factory=dict)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self.drags

    def __bool__(self) -> bool:
        return bool(self.drags)

    def position_of(self, entity_id: str) -> Position | None:
        state = self.drags.get(entity_id)
        return state.position if state is not None else None

    def start(self, entity: PointEntity) -> DragOverlay:
        origin = (entity.lat, entity.lon)
        return DragOverlay({**self.drags, entity.entity_id: DragState(origin, origin)})

    def move(self, entity_id: str, lat: float, lon: float) -> DragOverlay:
        state = self.drags.get(entity_id)
        if state is None:
            msg = f'No drag in progress for {entity_id}'
            raise KeyError(msg)
        return DragOverlay({**self.drags, entity_id: replace(state, position=(lat, lon))})

    def _finish(self, entity_id: str) -> tuple[DragState, DragOverlay]:
        state = self.drags.get(entity_id)
        if state is None:
            msg = f'No drag in progress for {entity_id}'
            raise KeyError(msg)
        rest = {k: v for k, v in self.drags.items() if k != entity_id}
        return state, DragOverlay(rest)

    def end(self, entity_id: str) -> tuple[Position, DragOverlay]:
        """Finish a drag: final position to persist, overlay without it."""
        state, overlay = self._finish(entity_id)
        return state.position, overlay

    def cancel(self, entity_id: str) -> tuple[Position, DragOverlay]:
        """Abort a drag: original position, overlay without it."""
        state, overlay = self._finish(entity_id)
        return state.origin, overlay


@dataclass(frozen=True)
class DragStep:
    operations: list[MarkerOperation]
    snapshot: MarkerSnapshot
    overlay: DragOverlay


def _moved(entry: MarkerEntry, lat: float, lon: float) -> bool:
    return (
        abs(entry.lat - lat) > POSITION_EPSILON_DEG
        or abs(entry.lon - lon) > POSITION_EPSILON_DEG
    )


def _index_entities(entities: Sequence[PointEntity]) -> dict[str, PointEntity]:
    by_id: dict[str, PointEntity] = {}
    for entity in entities:
        if entity.entity_id in by_id:
            logger.warning('Duplicate marker id %s, keeping the last one', entity.entity_id)
        by_id[entity.entity_id] = entity
    return by_id


def reconcile_markers(
    entities: Sequence[PointEntity],
    snapshot: MarkerSnapshot,
    *,
    overlay: DragOverlay | None = None,
) -> MarkerPlan:
    """
    Diff point entities against the rendered markers.

    Per entity, at its effective position (dragged position if any):
    hidden -> destroy; new or fingerprint changed -> destroy and create;
    same fingerprint but moved -> move; otherwise nothing. Markers whose
    entity is gone are destroyed first. An entry still waiting for its
    handle counts as present, so the returned snapshot is a fixed point.
    """
    overlay = overlay or DragOverlay()
    by_id = _index_entities(entities)

    ops: list[MarkerOperation] = []
    entries: dict[str, MarkerEntry] = {}

    for entity_id, entry in snapshot.entries.items():
        if entity_id not in by_id and entry.handle is not None:
            logger.debug('Destroying marker %s: entity gone', entity_id)
            ops.append(DestroyMarker(entity_id, entry.handle))

    for entity_id, entity in by_id.items():
        entry = snapshot.entries.get(entity_id)

        if not entity.visible:
            if entry is not None and entry.handle is not None:
                logger.debug('Destroying marker %s: hidden', entity_id)
                ops.append(DestroyMarker(entity_id, entry.handle))
            continue

        lat, lon = overlay.position_of(entity_id) or (entity.lat, entity.lon)
        fingerprint = entity.fingerprint

        if entry is None or entry.fingerprint != fingerprint:
            if entry is not None and entry.handle is not None:
                logger.debug('Recreating marker %s: appearance changed', entity_id)
                ops.append(DestroyMarker(entity_id, entry.handle))
            ops.append(CreateMarker(entity, lat, lon))
            entries[entity_id] = MarkerEntry(fingerprint, None, lat, lon)
            continue

        # Pending creation: counted as present, moved once its handle is bound
        if entry.handle is not None and _moved(entry, lat, lon):
            ops.append(MoveMarker(entity_id, entry.handle, lat, lon))
            entry = replace(entry, lat=lat, lon=lon)
        entries[entity_id] = entry

    return MarkerPlan(operations=ops, snapshot=MarkerSnapshot(entries))


def bind_marker_handles(
    snapshot: MarkerSnapshot,
    created: Mapping[str, object],
) -> MarkerSnapshot:
    """
    Record the handles of markers the executor created.

    Entries still waiting for a handle that is not in ``created`` failed to
    render; they are dropped so the next pass creates them again.
    """
    entries: dict[str, MarkerEntry] = {}
    for entity_id, entry in snapshot.entries.items():
        if entry.handle is not None:
            entries[entity_id] = entry
        elif entity_id in created:
            entries[entity_id] = replace(entry, handle=created[entity_id])
        else:
            logger.warning('Marker %s was not created, will retry', entity_id)
    return MarkerSnapshot(entries)


def drag_move(
    snapshot: MarkerSnapshot,
    overlay: DragOverlay,
    entity_id: str,
    lat: float,
    lon: float,
) -> DragStep:
    """
    Preview a drag position.

    Position-only: the fingerprint is not consulted and the marker is never
    recreated while dragging.
    """
    overlay = overlay.move(entity_id, lat, lon)
    entry = snapshot.entries.get(entity_id)
    if entry is None or entry.handle is None or not _moved(entry, lat, lon):
        return DragStep([], snapshot, overlay)
    entries = {**snapshot.entries, entity_id: replace(entry, lat=lat, lon=lon)}
    return DragStep(
        [MoveMarker(entity_id, entry.handle, lat, lon)],
        MarkerSnapshot(entries),
        overlay,
    )
