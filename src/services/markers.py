"""Build point entities from waypoints, routes and the pending marker.

Visibility and label predicates (global toggles, active-item override,
hidden routes) are evaluated here; the marker reconciler only sees their
results on each ``PointEntity``.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence

from domain.models import PointEntity, Route, Waypoint
from shared.constants import (
    DEFAULT_SYMBOL,
    PENDING_MARKER_ID,
    PENDING_MARKER_LABEL,
    WAYPOINT_SYMBOLS,
    EntityKind,
)


def waypoint_entities(
    waypoints: Sequence[Waypoint],
    *,
    active_id: str | None = None,
    selected_id: str | None = None,
    show_all_labels: bool = True,
    show_all_markers: bool = True,
) -> list[PointEntity]:
    """
    One entity per waypoint.

    A label is rendered only when both the waypoint and the global toggle
    allow it. The active waypoint stays visible even when markers are hidden.
    """
    entities = []
    for wp in waypoints:
        active = wp.id == active_id
        label = wp.name if (show_all_labels and wp.show_label and wp.name) else None
        symbol = wp.symbol if wp.symbol in WAYPOINT_SYMBOLS else DEFAULT_SYMBOL
        visible = active or (show_all_markers and not wp.hidden)
        entities.append(
            PointEntity(
                entity_id=f'{EntityKind.WAYPOINT.value}:{wp.id}',
                kind=EntityKind.WAYPOINT,
                lat=wp.lat,
                lon=wp.lon,
                label=label,
                symbol=symbol,
                active=active,
                selected=wp.id == selected_id,
                visible=visible,
            ),
        )
    return entities


def route_point_entities(
    routes: Sequence[Route],
    *,
    active_route_id: str | None = None,
    hidden_route_ids: Collection[str] = (),
) -> list[PointEntity]:
    """Numbered markers for every point of every route."""
    entities = []
    for route in routes:
        active = route.id == active_route_id
        visible = active or not (route.hidden or route.id in hidden_route_ids)
        for idx, point in enumerate(route.points, start=1):
            entities.append(
                PointEntity(
                    entity_id=f'{EntityKind.ROUTE_POINT.value}:{route.id}:{point.id}',
                    kind=EntityKind.ROUTE_POINT,
                    lat=point.lat,
                    lon=point.lon,
                    label=str(idx),
                    color=route.color,
                    active=active,
                    visible=visible,
                ),
            )
    return entities


def pending_entity(lat: float, lon: float) -> PointEntity:
    """Marker shown at a position the user picked before naming the waypoint."""
    return PointEntity(
        entity_id=PENDING_MARKER_ID,
        kind=EntityKind.PENDING,
        lat=lat,
        lon=lon,
        label=PENDING_MARKER_LABEL,
    )
