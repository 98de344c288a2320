"""Services package - reconciliation, basemaps and the download workflow."""

from services.basemaps import Basemap, RasterSource, basemap_for, build_surface_style
from services.download_area import DownloadAreaSession, DownloadAreaWorkflow, PackService
from services.executor import ApplyResult, MapSurface, apply_layer_operations, apply_marker_operations
from services.layer_reconciler import LayerPlan, LayerSnapshot, reconcile_layers
from services.marker_reconciler import (
    DragOverlay,
    MarkerPlan,
    MarkerSnapshot,
    bind_marker_handles,
    drag_move,
    reconcile_markers,
)
from services.markers import pending_entity, route_point_entities, waypoint_entities
from services.synchronizer import MapSynchronizer

__all__ = [
    'ApplyResult',
    'Basemap',
    'DownloadAreaSession',
    'DownloadAreaWorkflow',
    'DragOverlay',
    'LayerPlan',
    'LayerSnapshot',
    'MapSurface',
    'MapSynchronizer',
    'MarkerPlan',
    'MarkerSnapshot',
    'PackService',
    'RasterSource',
    'apply_layer_operations',
    'apply_marker_operations',
    'basemap_for',
    'bind_marker_handles',
    'build_surface_style',
    'drag_move',
    'pending_entity',
    'reconcile_layers',
    'reconcile_markers',
    'route_point_entities',
    'waypoint_entities',
]
