"""Domain layer - models, errors and settings mapping."""
from domain.errors import (
    DownloadFailed,
    DownloadRejected,
    DrawingError,
    InvalidBounds,
    InvalidTransition,
    NavSyncError,
    PackServiceError,
    WorkflowError,
)
from domain.models import (
    ChartLayer,
    CustomPackResult,
    DownloadProgress,
    PackBounds,
    PointEntity,
    Route,
    RoutePoint,
    SyncSettings,
    TileEstimate,
    Waypoint,
)

__all__ = [
    'ChartLayer',
    'CustomPackResult',
    'DownloadFailed',
    'DownloadProgress',
    'DownloadRejected',
    'DrawingError',
    'InvalidBounds',
    'InvalidTransition',
    'NavSyncError',
    'PackBounds',
    'PackServiceError',
    'PointEntity',
    'Route',
    'RoutePoint',
    'SyncSettings',
    'TileEstimate',
    'Waypoint',
    'WorkflowError',
]
