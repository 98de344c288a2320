"""Offline download area workflow.

States::

    idle -> drawing -> configuring -> downloading -> idle         (success)
                                                  -> configuring  (error, cancel)

The workflow owns the session (polygon, name, zoom range, basemap, estimate,
progress) and keeps the tile estimate current on every change that affects
it. Display code observes it through ``WorkflowEvent`` notifications.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from domain.errors import (
    DownloadFailed,
    DownloadRejected,
    DrawingError,
    InvalidBounds,
    InvalidTransition,
    WorkflowError,
)
from domain.models import DownloadProgress, PackBounds, SyncSettings
from geo.bounds import ClassifiedBounds, SplitBox, normalize_lon
from geo.polygon import (
    PolygonPoint,
    area_square_miles,
    format_area,
    is_valid_polygon,
    polygon_bounds,
)
from shared.constants import (
    MIN_POLYGON_POINTS,
    PACK_STATUS_CANCELLED,
    PACK_STATUS_COMPLETE,
    PACK_STATUS_FAILED,
    WORLD_LAT_MAX_DEG,
    BasemapProvider,
    WorkflowState,
)
from shared.observable import Observable, WorkflowEvent
from tiles.coverage import plan_pyramid

logger = logging.getLogger(__name__)


class PackService(Protocol):
    """Pack creation and progress, provided by the pack service client."""

    async def request_custom_pack(
        self,
        bounds: PackBounds,
        zoom_levels: list[int],
        basemap_id: str,
        name: str,
    ) -> str | None: ...

    async def get_download_progress(self, pack_id: str) -> DownloadProgress: ...

    async def cancel_download(self, pack_id: str) -> bool: ...


@dataclass
class ProgressState:
    percent: float = 0.0
    downloaded_tiles: int = 0
    total_tiles: int = 0
    phase: str | None = None


@dataclass
class DownloadAreaSession:
    name: str
    min_zoom: int
    max_zoom: int
    basemap_id: BasemapProvider
    points: list[PolygonPoint] = field(default_factory=list)
    bounds: ClassifiedBounds | None = None
    # True once the user picked a max zoom; limit changes never override it
    max_zoom_explicit: bool = False
    estimated_tile_count: int = 0
    estimated_size_bytes: int = 0
    pack_id: str | None = None
    progress: ProgressState = field(default_factory=ProgressState)
    error: str | None = None


def default_download_name() -> str:
    return f'Download {datetime.now().strftime("%Y-%m-%d")}'


def pack_bounds_for(bounds: ClassifiedBounds) -> PackBounds:
    """Request bounds; a split area is sent with ``min_lon > max_lon``."""
    if isinstance(bounds, SplitBox):
        return PackBounds(
            min_lon=bounds.west.west,
            min_lat=bounds.south,
            max_lon=bounds.east.east,
            max_lat=bounds.north,
        )
    box = bounds.box
    return PackBounds(min_lon=box.west, min_lat=box.south, max_lon=box.east, max_lat=box.north)


class DownloadAreaWorkflow(Observable):
    """State machine for drawing an area and downloading it as a pack."""

    def __init__(
        self,
        settings: SyncSettings | None = None,
        *,
        pack_service: PackService | None = None,
        max_zoom_limit: int | None = None,
    ) -> None:
        super().__init__()
        self.settings = settings or SyncSettings()
        self._pack_service = pack_service
        self._active_service: PackService | None = None
        self._max_zoom_limit = max_zoom_limit
        self._state = WorkflowState.IDLE
        self._session: DownloadAreaSession | None = None
        self._cancel_event: asyncio.Event | None = None

    # --- Read-only views

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def session(self) -> DownloadAreaSession | None:
        return self._session

    @property
    def max_zoom_limit(self) -> int | None:
        return self._max_zoom_limit

    @property
    def is_active(self) -> bool:
        return self._state in (WorkflowState.DRAWING, WorkflowState.CONFIGURING)

    @property
    def effective_max_zoom(self) -> int:
        ceiling = self._zoom_ceiling()
        if self._session is None:
            return min(self.settings.default_max_zoom, ceiling)
        return min(self._session.max_zoom, ceiling)

    @property
    def zoom_levels(self) -> list[int]:
        if self._session is None:
            return []
        return list(range(self._session.min_zoom, self.effective_max_zoom + 1))

    @property
    def can_finish_drawing(self) -> bool:
        return (
            self._state is WorkflowState.DRAWING
            and self._session is not None
            and len(self._session.points) >= MIN_POLYGON_POINTS
        )

    @property
    def can_download(self) -> bool:
        s = self._session
        return (
            self._state is WorkflowState.CONFIGURING
            and s is not None
            and s.bounds is not None
            and bool(s.name.strip())
            and 0 < s.estimated_tile_count <= self.settings.max_tile_count
        )

    @property
    def tile_count_warning(self) -> bool:
        s = self._session
        return s is not None and s.estimated_tile_count > self.settings.warning_tile_count

    @property
    def tile_count_error(self) -> bool:
        s = self._session
        return s is not None and s.estimated_tile_count > self.settings.max_tile_count

    @property
    def area_label(self) -> str | None:
        if self._session is None or self._session.bounds is None:
            return None
        return format_area(area_square_miles(self._session.bounds))

    # --- Helpers

    def _zoom_ceiling(self) -> int:
        if self._max_zoom_limit is None:
            return self.settings.absolute_max_zoom
        return min(self._max_zoom_limit, self.settings.absolute_max_zoom)

    def _require(self, operation: str, *states: WorkflowState) -> DownloadAreaSession:
        if self._state not in states or self._session is None:
            raise InvalidTransition(operation, self._state.value)
        return self._session

    def _set_state(self, state: WorkflowState) -> None:
        if state is self._state:
            return
        logger.info('Download area: %s -> %s', self._state.value, state.value)
        previous = self._state
        self._state = state
        self.notify_observers(
            WorkflowEvent.STATE_CHANGED,
            {'previous': previous.value, 'state': state.value},
        )

    def _recompute_estimate(self) -> None:
        s = self._session
        if s is None:
            return
        if s.bounds is None:
            s.estimated_tile_count = 0
            s.estimated_size_bytes = 0
        else:
            estimate = plan_pyramid(s.bounds, s.min_zoom, self.effective_max_zoom, s.basemap_id)
            s.estimated_tile_count = estimate.tile_count
            s.estimated_size_bytes = estimate.size_bytes
        logger.debug(
            'Estimate: %d tiles, %d bytes (z%d-%d)',
            s.estimated_tile_count,
            s.estimated_size_bytes,
            s.min_zoom,
            self.effective_max_zoom,
        )
        self.notify_observers(
            WorkflowEvent.ESTIMATE_UPDATED,
            {
                'tile_count': s.estimated_tile_count,
                'size_bytes': s.estimated_size_bytes,
            },
        )

    def _validate_zoom(self, zoom: int) -> int:
        if not (0 <= zoom <= self.settings.absolute_max_zoom):
            msg = f'Zoom must be in [0, {self.settings.absolute_max_zoom}], got {zoom}'
            raise ValueError(msg)
        return zoom

    def _reject(self, session: DownloadAreaSession, message: str) -> DownloadRejected:
        session.error = message
        logger.warning('Download rejected: %s', message)
        self.notify_observers(WorkflowEvent.ERROR_OCCURRED, {'error': message})
        return DownloadRejected(message)

    # --- Drawing

    def start_drawing(self) -> None:
        """Begin a fresh session; any previous drawing or configuration is discarded."""
        if self._state is WorkflowState.DOWNLOADING:
            raise InvalidTransition('start_drawing', self._state.value)
        self._session = DownloadAreaSession(
            name=default_download_name(),
            min_zoom=self.settings.default_min_zoom,
            max_zoom=self.settings.default_max_zoom,
            basemap_id=self.settings.default_basemap,
        )
        if self._max_zoom_limit is not None and self._max_zoom_limit > self._session.max_zoom:
            self._session.max_zoom = min(self._max_zoom_limit, self.settings.absolute_max_zoom)
        self._set_state(WorkflowState.DRAWING)
        self.notify_observers(WorkflowEvent.SESSION_CHANGED)

    def add_point(self, lat: float, lon: float) -> None:
        s = self._require('add_point', WorkflowState.DRAWING)
        if not (math.isfinite(lat) and math.isfinite(lon)):
            msg = f'Point is not finite: ({lat}, {lon})'
            raise InvalidBounds(msg)
        if not -WORLD_LAT_MAX_DEG <= lat <= WORLD_LAT_MAX_DEG:
            msg = f'Latitude out of range: {lat}'
            raise InvalidBounds(msg)
        # Clicks on a repeated world copy come in beyond +-180
        s.points.append(PolygonPoint(lat=lat, lon=normalize_lon(lon)))
        logger.debug('Point #%d: lat=%.6f lon=%.6f', len(s.points), lat, lon)
        self.notify_observers(WorkflowEvent.SESSION_CHANGED, {'points': len(s.points)})

    def remove_last_point(self) -> None:
        s = self._require('remove_last_point', WorkflowState.DRAWING)
        if s.points:
            s.points.pop()
            self.notify_observers(WorkflowEvent.SESSION_CHANGED, {'points': len(s.points)})

    def finish_drawing(self) -> ClassifiedBounds:
        """
        Close the polygon and move to configuring.

        Raises:
            DrawingError: fewer than three points or a degenerate extent; the
                workflow stays in drawing with the points kept.

        """
        s = self._require('finish_drawing', WorkflowState.DRAWING)
        if not is_valid_polygon(s.points, self.settings.min_polygon_span_deg):
            msg = f'Draw a valid polygon with at least {MIN_POLYGON_POINTS} points'
            s.error = msg
            logger.warning('Polygon rejected: %d points', len(s.points))
            self.notify_observers(WorkflowEvent.ERROR_OCCURRED, {'error': msg})
            raise DrawingError(msg)
        bounds = polygon_bounds(s.points)
        if bounds is None:
            msg = 'Polygon has no bounds'
            raise DrawingError(msg)
        s.bounds = bounds
        s.error = None
        logger.info('Area bounds: %s', [b.as_list() for b in bounds.boxes])
        self._set_state(WorkflowState.CONFIGURING)
        self._recompute_estimate()
        return bounds

    def cancel(self) -> None:
        """Abandon drawing or configuring; the session is discarded."""
        if self._state is WorkflowState.IDLE:
            return
        if self._state is WorkflowState.DOWNLOADING:
            raise InvalidTransition('cancel', self._state.value)
        self._session = None
        self._set_state(WorkflowState.IDLE)
        self.notify_observers(WorkflowEvent.SESSION_CHANGED)

    # --- Configuring

    def update_name(self, name: str) -> None:
        s = self._require('update_name', WorkflowState.CONFIGURING)
        s.name = name
        self.notify_observers(WorkflowEvent.SESSION_CHANGED, {'name': name})

    def update_zoom_range(self, min_zoom: int | None = None, max_zoom: int | None = None) -> None:
        """
        Change the zoom range. ``max_zoom`` is clamped to the entitlement
        limit and marks the max as an explicit user choice.
        """
        s = self._require('update_zoom_range', WorkflowState.CONFIGURING)
        new_min = s.min_zoom if min_zoom is None else self._validate_zoom(min_zoom)
        new_max = s.max_zoom if max_zoom is None else min(self._validate_zoom(max_zoom), self._zoom_ceiling())
        if new_min > new_max:
            msg = f'Min zoom {new_min} is above max zoom {new_max}'
            raise ValueError(msg)
        s.min_zoom = new_min
        if max_zoom is not None:
            s.max_zoom = new_max
            s.max_zoom_explicit = True
        self._recompute_estimate()

    def update_basemap(self, basemap_id: str | BasemapProvider) -> None:
        s = self._require('update_basemap', WorkflowState.CONFIGURING)
        s.basemap_id = BasemapProvider(basemap_id)
        self._recompute_estimate()

    def set_max_zoom_limit(self, limit: int | None) -> None:
        """
        Apply the entitlement zoom ceiling.

        A max zoom the user never touched follows a raised limit upward;
        an explicit choice is only capped, never raised.
        """
        self._max_zoom_limit = limit
        s = self._session
        if s is None:
            return
        # no entitlement is not a raise
        if limit is not None:
            ceiling = self._zoom_ceiling()
            if not s.max_zoom_explicit and ceiling > s.max_zoom:
                s.max_zoom = ceiling
        if self._state is WorkflowState.CONFIGURING:
            self._recompute_estimate()

    # --- Downloading

    async def start_download(self, pack_service: PackService | None = None) -> str | None:
        """
        Validate the session and ask the pack service for a pack.

        Returns the pack id, or None when the download was cancelled while
        the request was in flight; a pack created by that request is
        cancelled on the service.

        Raises:
            InvalidTransition: not configuring.
            DownloadRejected: empty name, or estimate zero or over the limit;
                the pack service is never called.
            DownloadFailed: the pack service failed or returned no id; the
                workflow is back in configuring with the session intact.

        """
        s = self._require('start_download', WorkflowState.CONFIGURING)
        service = pack_service or self._pack_service
        if service is None:
            msg = 'No pack service configured'
            raise WorkflowError(msg)
        if s.bounds is None:
            raise self._reject(s, 'Area has no bounds')
        if not s.name.strip():
            raise self._reject(s, 'Download name is empty')
        if s.estimated_tile_count <= 0:
            raise self._reject(s, 'Selection contains no tiles')
        if s.estimated_tile_count > self.settings.max_tile_count:
            raise self._reject(
                s,
                f'Too many tiles: {s.estimated_tile_count} > {self.settings.max_tile_count}',
            )

        zoom_levels = self.zoom_levels
        s.error = None
        s.pack_id = None
        s.progress = ProgressState()
        self._active_service = service
        cancel = asyncio.Event()
        self._cancel_event = cancel
        self._set_state(WorkflowState.DOWNLOADING)
        self.notify_observers(
            WorkflowEvent.DOWNLOAD_STARTED,
            {'name': s.name.strip(), 'zoom_levels': zoom_levels},
        )

        try:
            pack_id = await service.request_custom_pack(
                pack_bounds_for(s.bounds),
                zoom_levels,
                s.basemap_id.value,
                s.name.strip(),
            )
        except asyncio.CancelledError:
            if not cancel.is_set():
                self._back_to_configuring()
            raise
        except Exception as e:
            if cancel.is_set():
                logger.info('Pack request failed after cancel: %s', e)
                return None
            logger.exception('Pack request failed')
            msg = str(e) or 'Pack request failed'
            self.error(msg)
            raise DownloadFailed(msg) from e

        if cancel.is_set():
            # the session has moved on, possibly to a newer download
            if pack_id:
                await self._request_cancel(service, pack_id)
            return None
        if not pack_id:
            msg = 'No pack ID returned'
            self.error(msg)
            raise DownloadFailed(msg)
        s.pack_id = pack_id
        logger.info('Pack %s requested for %d zoom levels', pack_id, len(zoom_levels))
        return pack_id

    def progress(
        self,
        percent: float,
        downloaded_tiles: int = 0,
        total_tiles: int = 0,
        phase: str | None = None,
    ) -> None:
        """Record a progress report; ignored outside downloading."""
        if self._state is not WorkflowState.DOWNLOADING or self._session is None:
            logger.debug('Ignoring progress report in state %s', self._state.value)
            return
        self._session.progress = ProgressState(
            percent=percent,
            downloaded_tiles=downloaded_tiles,
            total_tiles=total_tiles,
            phase=phase,
        )
        self.notify_observers(
            WorkflowEvent.DOWNLOAD_PROGRESS,
            {
                'percent': percent,
                'downloaded_tiles': downloaded_tiles,
                'total_tiles': total_tiles,
                'phase': phase,
            },
        )

    def success(self) -> None:
        s = self._require('success', WorkflowState.DOWNLOADING)
        pack_id = s.pack_id
        self._session = None
        self._active_service = None
        self._set_state(WorkflowState.IDLE)
        self.notify_observers(WorkflowEvent.DOWNLOAD_COMPLETED, {'pack_id': pack_id})

    def error(self, message: str) -> None:
        """Download failed: back to configuring, polygon and settings kept."""
        s = self._require('error', WorkflowState.DOWNLOADING)
        s.error = message
        self._back_to_configuring()
        self.notify_observers(WorkflowEvent.DOWNLOAD_FAILED, {'error': message})

    def _back_to_configuring(self) -> None:
        if self._session is not None:
            self._session.pack_id = None
        self._active_service = None
        self._set_state(WorkflowState.CONFIGURING)

    async def run_download(
        self,
        pack_service: PackService | None = None,
        *,
        poll_interval: float | None = None,
    ) -> str | None:
        """
        Request a pack and poll its progress until it finishes.

        Returns the pack id on success, None when cancelled.
        """
        service = pack_service or self._pack_service
        pack_id = await self.start_download(service)
        cancel = self._cancel_event
        if pack_id is None or service is None or cancel is None or cancel.is_set():
            return None
        interval = self.settings.poll_interval_s if poll_interval is None else poll_interval

        while not cancel.is_set():
            try:
                report = await service.get_download_progress(pack_id)
            except Exception as e:
                if cancel.is_set():
                    break
                logger.exception('Progress polling failed for pack %s', pack_id)
                msg = str(e) or 'Progress polling failed'
                self.error(msg)
                raise DownloadFailed(msg) from e
            if cancel.is_set():
                break

            self.progress(report.percent, report.downloaded_tiles, report.total_tiles, report.phase)
            if report.status == PACK_STATUS_COMPLETE:
                self.success()
                return pack_id
            if report.status == PACK_STATUS_FAILED:
                msg = f'Pack {pack_id} failed'
                self.error(msg)
                raise DownloadFailed(msg)
            if report.status == PACK_STATUS_CANCELLED:
                logger.info('Pack %s was cancelled by the service', pack_id)
                self._finish_cancel()
                return None

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(cancel.wait(), timeout=interval)

        logger.info('Stopped polling pack %s', pack_id)
        return None

    async def cancel_download(self) -> None:
        """Stop polling, ask the service to cancel and return to configuring."""
        s = self._require('cancel_download', WorkflowState.DOWNLOADING)
        if self._cancel_event is not None:
            self._cancel_event.set()
        service = self._active_service
        if s.pack_id and service is not None:
            await self._request_cancel(service, s.pack_id)
        if self._state is WorkflowState.DOWNLOADING:
            self._finish_cancel()

    async def _request_cancel(self, service: PackService, pack_id: str) -> None:
        try:
            cancelled = await service.cancel_download(pack_id)
        except Exception:
            logger.exception('Cancel request failed for pack %s', pack_id)
        else:
            logger.info('Pack %s cancel acknowledged: %s', pack_id, cancelled)

    def _finish_cancel(self) -> None:
        if self._session is not None:
            self._session.error = None
        self._back_to_configuring()
        self.notify_observers(WorkflowEvent.DOWNLOAD_CANCELLED)
