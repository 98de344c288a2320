import hashlib
import json

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from shared.constants import (
    ABSOLUTE_MAX_ZOOM,
    CEILING_LAYER_ID,
    CHART_DEFAULT_MAX_ZOOM,
    CHART_DEFAULT_MIN_ZOOM,
    DEFAULT_MAX_ZOOM,
    DEFAULT_MIN_ZOOM,
    DEFAULT_ROUTE_COLOR,
    DEFAULT_SYMBOL,
    HTTP_TIMEOUT_DEFAULT,
    MAX_TILE_COUNT,
    MIN_POLYGON_SPAN_DEG,
    PACK_POLL_INTERVAL_S,
    PACK_SERVICE_URL,
    WARNING_TILE_COUNT,
    BasemapProvider,
    EntityKind,
    default_basemap,
)


def _check_zoom(v: int | str) -> int:
    iv = int(v)
    if not (0 <= iv <= ABSOLUTE_MAX_ZOOM):
        msg = f'Zoom must be in [0, {ABSOLUTE_MAX_ZOOM}], got {iv}'
        raise ValueError(msg)
    return iv


class ChartLayer(BaseModel):
    """Chart raster layer as the chart catalog reports it."""

    model_config = {
        'extra': 'ignore',  # catalog rows carry more fields than we render
    }

    chart_id: str
    name: str = ''
    enabled: bool = True
    opacity: float = 1.0
    min_zoom: int = CHART_DEFAULT_MIN_ZOOM
    max_zoom: int = CHART_DEFAULT_MAX_ZOOM
    # "west,south,east,north"; None when the catalog has no coverage info
    raw_bounds: str | None = None
    # Stacking key: higher values are drawn above lower ones
    z_order: int = 0
    tile_format: str = 'png'

    @field_validator('opacity')
    @classmethod
    def validate_opacity(cls, v: float | str) -> float:
        v = float(v)
        if not (0.0 <= v <= 1.0):
            msg = 'Opacity must be within [0.0, 1.0]'
            raise ValueError(msg)
        return v

    @field_validator('min_zoom', 'max_zoom')
    @classmethod
    def validate_zoom(cls, v: int | str) -> int:
        return _check_zoom(v)


class Waypoint(BaseModel):
    model_config = {'extra': 'ignore'}

    id: str
    name: str = ''
    lat: float
    lon: float
    symbol: str = DEFAULT_SYMBOL
    show_label: bool = True
    hidden: bool = False


class RoutePoint(BaseModel):
    model_config = {'extra': 'ignore'}

    id: str
    lat: float
    lon: float
    name: str | None = None


class Route(BaseModel):
    model_config = {'extra': 'ignore'}

    id: str
    name: str = ''
    points: list[RoutePoint] = Field(default_factory=list)
    color: str = DEFAULT_ROUTE_COLOR
    hidden: bool = False


class PointEntity(BaseModel):
    """
    A point the surface shows as a marker.

    ``label`` is the text actually rendered (None when hidden), so toggling
    label visibility changes the fingerprint while moving the point does not.
    """

    model_config = {'frozen': True}

    entity_id: str
    kind: EntityKind
    lat: float
    lon: float
    label: str | None = None
    symbol: str = DEFAULT_SYMBOL
    color: str | None = None
    active: bool = False
    selected: bool = False
    visible: bool = True

    @property
    def appearance(self) -> dict[str, object]:
        return {
            'kind': self.kind.value,
            'label': self.label,
            'symbol': self.symbol,
            'color': self.color,
            'active': self.active,
            'selected': self.selected,
        }

    @property
    def fingerprint(self) -> str:
        # Position and visibility never participate
        canonical = json.dumps(self.appearance, sort_keys=True, separators=(',', ':'))
        return hashlib.sha1(canonical.encode('utf-8')).hexdigest()


class SyncSettings(BaseModel):
    """Download and surface settings, loaded from a TOML profile."""

    model_config = {
        'extra': 'ignore',  # tolerate keys from newer profiles
    }

    # Zoom range preselected for new download sessions
    default_min_zoom: int = DEFAULT_MIN_ZOOM
    default_max_zoom: int = DEFAULT_MAX_ZOOM
    # Zoom ceiling when no entitlement limit is set
    absolute_max_zoom: int = ABSOLUTE_MAX_ZOOM

    max_tile_count: int = MAX_TILE_COUNT
    warning_tile_count: int = WARNING_TILE_COUNT
    min_polygon_span_deg: float = MIN_POLYGON_SPAN_DEG
    default_basemap: BasemapProvider = default_basemap()

    # Pack service
    pack_service_url: str = PACK_SERVICE_URL
    request_timeout_s: float = HTTP_TIMEOUT_DEFAULT
    poll_interval_s: float = PACK_POLL_INTERVAL_S

    # Overlay kept above all chart layers; empty string disables it
    ceiling_layer_id: str = CEILING_LAYER_ID
    show_seamarks: bool = True

    @field_validator('default_min_zoom', 'default_max_zoom', 'absolute_max_zoom')
    @classmethod
    def validate_zoom(cls, v: int | str) -> int:
        return _check_zoom(v)

    @field_validator('default_max_zoom')
    @classmethod
    def validate_zoom_order(cls, v: int, info: ValidationInfo) -> int:
        lo = info.data.get('default_min_zoom')
        if lo is not None and v < lo:
            msg = f'default_max_zoom ({v}) is below default_min_zoom ({lo})'
            raise ValueError(msg)
        return v

    @field_validator('max_tile_count', 'warning_tile_count')
    @classmethod
    def validate_positive_count(cls, v: int | str) -> int:
        iv = int(v)
        if iv <= 0:
            msg = 'Tile count limits must be positive'
            raise ValueError(msg)
        return iv

    @field_validator('min_polygon_span_deg', 'request_timeout_s', 'poll_interval_s')
    @classmethod
    def validate_positive_float(cls, v: float | str) -> float:
        fv = float(v)
        if fv <= 0:
            msg = 'Value must be positive'
            raise ValueError(msg)
        return fv

    @field_validator('pack_service_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip('/')


class PackBounds(BaseModel):
    """Pack request bounds; ``min_lon > max_lon`` marks an antimeridian crossing."""

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float


class CustomPackResult(BaseModel):
    model_config = {'extra': 'ignore'}

    pack_id: str | None = None
    status: str = ''
    tile_count: int = 0


class TileEstimate(BaseModel):
    model_config = {'extra': 'ignore'}

    tile_count: int
    estimated_size_bytes: int = 0


class DownloadProgress(BaseModel):
    """Pack download progress as reported by the pack service."""

    model_config = {'extra': 'ignore'}

    pack_id: str
    total_tiles: int = 0
    downloaded_tiles: int = 0
    failed_tiles: int = 0
    percent: float = 0.0
    status: str = ''
    phase: str | None = None
    paused: bool = False
    eta_seconds: float | None = None
    tiles_per_second: float | None = None
