from enum import Enum

# Web Mercator latitude limit (degrees)
MERCATOR_MAX_LAT_DEG = 85.0511

# World extents in degrees
WORLD_LNG_SPAN_DEG = 360.0
WORLD_LNG_HALF_SPAN_DEG = 180.0
WORLD_LAT_MAX_DEG = 90.0

# Longitude span above which a west<0<east box is read as a dateline crossing
ANTIMERIDIAN_LONG_WAY_SPAN_DEG = 180.0

# Base raster tile size (px)
TILE_SIZE = 256

# Earth radius in nautical miles (area estimates)
EARTH_RADIUS_NM = 3440.065

# 1 sq nm = 1.32324 sq mi
SQ_NM_TO_SQ_MI = 1.32324

# Acres per square mile
ACRES_PER_SQ_MI = 640

# --- Download area defaults

# Zoom range preselected for a new download session
DEFAULT_MIN_ZOOM = 6
DEFAULT_MAX_ZOOM = 14

# Hard zoom ceiling when no entitlement limit is known
ABSOLUTE_MAX_ZOOM = 22

# Tile count limits for a single pack
MAX_TILE_COUNT = 250_000
WARNING_TILE_COUNT = 50_000

# Minimum polygon bbox size on either axis (degrees)
MIN_POLYGON_SPAN_DEG = 0.0001

# Minimum number of polygon vertices
MIN_POLYGON_POINTS = 3

# Pack progress polling interval (seconds)
PACK_POLL_INTERVAL_S = 1.0

# Pack service defaults
PACK_SERVICE_URL = 'http://127.0.0.1:47800'
PACK_SERVICE_RPC_PATH = '/rpc'
HTTP_TIMEOUT_DEFAULT = 20.0

HTTP_OK = 200

# Pack progress statuses reported by the pack service
PACK_STATUS_COMPLETE = 'complete'
PACK_STATUS_FAILED = 'failed'
PACK_STATUS_CANCELLED = 'cancelled'

# Average tile size (bytes) per basemap provider, used for size estimates
TILE_SIZE_ESTIMATES: dict[str, int] = {
    'osm': 20_000,
    'opentopomap': 28_000,
    'google-satellite-free': 35_000,
    'google-hybrid-free': 40_000,
    'esri-satellite': 32_000,
    'esri-ocean': 18_000,
    'default': 25_000,
}

# --- Rendering surface ids

# Base imagery layer/source
BASEMAP_SOURCE_ID = 'basemap'
BASEMAP_LAYER_ID = 'basemap-layer'

# Overlay that must stay above every chart layer
CEILING_LAYER_ID = 'seamark-overlay'
CEILING_SOURCE_ID = 'seamark'
SEAMARK_TILE_URL = 'https://tiles.openseamap.org/seamark/{z}/{x}/{y}.png'
SEAMARK_MIN_ZOOM = 9
SEAMARK_MAX_ZOOM = 18

# Chart slot ids; split charts get a suffix per half
CHART_SOURCE_PREFIX = 'chart-src-'
CHART_LAYER_PREFIX = 'chart-layer-'
SPLIT_WEST_SUFFIX = '-w'
SPLIT_EAST_SUFFIX = '-e'

# Tile address templates served by the host application
CHART_TILE_URL_TEMPLATE = 'mbtiles://{chart_id}/{{z}}/{{x}}/{{y}}'
PACK_TILE_URL_TEMPLATE = 'pack://{pack_id}/{z}/{x}/{y}'

CHART_DEFAULT_MIN_ZOOM = 0
CHART_DEFAULT_MAX_ZOOM = 22

RASTER_OPACITY_PROPERTY = 'raster-opacity'

# Waypoint symbols known to the marker renderer
WAYPOINT_SYMBOLS = (
    'default',
    'anchor',
    'harbor',
    'fuel',
    'danger',
    'fishing',
    'dive',
    'beach',
)
DEFAULT_SYMBOL = 'default'
PENDING_MARKER_ID = 'pending'
PENDING_MARKER_LABEL = 'New waypoint'
DEFAULT_ROUTE_COLOR = '#c026d3'

# Coordinates are compared with this tolerance when deciding on a move
POSITION_EPSILON_DEG = 1e-9

PROFILES_DIR = 'configs/profiles'
PROFILE_FILE_SUFFIX = '.toml'

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class BasemapProvider(str, Enum):
    OSM = 'osm'
    OPENTOPOMAP = 'opentopomap'
    GOOGLE_SATELLITE = 'google-satellite-free'
    GOOGLE_HYBRID = 'google-hybrid-free'
    ESRI_SATELLITE = 'esri-satellite'
    ESRI_OCEAN = 'esri-ocean'


# Human-readable names for pickers
BASEMAP_LABELS: dict[BasemapProvider, str] = {
    BasemapProvider.OSM: 'OpenStreetMap',
    BasemapProvider.OPENTOPOMAP: 'OpenTopoMap',
    BasemapProvider.GOOGLE_SATELLITE: 'Google Satellite',
    BasemapProvider.GOOGLE_HYBRID: 'Google Hybrid',
    BasemapProvider.ESRI_SATELLITE: 'Esri World Imagery',
    BasemapProvider.ESRI_OCEAN: 'Esri Ocean Basemap',
}


def default_basemap() -> BasemapProvider:
    return BasemapProvider.OSM


class WorkflowState(str, Enum):
    IDLE = 'idle'
    DRAWING = 'drawing'
    CONFIGURING = 'configuring'
    DOWNLOADING = 'downloading'


class EntityKind(str, Enum):
    WAYPOINT = 'waypoint'
    ROUTE_POINT = 'route_point'
    PENDING = 'pending'


# Observable event names
EVENT_STATE_CHANGED = 'STATE_CHANGED'
EVENT_SESSION_CHANGED = 'SESSION_CHANGED'
EVENT_ESTIMATE_UPDATED = 'ESTIMATE_UPDATED'
EVENT_DOWNLOAD_STARTED = 'DOWNLOAD_STARTED'
EVENT_DOWNLOAD_PROGRESS = 'DOWNLOAD_PROGRESS'
EVENT_DOWNLOAD_COMPLETED = 'DOWNLOAD_COMPLETED'
EVENT_DOWNLOAD_FAILED = 'DOWNLOAD_FAILED'
EVENT_DOWNLOAD_CANCELLED = 'DOWNLOAD_CANCELLED'
EVENT_ERROR_OCCURRED = 'ERROR_OCCURRED'
