"""Basemap providers as tagged variants, each producing a raster source.

The surface never branches on provider strings: every variant resolves to a
normalized ``RasterSource`` and ``build_surface_style`` assembles the base
style (basemap below everything, seamark overlay on top).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import ClassVar

from shared.constants import (
    BASEMAP_LABELS,
    BASEMAP_LAYER_ID,
    BASEMAP_SOURCE_ID,
    CEILING_LAYER_ID,
    CEILING_SOURCE_ID,
    CHART_DEFAULT_MAX_ZOOM,
    RASTER_OPACITY_PROPERTY,
    SEAMARK_MAX_ZOOM,
    SEAMARK_MIN_ZOOM,
    SEAMARK_TILE_URL,
    TILE_SIZE,
    BasemapProvider,
)

logger = logging.getLogger(__name__)

ESRI_KEY_NAME = 'esri'

_OSM_URL = 'https://tile.openstreetmap.org/{z}/{x}/{y}.png'
_OSM_ATTRIBUTION = '© OpenStreetMap contributors'
_OPENTOPO_URL = 'https://tile.opentopomap.org/{z}/{x}/{y}.png'
_OPENTOPO_MAX_ZOOM = 17
_GOOGLE_SERVERS = ('mt0', 'mt1', 'mt2', 'mt3')
_GOOGLE_URL = 'https://{server}.google.com/vt/lyrs={layer}&x={{x}}&y={{y}}&z={{z}}'
_GOOGLE_MAX_ZOOM = 20
_ESRI_URL = (
    'https://ibasemaps-api.arcgis.com/arcgis/rest/services/'
    '{service}/MapServer/tile/{{z}}/{{y}}/{{x}}?token={token}'
)
_ESRI_IMAGERY_SERVICE = 'World_Imagery'
_ESRI_OCEAN_SERVICE = 'Ocean/World_Ocean_Base'
_ESRI_IMAGERY_MAX_ZOOM = 19
_ESRI_OCEAN_MAX_ZOOM = 16
_SEAMARK_NIGHT_OPACITY = 0.7


@dataclass(frozen=True)
class RasterSource:
    """Normalized raster tile source description."""

    tiles: tuple[str, ...]
    tile_size: int = TILE_SIZE
    min_zoom: int = 0
    max_zoom: int = CHART_DEFAULT_MAX_ZOOM
    attribution: str = ''

    def to_style(self) -> dict[str, object]:
        return {
            'type': 'raster',
            'tiles': list(self.tiles),
            'tileSize': self.tile_size,
            'minzoom': self.min_zoom,
            'maxzoom': self.max_zoom,
            'attribution': self.attribution,
        }


def _google_tiles(layer: str) -> tuple[str, ...]:
    # lyrs=s: imagery only, lyrs=y: imagery with labels
    return tuple(_GOOGLE_URL.format(server=s, layer=layer) for s in _GOOGLE_SERVERS)


@dataclass(frozen=True)
class OsmBasemap:
    provider: ClassVar[BasemapProvider] = BasemapProvider.OSM

    @property
    def downloadable(self) -> bool:
        return True

    def source(self) -> RasterSource:
        return RasterSource(tiles=(_OSM_URL,), attribution=_OSM_ATTRIBUTION)


@dataclass(frozen=True)
class OpenTopoBasemap:
    provider: ClassVar[BasemapProvider] = BasemapProvider.OPENTOPOMAP

    @property
    def downloadable(self) -> bool:
        return True

    def source(self) -> RasterSource:
        return RasterSource(
            tiles=(_OPENTOPO_URL,),
            max_zoom=_OPENTOPO_MAX_ZOOM,
            attribution='© OpenTopoMap (CC-BY-SA)',
        )


@dataclass(frozen=True)
class GoogleBasemap:
    """Google imagery; ``hybrid`` adds labels. Online only."""

    hybrid: bool = False

    @property
    def provider(self) -> BasemapProvider:
        if self.hybrid:
            return BasemapProvider.GOOGLE_HYBRID
        return BasemapProvider.GOOGLE_SATELLITE

    @property
    def downloadable(self) -> bool:
        return False

    def source(self) -> RasterSource:
        return RasterSource(
            tiles=_google_tiles('y' if self.hybrid else 's'),
            max_zoom=_GOOGLE_MAX_ZOOM,
            attribution='© Google',
        )


@dataclass(frozen=True)
class EsriBasemap:
    """
    Esri imagery or ocean basemap.

    Without an API key the source falls back to a keyless provider:
    Google imagery for World Imagery, OpenStreetMap for Ocean.
    """

    ocean: bool = False
    api_key: str | None = None

    @property
    def provider(self) -> BasemapProvider:
        if self.ocean:
            return BasemapProvider.ESRI_OCEAN
        return BasemapProvider.ESRI_SATELLITE

    @property
    def has_key(self) -> bool:
        return bool(self.api_key)

    @property
    def downloadable(self) -> bool:
        return self.has_key

    def source(self) -> RasterSource:
        if not self.has_key:
            if self.ocean:
                return RasterSource(
                    tiles=(_OSM_URL,),
                    attribution=f'{_OSM_ATTRIBUTION} (Esri API key required for ocean basemap)',
                )
            return RasterSource(
                tiles=_google_tiles('s'),
                max_zoom=_GOOGLE_MAX_ZOOM,
                attribution='© Google (Esri API key required for Esri imagery)',
            )
        service = _ESRI_OCEAN_SERVICE if self.ocean else _ESRI_IMAGERY_SERVICE
        max_zoom = _ESRI_OCEAN_MAX_ZOOM if self.ocean else _ESRI_IMAGERY_MAX_ZOOM
        return RasterSource(
            tiles=(_ESRI_URL.format(service=service, token=self.api_key),),
            max_zoom=max_zoom,
            attribution='Powered by Esri',
        )


Basemap = OsmBasemap | OpenTopoBasemap | GoogleBasemap | EsriBasemap


def _esri(ocean: bool) -> Callable[[Mapping[str, str]], EsriBasemap]:
    def build(keys: Mapping[str, str]) -> EsriBasemap:
        esri = EsriBasemap(ocean=ocean, api_key=keys.get(ESRI_KEY_NAME))
        if not esri.has_key:
            logger.warning('No Esri API key, %s falls back to a keyless source', esri.provider.value)
        return esri

    return build


_BASEMAP_BUILDERS: dict[BasemapProvider, Callable[[Mapping[str, str]], Basemap]] = {
    BasemapProvider.OSM: lambda _keys: OsmBasemap(),
    BasemapProvider.OPENTOPOMAP: lambda _keys: OpenTopoBasemap(),
    BasemapProvider.GOOGLE_SATELLITE: lambda _keys: GoogleBasemap(),
    BasemapProvider.GOOGLE_HYBRID: lambda _keys: GoogleBasemap(hybrid=True),
    BasemapProvider.ESRI_SATELLITE: _esri(ocean=False),
    BasemapProvider.ESRI_OCEAN: _esri(ocean=True),
}


def basemap_for(
    provider_id: str | BasemapProvider,
    api_keys: Mapping[str, str] | None = None,
) -> Basemap:
    """
    Build the variant for a provider id.

    Raises:
        ValueError: unknown provider id.

    """
    return _BASEMAP_BUILDERS[BasemapProvider(provider_id)](api_keys or {})


def downloadable_basemaps(
    api_keys: Mapping[str, str] | None = None,
) -> list[tuple[BasemapProvider, str]]:
    """Providers that may be used for offline packs, with display names."""
    return [
        (p, BASEMAP_LABELS[p])
        for p in BasemapProvider
        if basemap_for(p, api_keys).downloadable
    ]


def build_surface_style(
    basemap: Basemap,
    *,
    show_seamarks: bool = True,
    night: bool = False,
    ceiling_layer_id: str = CEILING_LAYER_ID,
) -> dict[str, object]:
    """
    Base style: basemap layer at the bottom, optional seamark overlay on top.

    Chart layers are inserted later between the two by the layer reconciler.
    """
    sources: dict[str, object] = {BASEMAP_SOURCE_ID: basemap.source().to_style()}
    layers: list[dict[str, object]] = [
        {
            'id': BASEMAP_LAYER_ID,
            'type': 'raster',
            'source': BASEMAP_SOURCE_ID,
            'minzoom': 0,
            'maxzoom': CHART_DEFAULT_MAX_ZOOM,
        },
    ]
    if show_seamarks:
        sources[CEILING_SOURCE_ID] = RasterSource(
            tiles=(SEAMARK_TILE_URL,),
            attribution='© OpenSeaMap contributors',
        ).to_style()
        layers.append(
            {
                'id': ceiling_layer_id,
                'type': 'raster',
                'source': CEILING_SOURCE_ID,
                'minzoom': SEAMARK_MIN_ZOOM,
                'maxzoom': SEAMARK_MAX_ZOOM,
                'paint': {
                    RASTER_OPACITY_PROPERTY: _SEAMARK_NIGHT_OPACITY if night else 1.0,
                },
            },
        )
    return {
        'version': 8,
        'name': f'navsync-{basemap.provider.value}{"-night" if night else ""}',
        'sources': sources,
        'layers': layers,
    }
