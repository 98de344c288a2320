"""Flat SyncSettings fields <-> sectioned TOML profile layout.

SyncSettings stays a flat model; on disk a profile groups its fields::

    [download]       zoom defaults, tile limits, polygon span, basemap
    [pack_service]   url, timeout_s, poll_interval_s
    [surface]        ceiling_layer_id, show_seamarks

Keys that belong to no section are written under ``[common]``.
"""

from __future__ import annotations

from typing import Any

COMMON_SECTION = 'common'

# section -> {model field: key written in the section}
SECTION_MAP: dict[str, dict[str, str]] = {
    'download': {
        'default_min_zoom': 'min_zoom',
        'default_max_zoom': 'max_zoom',
        'absolute_max_zoom': 'absolute_max_zoom',
        'max_tile_count': 'max_tile_count',
        'warning_tile_count': 'warning_tile_count',
        'min_polygon_span_deg': 'min_polygon_span_deg',
        'default_basemap': 'basemap',
    },
    'pack_service': {
        'pack_service_url': 'url',
        'request_timeout_s': 'timeout_s',
        'poll_interval_s': 'poll_interval_s',
    },
    'surface': {
        'ceiling_layer_id': 'ceiling_layer_id',
        'show_seamarks': 'show_seamarks',
    },
}

_FIELD_LOCATION: dict[str, tuple[str, str]] = {
    field_name: (section, key)
    for section, fields in SECTION_MAP.items()
    for field_name, key in fields.items()
}
_SECTION_KEYS: dict[str, dict[str, str]] = {
    section: {key: field_name for field_name, key in fields.items()}
    for section, fields in SECTION_MAP.items()
}


def flat_to_sectioned(flat: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Group model fields into sections for writing."""
    sections: dict[str, dict[str, Any]] = {}
    for field_name, value in flat.items():
        section, key = _FIELD_LOCATION.get(field_name, (COMMON_SECTION, field_name))
        sections.setdefault(section, {})[key] = value
    return sections


def sectioned_to_flat(data: dict[str, Any]) -> dict[str, Any]:
    """
    Flatten a parsed profile for ``SyncSettings.model_validate``.

    Accepts both layouts: known sections are mapped back to field names,
    ``[common]`` and unknown tables pass their keys through, and top-level
    keys (a flat profile) are taken as they are.
    """
    flat: dict[str, Any] = {}
    for name, value in data.items():
        if not isinstance(value, dict):
            flat[name] = value
            continue
        keys = _SECTION_KEYS.get(name, {})
        flat.update({keys.get(key, key): item for key, item in value.items()})
    return flat
