"""Tests for TOML sectioned profile mapping layer."""

import tomlkit

from domain.models import SyncSettings
from domain.toml_sections import (
    SECTION_MAP,
    flat_to_sectioned,
    sectioned_to_flat,
)


class TestFlatToSectioned:
    """Tests for flat_to_sectioned()."""

    def test_creates_expected_sections(self):
        """Should create the download, pack_service and surface sections."""
        result = flat_to_sectioned(SyncSettings().model_dump(mode='json'))
        assert set(result) == {'download', 'pack_service', 'surface'}

    def test_short_names_in_section(self):
        """Should store fields under their short section keys."""
        result = flat_to_sectioned(SyncSettings().model_dump(mode='json'))
        download = result['download']
        assert download['min_zoom'] == 6
        assert download['max_zoom'] == 14
        assert download['basemap'] == 'osm'
        # Flat name must NOT be in the section
        assert 'default_min_zoom' not in download
        assert result['pack_service']['url'] == SyncSettings().pack_service_url

    def test_unknown_key_goes_to_common(self):
        """Should put unknown keys in the common section."""
        result = flat_to_sectioned({'theme': 'dark', 'max_tile_count': 5})
        assert result['common'] == {'theme': 'dark'}
        assert result['download'] == {'max_tile_count': 5}

    def test_every_model_field_is_mapped(self):
        """Should map every SyncSettings field to a section."""
        mapped = {flat for fields in SECTION_MAP.values() for flat in fields}
        assert mapped == set(SyncSettings.model_fields)


class TestSectionedToFlat:
    """Tests for sectioned_to_flat()."""

    def test_expands_short_names(self):
        """Should expand short section keys to field names."""
        flat = sectioned_to_flat({'download': {'min_zoom': 3, 'max_zoom': 9}})
        assert flat == {'default_min_zoom': 3, 'default_max_zoom': 9}

    def test_flat_toml_passes_through(self):
        """Should take top-level keys as they are."""
        flat = sectioned_to_flat({'max_tile_count': 100, 'show_seamarks': False})
        assert flat == {'max_tile_count': 100, 'show_seamarks': False}

    def test_common_and_unknown_sections_pass_through(self):
        """Should pass through keys of common and unknown tables."""
        flat = sectioned_to_flat({'common': {'a': 1}, 'extras': {'b': 2}})
        assert flat == {'a': 1, 'b': 2}

    def test_toml_round_trip(self):
        """A sectioned TOML document restores the same settings."""
        original = SyncSettings(default_min_zoom=4, default_max_zoom=12, show_seamarks=False)
        text = tomlkit.dumps(flat_to_sectioned(original.model_dump(mode='json')))
        assert '[download]' in text
        restored = SyncSettings.model_validate(sectioned_to_flat(tomlkit.parse(text).unwrap()))
        assert restored == original
