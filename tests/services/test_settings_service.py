"""Tests for services.settings_service - TOML profiles and API keys."""

import os
from unittest.mock import patch

import pytest

from domain.models import SyncSettings
from services import settings_service
from services.settings_service import load_api_keys


@pytest.fixture
def profiles_dir(tmp_path, monkeypatch):
    folder = tmp_path / 'profiles'
    monkeypatch.setattr(settings_service, '_user_profiles_dir', lambda: folder)
    return folder


class TestProfiles:
    """Loading and saving profiles."""

    def test_save_and_load(self, profiles_dir):
        """Should write sectioned TOML and read it back."""
        path = settings_service.save_profile('coastal', SyncSettings(max_tile_count=1000))
        assert path == profiles_dir / 'coastal.toml'
        assert '[download]' in path.read_text(encoding='utf-8')
        assert settings_service.load_profile('coastal').max_tile_count == 1000

    def test_missing_profile(self, profiles_dir):
        """Should raise FileNotFoundError for an unknown profile."""
        with pytest.raises(FileNotFoundError):
            settings_service.load_profile('nope')

    def test_load_flat_file_by_path(self, tmp_path, profiles_dir):
        """Should read a flat layout file given by path."""
        path = tmp_path / 'flat.toml'
        path.write_text('default_max_zoom = 11\nshow_seamarks = false\n', encoding='utf-8')
        settings = settings_service.load_profile(str(path))
        assert settings.default_max_zoom == 11
        assert settings.show_seamarks is False

    @pytest.mark.parametrize('name', ['.hidden', '', 'a/b', 'x' * 65])
    def test_invalid_name(self, profiles_dir, name):
        """Should refuse names that are not plain file stems."""
        with pytest.raises(ValueError):
            settings_service.save_profile(name, SyncSettings())


class TestActiveProfile:
    """The active profile marker."""

    def test_defaults_without_active(self, profiles_dir):
        """Should return built-in defaults when no profile is active."""
        assert settings_service.get_active_profile() is None
        assert settings_service.load_active() == SyncSettings()

    def test_activate_and_load(self, profiles_dir):
        """Should load the settings of the activated profile."""
        settings_service.save_profile('alpha', SyncSettings(default_min_zoom=3))
        settings_service.set_active_profile('alpha')
        assert settings_service.get_active_profile() == 'alpha'
        assert settings_service.load_active().default_min_zoom == 3

    def test_activate_missing(self, profiles_dir):
        """Should refuse to activate a profile that does not exist."""
        with pytest.raises(FileNotFoundError):
            settings_service.set_active_profile('ghost')
        assert settings_service.get_active_profile() is None

    def test_deleted_active_falls_back(self, profiles_dir):
        """Should fall back to defaults when the active profile file is gone."""
        path = settings_service.save_profile('alpha', SyncSettings(max_tile_count=5))
        settings_service.set_active_profile('alpha')
        path.unlink()
        assert settings_service.load_active() == SyncSettings()


class TestLoadApiKeys:
    """Tests for load_api_keys()."""

    def test_key_from_env_file(self, tmp_path):
        """Should read ESRI_API_KEY from the given .env file."""
        env_file = tmp_path / '.env'
        env_file.write_text('ESRI_API_KEY=abc123\n', encoding='utf-8')
        with patch.dict(os.environ, {}):
            os.environ.pop('ESRI_API_KEY', None)
            assert load_api_keys(env_file) == {'esri': 'abc123'}

    def test_no_key(self, tmp_path):
        """Should return no keys when nothing provides one."""
        with patch.dict(os.environ, {}):
            os.environ.pop('ESRI_API_KEY', None)
            assert load_api_keys(tmp_path / 'missing.env') == {}
