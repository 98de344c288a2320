"""Sync profiles stored as sectioned TOML, plus basemap API keys from .env files."""

from __future__ import annotations

import logging
import os
import re
import sys
from pathlib import Path

import tomlkit
from dotenv import load_dotenv

from domain.models import SyncSettings
from domain.toml_sections import flat_to_sectioned, sectioned_to_flat
from services.basemaps import ESRI_KEY_NAME
from shared.constants import PROFILE_FILE_SUFFIX, PROFILES_DIR

logger = logging.getLogger(__name__)

APP_DIR_NAME = 'navsync'
ESRI_API_KEY_ENV = 'ESRI_API_KEY'
ACTIVE_MARKER = '.active'
PROFILE_NAME_RE = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$')


def _user_profiles_dir() -> Path:
    """
    Determine profiles directory.

    1) <project_root>/configs/profiles when it exists (run-from-repo setups).
    2) Otherwise the per-user config directory: %APPDATA%/navsync/configs/profiles,
       or ~/.config/navsync/configs/profiles when APPDATA is not set.
    """
    project_root = Path(__file__).resolve().parent.parent.parent
    local_profiles = project_root / PROFILES_DIR
    if local_profiles.exists():
        return local_profiles

    base = Path(os.getenv('APPDATA') or (Path.home() / '.config'))
    return base / APP_DIR_NAME / PROFILES_DIR


def ensure_profiles_dir() -> Path:
    profiles_dir = _user_profiles_dir()
    profiles_dir.mkdir(parents=True, exist_ok=True)
    return profiles_dir


def profile_path(name: str) -> Path:
    return ensure_profiles_dir() / f'{name}{PROFILE_FILE_SUFFIX}'


def load_profile(name_or_path: str) -> SyncSettings:
    """
    Load and validate a TOML profile.

    Accepts a profile name from the profiles directory or a path to a
    ``.toml`` file. Both sectioned and flat layouts are read.
    """
    p = Path(name_or_path)
    path = p if p.suffix.lower() == PROFILE_FILE_SUFFIX and p.exists() else profile_path(name_or_path)
    if not path.exists():
        msg = f'Profile not found: {path}'
        raise FileNotFoundError(msg)
    data = tomlkit.parse(path.read_text(encoding='utf-8')).unwrap()
    settings = SyncSettings.model_validate(sectioned_to_flat(data))
    logger.info('Profile loaded: %s', path)
    return settings


def save_profile(name: str, settings: SyncSettings) -> Path:
    """Write a profile as sectioned TOML."""
    if not PROFILE_NAME_RE.fullmatch(name):
        msg = f'Invalid profile name: {name!r}'
        raise ValueError(msg)
    path = profile_path(name)
    data = flat_to_sectioned(settings.model_dump(mode='json'))
    path.write_text(tomlkit.dumps(data), encoding='utf-8')
    logger.info('Profile saved: %s', path)
    return path


def _env_candidates() -> list[Path]:
    install_dir = Path(sys.argv[0]).resolve().parent
    repo_root = Path(__file__).resolve().parent.parent.parent
    candidates = [install_dir / '.secrets.env', install_dir / '.env']
    appdata = os.getenv('APPDATA')
    if appdata:
        candidates.extend([Path(appdata) / APP_DIR_NAME / '.secrets.env', Path(appdata) / APP_DIR_NAME / '.env'])
    cwd = Path.cwd()
    candidates.extend(
        [
            cwd / '.secrets.env',
            cwd / '.env',
            repo_root / '.secrets.env',
            repo_root / '.env',
        ],
    )
    return candidates


def load_api_keys(env_file: str | Path | None = None) -> dict[str, str]:
    """
    Basemap API keys from the environment, after loading the first .env found.

    Returns a mapping suitable for ``basemap_for``; providers without a key
    are simply absent.
    """
    candidates = [Path(env_file)] if env_file is not None else _env_candidates()
    for p in candidates:
        if p.exists():
            load_dotenv(p)
            logger.debug('Loaded environment from %s', p)
            break

    keys: dict[str, str] = {}
    esri = os.getenv(ESRI_API_KEY_ENV, '').strip()
    if esri:
        keys[ESRI_KEY_NAME] = esri
        logger.info('Esri API key loaded')
    else:
        logger.info('No Esri API key, Esri basemaps use keyless fallbacks')
    return keys


def _active_marker() -> Path:
    return ensure_profiles_dir() / ACTIVE_MARKER


def get_active_profile() -> str | None:
    marker = _active_marker()
    if not marker.exists():
        return None
    return marker.read_text(encoding='utf-8').strip() or None


def set_active_profile(name: str) -> None:
    if not profile_path(name).exists():
        msg = f'Profile not found: {name}'
        raise FileNotFoundError(msg)
    _active_marker().write_text(name, encoding='utf-8')
    logger.info('Active profile: %s', name)


def load_active() -> SyncSettings:
    """Settings of the active profile, or the built-in defaults."""
    name = get_active_profile()
    if name is None:
        return SyncSettings()
    if not profile_path(name).exists():
        logger.warning('Active profile %s is missing, using defaults', name)
        return SyncSettings()
    return load_profile(name)
