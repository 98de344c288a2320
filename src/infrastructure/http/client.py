from __future__ import annotations

import logging
import ssl
from typing import TypeVar

import aiohttp
import certifi
from pydantic import BaseModel, ValidationError

from domain.errors import PackServiceError
from domain.models import CustomPackResult, DownloadProgress, PackBounds, TileEstimate
from shared.constants import (
    HTTP_OK,
    HTTP_TIMEOUT_DEFAULT,
    PACK_SERVICE_RPC_PATH,
    PACK_SERVICE_URL,
)

logger = logging.getLogger(__name__)

M = TypeVar('M', bound=BaseModel)


def make_http_session(timeout_s: float = HTTP_TIMEOUT_DEFAULT) -> aiohttp.ClientSession:
    # SSL context with certifi's CA bundle
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    connector = aiohttp.TCPConnector(ssl=ssl_context)
    timeout = aiohttp.ClientTimeout(total=timeout_s)
    return aiohttp.ClientSession(connector=connector, timeout=timeout)


def _error_message(error: object) -> str:
    if isinstance(error, dict):
        return str(error.get('message') or error)
    return str(error)


class PackServiceClient:
    """
    JSON-RPC style client of the local pack service.

    Every call is ``POST {base_url}/rpc`` with ``{"method", "params"}``; the
    service answers ``{"result": ...}`` or ``{"error": ...}``.
    """

    def __init__(
        self,
        base_url: str = PACK_SERVICE_URL,
        *,
        session: aiohttp.ClientSession | None = None,
        timeout_s: float = HTTP_TIMEOUT_DEFAULT,
    ) -> None:
        self.base_url = base_url.rstrip('/')
        self._timeout_s = timeout_s
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> PackServiceClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = make_http_session(self._timeout_s)
            self._owns_session = True
        return self._session

    async def call(self, method: str, params: dict[str, object]) -> object:
        """Send one request and return its ``result``."""
        url = f'{self.base_url}{PACK_SERVICE_RPC_PATH}'
        logger.debug('Pack service call %s %s', method, params)
        try:
            async with self._get_session().post(
                url,
                json={'method': method, 'params': params},
            ) as resp:
                if resp.status != HTTP_OK:
                    msg = f'Pack service error (HTTP {resp.status}) on {method}'
                    raise PackServiceError(msg)
                payload = await resp.json(content_type=None)
        except (TimeoutError, aiohttp.ClientError) as e:
            msg = f'Pack service unavailable: {e}'
            raise PackServiceError(msg) from e

        if not isinstance(payload, dict):
            msg = f'Unexpected pack service response to {method}: {payload!r}'
            raise PackServiceError(msg)
        if payload.get('error'):
            raise PackServiceError(_error_message(payload['error']))
        return payload.get('result')

    async def _call_model(self, method: str, params: dict[str, object], model: type[M]) -> M:
        result = await self.call(method, params)
        try:
            return model.model_validate(result)
        except ValidationError as e:
            msg = f'Malformed {method} response: {e}'
            raise PackServiceError(msg) from e

    async def request_custom_pack(
        self,
        bounds: PackBounds,
        zoom_levels: list[int],
        basemap_id: str,
        name: str,
    ) -> str | None:
        """Ask the service to build a pack; returns its id, None when refused."""
        result = await self._call_model(
            'pack.custom_request',
            {
                'bounds': bounds.model_dump(),
                'zoom_levels': zoom_levels,
                'basemap_id': basemap_id,
                'name': name,
            },
            CustomPackResult,
        )
        logger.info('Pack %s requested: %s, %d tiles', result.pack_id, result.status, result.tile_count)
        return result.pack_id or None

    async def estimate_tiles(self, bounds: PackBounds, zoom_levels: list[int]) -> TileEstimate:
        return await self._call_model(
            'pack.estimate_tiles',
            {'bounds': bounds.model_dump(), 'zoom_levels': zoom_levels},
            TileEstimate,
        )

    async def get_download_progress(self, pack_id: str) -> DownloadProgress:
        return await self._call_model(
            'pack.download_progress',
            {'pack_id': pack_id},
            DownloadProgress,
        )

    async def _flag(self, method: str, pack_id: str, key: str) -> bool:
        result = await self.call(method, {'pack_id': pack_id})
        return bool(isinstance(result, dict) and result.get(key))

    async def pause_download(self, pack_id: str) -> bool:
        return await self._flag('pack.pause', pack_id, 'paused')

    async def resume_download(self, pack_id: str) -> bool:
        return await self._flag('pack.resume', pack_id, 'resumed')

    async def cancel_download(self, pack_id: str) -> bool:
        return await self._flag('pack.cancel', pack_id, 'cancelled')
