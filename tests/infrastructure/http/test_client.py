"""Tests for infrastructure.http.client - PackServiceClient."""

import pytest
from aiohttp import test_utils, web

from domain.errors import PackServiceError
from domain.models import PackBounds
from infrastructure.http.client import PackServiceClient, make_http_session

BOUNDS = PackBounds(min_lon=175, min_lat=-10, max_lon=-175, max_lat=10)


async def _serve(handler):
    """Start a pack service stub answering POST /rpc."""
    app = web.Application()
    app.router.add_post('/rpc', handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    return server


def _rpc_handler(results, received=None):
    async def handler(request):
        body = await request.json()
        if received is not None:
            received.append(body)
        return web.json_response(results[body['method']])

    return handler


class TestPackServiceClient:
    """Requests and error mapping."""

    @pytest.mark.asyncio
    async def test_request_custom_pack(self):
        """Should post pack.custom_request and return the pack id."""
        received = []
        server = await _serve(
            _rpc_handler(
                {'pack.custom_request': {'result': {'pack_id': 'p1', 'status': 'queued', 'tile_count': 12}}},
                received,
            ),
        )
        try:
            async with PackServiceClient(str(server.make_url('/'))) as client:
                pack_id = await client.request_custom_pack(BOUNDS, [6, 7], 'osm', 'Bay')
        finally:
            await server.close()
        assert pack_id == 'p1'
        assert received == [
            {
                'method': 'pack.custom_request',
                'params': {
                    'bounds': {'min_lon': 175, 'min_lat': -10, 'max_lon': -175, 'max_lat': 10},
                    'zoom_levels': [6, 7],
                    'basemap_id': 'osm',
                    'name': 'Bay',
                },
            },
        ]

    @pytest.mark.asyncio
    async def test_progress_and_flags(self):
        """Should parse progress, estimate and the pause/resume/cancel flags."""
        server = await _serve(
            _rpc_handler(
                {
                    'pack.download_progress': {
                        'result': {'pack_id': 'p1', 'percent': 25.0, 'status': 'downloading'},
                    },
                    'pack.estimate_tiles': {'result': {'tile_count': 99}},
                    'pack.pause': {'result': {'paused': True}},
                    'pack.resume': {'result': {'resumed': False}},
                    'pack.cancel': {'result': {'cancelled': True}},
                },
            ),
        )
        try:
            async with PackServiceClient(str(server.make_url('/'))) as client:
                progress = await client.get_download_progress('p1')
                estimate = await client.estimate_tiles(BOUNDS, [1])
                paused = await client.pause_download('p1')
                resumed = await client.resume_download('p1')
                cancelled = await client.cancel_download('p1')
        finally:
            await server.close()
        assert progress.percent == 25.0
        assert estimate.tile_count == 99
        assert (paused, resumed, cancelled) == (True, False, True)

    @pytest.mark.asyncio
    async def test_rpc_error(self):
        """Should raise PackServiceError with the RPC error message."""
        server = await _serve(_rpc_handler({'pack.cancel': {'error': {'message': 'unknown pack'}}}))
        try:
            async with PackServiceClient(str(server.make_url('/'))) as client:
                with pytest.raises(PackServiceError, match='unknown pack'):
                    await client.cancel_download('zz')
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        """Should raise PackServiceError for a non-200 status."""
        async def handler(request):
            return web.Response(status=500, text='boom')

        server = await _serve(handler)
        try:
            async with PackServiceClient(str(server.make_url('/'))) as client:
                with pytest.raises(PackServiceError, match='HTTP 500'):
                    await client.get_download_progress('p1')
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        """Should raise PackServiceError when the result does not validate."""
        server = await _serve(_rpc_handler({'pack.download_progress': {'result': {'percent': 'x'}}}))
        try:
            async with PackServiceClient(str(server.make_url('/'))) as client:
                with pytest.raises(PackServiceError, match='Malformed'):
                    await client.get_download_progress('p1')
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_unreachable_service(self):
        """Should raise PackServiceError when the service cannot be reached."""
        server = await _serve(_rpc_handler({}))
        url = str(server.make_url('/'))
        await server.close()
        async with PackServiceClient(url, timeout_s=2) as client:
            with pytest.raises(PackServiceError, match='unavailable'):
                await client.get_download_progress('p1')

    @pytest.mark.asyncio
    async def test_external_session_not_closed(self):
        """Should leave a caller-supplied session open on close."""
        client_session = None
        server = await _serve(_rpc_handler({'pack.cancel': {'result': {'cancelled': True}}}))
        try:
            client_session = make_http_session(5)
            client = PackServiceClient(str(server.make_url('/')), session=client_session)
            assert await client.cancel_download('p1') is True
            await client.close()
            assert not client_session.closed
        finally:
            if client_session is not None:
                await client_session.close()
            await server.close()
