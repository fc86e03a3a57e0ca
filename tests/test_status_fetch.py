import asyncio

import aiohttp
import pytest
from aiohttp import web

from pulse_client import DecodeError, Endpoint, FetchError, StatusParser, StatusSnapshot


async def start_status_server(aiohttp_server, handler):
    app = web.Application()
    app.router.add_get('/status', handler)
    server = await aiohttp_server(app)
    return Endpoint(server.host, server.port)


async def test_fetch_returns_body_text(aiohttp_server, status_text):
    async def handler(request):
        return web.Response(text=status_text)

    endpoint = await start_status_server(aiohttp_server, handler)
    assert await StatusParser(endpoint).fetch_status() == status_text


async def test_get_volumes_end_to_end(aiohttp_server, status_text):
    async def handler(request):
        return web.Response(text=status_text)

    endpoint = await start_status_server(aiohttp_server, handler)
    snapshot = await StatusParser(endpoint).get_volumes()
    assert snapshot == StatusSnapshot(66, 10)


async def test_each_call_fetches_fresh(aiohttp_server):
    bodies = iter([
        "1 sink(s) available.\n* index: 0\nvolume: 20%\n",
        "1 sink(s) available.\n* index: 0\nvolume: 90%\n",
    ])

    async def handler(request):
        return web.Response(text=next(bodies))

    endpoint = await start_status_server(aiohttp_server, handler)
    parser = StatusParser(endpoint)
    assert (await parser.get_volumes()).sink_volume_percent == 20
    assert (await parser.get_volumes()).sink_volume_percent == 90


async def test_reuses_given_session(aiohttp_server, status_text):
    async def handler(request):
        return web.Response(text=status_text)

    endpoint = await start_status_server(aiohttp_server, handler)
    async with aiohttp.ClientSession() as session:
        parser = StatusParser(endpoint, session=session)
        await parser.fetch_status()
        assert not session.closed


async def test_empty_body_is_decode_error(aiohttp_server):
    async def handler(request):
        return web.Response(body=b"")

    endpoint = await start_status_server(aiohttp_server, handler)
    with pytest.raises(DecodeError):
        await StatusParser(endpoint).get_volumes()


async def test_invalid_utf8_is_decode_error(aiohttp_server):
    async def handler(request):
        return web.Response(body=b"1 sink(s) available.\n\xff\xfe volume: 50%")

    endpoint = await start_status_server(aiohttp_server, handler)
    with pytest.raises(DecodeError):
        await StatusParser(endpoint).fetch_status()


async def test_http_error_status_is_fetch_error(aiohttp_server):
    async def handler(request):
        return web.Response(status=500, text="oops")

    endpoint = await start_status_server(aiohttp_server, handler)
    with pytest.raises(FetchError) as excinfo:
        await StatusParser(endpoint).fetch_status()
    assert not isinstance(excinfo.value, DecodeError)


async def test_missing_route_is_fetch_error(aiohttp_server):
    app = web.Application()
    server = await aiohttp_server(app)
    with pytest.raises(FetchError):
        await StatusParser(Endpoint(server.host, server.port)).fetch_status()


async def test_slow_server_times_out(aiohttp_server):
    async def handler(request):
        await asyncio.sleep(1)
        return web.Response(text="too late")

    endpoint = await start_status_server(aiohttp_server, handler)
    with pytest.raises(FetchError, match="Timed out"):
        await StatusParser(endpoint, timeout=0.2).fetch_status()


async def test_unreachable_server_is_fetch_error(closed_port):
    with pytest.raises(FetchError):
        await StatusParser(Endpoint("127.0.0.1", closed_port), timeout=2).fetch_status()
