"""Integration tests for AgiServer over a real TCP socket."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

from agi_gateway.agi.dispatcher import AgiCallDispatcher
from agi_gateway.agi.server import DEFAULT_HOST, DEFAULT_PORT, AgiServer
from agi_gateway.core.call_registry import CallRegistry
from conftest import header_bytes, with_overrides


async def _send_call(port, lines):
    """Send one header block and wait until the server closes the connection."""
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(header_bytes(lines))
    await writer.drain()
    await asyncio.wait_for(reader.read(), timeout=5)
    writer.close()
    await writer.wait_closed()


@pytest_asyncio.fixture
async def running_server():
    servers = []

    async def _start(**kwargs):
        server = AgiServer("127.0.0.1", 0, **kwargs)
        await server.start()
        servers.append(server)
        return server

    yield _start

    for server in servers:
        await server.stop()


def test_defaults():
    server = AgiServer()
    assert server.host == DEFAULT_HOST == "0.0.0.0"
    assert server.port == DEFAULT_PORT == 4573
    assert isinstance(server.registry, CallRegistry)


@pytest.mark.asyncio
async def test_ephemeral_port_resolved(running_server):
    server = await running_server(handler=AsyncMock())
    assert server.port != 0
    assert server.is_serving


@pytest.mark.asyncio
async def test_dispatches_call_end_to_end(running_server):
    registry = CallRegistry()
    handled = []

    async def handle(call):
        handled.append((call.unique_identifier, registry.find(call.unique_identifier) is call))

    dispatcher = AgiCallDispatcher(registry, dialplan=Mock(handle=handle), events=Mock())
    server = await running_server(handler=dispatcher, registry=registry)

    await _send_call(server.port, with_overrides())

    assert handled == [("SIP/mytrunk-jb12c88a", True)]
    assert registry.is_empty()


@pytest.mark.asyncio
async def test_concurrent_connections_are_independent(running_server):
    registry = CallRegistry()
    release = asyncio.Event()
    started = []

    async def handle(call):
        started.append(call.unique_identifier)
        await release.wait()

    dispatcher = AgiCallDispatcher(registry, dialplan=Mock(handle=handle), events=Mock())
    server = await running_server(handler=dispatcher, registry=registry)

    sends = [
        asyncio.create_task(_send_call(server.port, with_overrides(channel=f"SIP/line-{i}")))
        for i in range(3)
    ]
    for _ in range(100):
        if registry.size == 3:
            break
        await asyncio.sleep(0.01)

    assert registry.size == 3
    assert sorted(started) == ["SIP/line-0", "SIP/line-1", "SIP/line-2"]

    release.set()
    await asyncio.gather(*sends)
    assert registry.is_empty()


@pytest.mark.asyncio
async def test_handler_error_does_not_stop_listener(running_server):
    handler = AsyncMock(side_effect=[RuntimeError("boom"), None])
    server = await running_server(handler=handler)

    await _send_call(server.port, with_overrides())
    await _send_call(server.port, with_overrides())

    assert handler.await_count == 2
    assert server.is_serving


@pytest.mark.asyncio
async def test_stop_closes_open_connections(running_server):
    entered = asyncio.Event()

    async def handler(reader, writer):
        entered.set()
        await asyncio.sleep(60)

    server = await running_server(handler=handler)
    reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
    await asyncio.wait_for(entered.wait(), timeout=5)
    assert server.get_connection_count() == 1

    await server.stop()

    assert await asyncio.wait_for(reader.read(), timeout=5) == b""
    assert server.get_connection_count() == 0
    assert not server.is_serving
    writer.close()
