"""Async FastAGI server.

Asterisk's AGI() dialplan application connects to this server once per call
(``agi://host:4573/...``). The server accepts each connection, runs the
connection handler for it in its own task, and keeps no call state itself.
"""

from __future__ import annotations

import asyncio
import contextlib
import socket
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from prometheus_client import Gauge

from agi_gateway.agi.dispatcher import AgiCallDispatcher
from agi_gateway.core.call_registry import CallRegistry
from agi_gateway.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 4573

ConnectionHandler = Callable[[asyncio.StreamReader, asyncio.StreamWriter], Awaitable[Any]]

_AGI_CONN_ACTIVE = Gauge(
    "agi_gateway_active_connections",
    "Number of open AGI TCP connections",
)


class AgiServer:
    """FastAGI listener spawning one task per accepted connection."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        *,
        handler: Optional[ConnectionHandler] = None,
        registry: Optional[CallRegistry] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.registry = registry if registry is not None else CallRegistry()
        self._handler = handler or AgiCallDispatcher(self.registry)

        self._server: Optional[asyncio.base_events.Server] = None
        self._connection_tasks: Dict[str, asyncio.Task[None]] = {}
        self._writers: Dict[str, asyncio.StreamWriter] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        if self._server:
            logger.warning("AGI server already running")
            return

        self._server = await asyncio.start_server(
            self._handle_client,
            host=self.host,
            port=self.port,
        )

        sockets = self._server.sockets or []
        if sockets:
            # update port in case OS picked an ephemeral port (port=0)
            self.port = sockets[0].getsockname()[1]

        logger.info("AGI server listening", host=self.host, port=self.port)

    async def serve_forever(self) -> None:
        """Start if needed and block until the server is stopped."""
        await self.start()
        server = self._server
        with contextlib.suppress(asyncio.CancelledError):
            await server.serve_forever()

    async def stop(self) -> None:
        if self._server:
            self._server.close()

        async with self._lock:
            tasks = list(self._connection_tasks.values())
            writers = list(self._writers.values())
            self._connection_tasks.clear()
            self._writers.clear()

        for task in tasks:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        for writer in writers:
            writer.close()
            with contextlib.suppress(Exception):
                await writer.wait_closed()

        if self._server:
            await self._server.wait_closed()
            self._server = None

        _AGI_CONN_ACTIVE.set(0)
        logger.info("AGI server stopped")

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    def get_connection_count(self) -> int:
        return len(self._writers)

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------
    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        conn_id = uuid.uuid4().hex
        peer = writer.get_extra_info("peername")
        logger.debug("AGI connection accepted", conn_id=conn_id, peer=peer)

        try:
            sock = writer.get_extra_info("socket")
            if sock:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            logger.debug("Failed to set TCP_NODELAY on AGI connection", conn_id=conn_id)

        connection_task = asyncio.create_task(self._connection_loop(conn_id, reader, writer))
        async with self._lock:
            self._writers[conn_id] = writer
            self._connection_tasks[conn_id] = connection_task
            _AGI_CONN_ACTIVE.inc()

        try:
            await connection_task
        except asyncio.CancelledError:
            logger.debug("AGI connection cancelled", conn_id=conn_id)
        finally:
            async with self._lock:
                self._connection_tasks.pop(conn_id, None)
                self._writers.pop(conn_id, None)
                _AGI_CONN_ACTIVE.dec()

    async def _connection_loop(
        self,
        conn_id: str,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        try:
            await self._handler(reader, writer)
        except Exception as exc:  # noqa: BLE001
            logger.error("AGI connection handler error", conn_id=conn_id, error=str(exc), exc_info=True)
        finally:
            writer.close()
            with contextlib.suppress(Exception):
                await writer.wait_closed()
            logger.debug("AGI connection closed", conn_id=conn_id)
