"""WebSocket event channel receiving test lifecycle events from the device under test."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from typing import Any

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from medic.channel.protocol import decode_frame
from medic.shared.enums import EventKind, Platform
from medic.shared.exceptions import ChannelError, PortExhaustionError, ProtocolError
from medic.shared.models import ConnectionRecord, Disconnect, TestEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[TestEvent], Any]

# Host loopback alias inside the stock Android emulator.
ANDROID_EMULATOR_HOST = "10.0.2.2"
LOOPBACK_HOST = "127.0.0.1"

DEFAULT_HEARTBEAT_INTERVAL = 25.0
DEFAULT_HEARTBEAT_TIMEOUT = 60.0


class EventChannelServer:
    """Accepts device connections and re-emits their frames to local subscribers.

    Every recognised frame becomes exactly one local event, delivered to the
    handlers of its kind in subscription order. Closing a connection, whether
    by the peer, by heartbeat timeout or by ``stop()``, emits ``disconnect``.
    """

    def __init__(
        self,
        *,
        host: str = "0.0.0.0",
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        heartbeat_timeout: float = DEFAULT_HEARTBEAT_TIMEOUT,
    ) -> None:
        self._host = host
        self._heartbeat_interval = heartbeat_interval
        self._heartbeat_timeout = heartbeat_timeout
        self._handlers: dict[EventKind, list[EventHandler]] = {kind: [] for kind in EventKind}
        self._connections: dict[ServerConnection, ConnectionRecord] = {}
        self._server: Server | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._port: int | None = None

    @property
    def port(self) -> int:
        if self._port is None:
            raise ChannelError("server has not been started")
        return self._port

    @property
    def is_listening(self) -> bool:
        return self._server is not None

    async def start(self, start_port: int, end_port: int) -> int:
        """Bind to a random free port within ``[start_port, end_port]``.

        Returns:
            The bound port.

        Raises:
            PortExhaustionError: If every port in the range is taken.
        """
        if self._server is not None:
            return self.port

        logger.info("local-server: scanning ports from %d to %d", start_port, end_port)
        candidates = list(range(start_port, end_port + 1))
        while candidates:
            port = candidates.pop(random.randrange(len(candidates)))
            try:
                self._server = await serve(
                    self._handle_connection,
                    self._host,
                    port,
                    ping_interval=None,
                    ping_timeout=None,
                )
            except OSError as exc:
                logger.debug("local-server: port %d unavailable: %s", port, exc)
                continue
            self._port = port
            break
        else:
            raise PortExhaustionError(f"unable to find an available port in {start_port}-{end_port}")

        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        logger.info("local-server: listening on ws://%s:%d", self._host, self._port)
        return self._port

    async def stop(self) -> None:
        """Stop the heartbeat and close the listener. Safe to call repeatedly."""
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

        server, self._server = self._server, None
        if server is not None:
            server.close()
            await server.wait_closed()
            logger.info("local-server: stopped")

    def address_for(self, platform: Platform | str) -> str:
        """URL the app on ``platform`` should use to reach this server."""
        parsed = platform if isinstance(platform, Platform) else Platform.parse(platform)
        host = ANDROID_EMULATOR_HOST if parsed is Platform.ANDROID else LOOPBACK_HOST
        return f"ws://{host}:{self.port}"

    def is_device_connected(self) -> bool:
        return len(self._connections) > 0

    def on(self, kind: EventKind, handler: EventHandler) -> None:
        """Subscribe ``handler`` to events of ``kind``."""
        self._handlers[EventKind(kind)].append(handler)

    def off(self, kind: EventKind, handler: EventHandler) -> None:
        """Remove a previously subscribed handler; unknown handlers are ignored."""
        handlers = self._handlers[EventKind(kind)]
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: TestEvent) -> None:
        """Deliver ``event`` to its subscribers in subscription order."""
        for handler in list(self._handlers[event.kind]):
            try:
                handler(event)
            except Exception:
                logger.exception("local-server: %s handler failed", event.kind.value)

    async def _handle_connection(self, connection: ServerConnection) -> None:
        record = ConnectionRecord()
        self._connections[connection] = record
        logger.debug("local-server: new websocket connection from %s", connection.remote_address)
        try:
            async for raw in connection:
                record.touch()
                self._dispatch_frame(raw)
        except ConnectionClosed as exc:
            logger.debug("local-server: connection closed abnormally: %s", exc)
        finally:
            self._connections.pop(connection, None)
            logger.info("local-server: device disconnected")
            self.emit(Disconnect())

    def _dispatch_frame(self, raw: str | bytes) -> None:
        try:
            event = decode_frame(raw)
        except ProtocolError as exc:
            logger.error("local-server: dropping message: %s", exc)
            return
        if event is not None:
            self.emit(event)

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("local-server: heartbeat sweep failed")

    async def sweep(self, now: float | None = None) -> None:
        """Terminate idle connections and ping the rest."""
        for connection, record in list(self._connections.items()):
            idle = record.idle_for(now)
            if idle > self._heartbeat_timeout:
                logger.warning("local-server: websocket idle for %.0fs, terminating", idle)
                connection.transport.abort()
                continue
            try:
                pong_waiter = await connection.ping()
            except ConnectionClosed:
                continue
            pong_waiter.add_done_callback(lambda fut, rec=record: _on_pong(fut, rec))


def _on_pong(future: asyncio.Future[Any], record: ConnectionRecord) -> None:
    if future.cancelled() or future.exception() is not None:
        return
    record.touch()
    logger.debug("local-server: received pong")
