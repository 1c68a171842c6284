"""Device-side reporting bridge: forwards test events to the event channel server."""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from pathlib import Path
from typing import Any

import httpx
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from medic.channel.protocol import encode_frame
from medic.shared.enums import EventKind

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "ws://127.0.0.1:8008"


def load_server_url(source: str | Path, *, timeout: float = 5.0) -> str:
    """Read ``logurl`` from a ``medic.json`` handoff file (path or http URL).

    Falls back to ``DEFAULT_SERVER_URL`` when the file is missing or malformed.
    """
    text = str(source)
    try:
        if text.startswith(("http://", "https://")):
            resp = httpx.get(text, timeout=timeout)
            resp.raise_for_status()
            config = resp.json()
        else:
            config = json.loads(Path(text).read_text(encoding="utf-8"))
    except (OSError, ValueError, httpx.HTTPError) as exc:
        logger.warning("unable to load medic server url from %s: %s", text, exc)
        return DEFAULT_SERVER_URL

    if isinstance(config, dict) and isinstance(config.get("logurl"), str) and config["logurl"]:
        return config["logurl"]
    return DEFAULT_SERVER_URL


class ReportingBridge:
    """Queues events until the channel is open, then forwards them in order.

    ``send`` is synchronous so test framework callbacks and logging handlers
    can call it directly. Frames sent before ``open()`` are flushed first, in
    their original order, ahead of anything sent afterwards. If the channel
    closes underneath the bridge, unsent frames go back to the pending queue
    and the next ``open()`` delivers them.
    """

    def __init__(self, url: str) -> None:
        self.url = url
        self._pending: deque[str] = deque()
        self._outbox: asyncio.Queue[str] | None = None
        self._connection: ClientConnection | None = None
        self._writer: asyncio.Task[None] | None = None

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def send(self, kind: EventKind | str, payload: Any = None) -> None:
        """Queue one event for delivery."""
        message = encode_frame(kind, payload)
        if self._outbox is None:
            self._pending.append(message)
        else:
            self._outbox.put_nowait(message)

    async def open(self) -> None:
        """Connect to the server and flush queued events."""
        if self._connection is not None:
            return
        self._connection = await connect(self.url)
        outbox: asyncio.Queue[str] = asyncio.Queue()
        while self._pending:
            outbox.put_nowait(self._pending.popleft())
        self._outbox = outbox
        self._writer = asyncio.create_task(self._drain(self._connection, outbox))
        logger.info("reporting bridge connected to %s (%d queued)", self.url, outbox.qsize())

    async def flush(self) -> None:
        """Wait until every event handed to ``send`` has been written or requeued."""
        if self._outbox is not None:
            await self._outbox.join()

    async def close(self) -> None:
        """Flush outstanding events and close the channel."""
        if self._connection is None:
            return
        await self.flush()
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
        await self._connection.close()
        self._connection = None
        self._writer = None
        self._outbox = None

    async def _drain(self, connection: ClientConnection, outbox: asyncio.Queue[str]) -> None:
        while True:
            message = await outbox.get()
            try:
                await connection.send(message)
            except ConnectionClosed as exc:
                self._requeue(connection, outbox, message)
                logger.warning(
                    "reporting bridge: channel closed, %d message(s) queued until reopened: %s",
                    len(self._pending),
                    exc,
                )
                return
            finally:
                outbox.task_done()

    def _requeue(self, connection: ClientConnection, outbox: asyncio.Queue[str], failed: str) -> None:
        """Move the unsent frame and everything behind it back to the pending queue."""
        undelivered = [failed]
        while not outbox.empty():
            undelivered.append(outbox.get_nowait())
            outbox.task_done()
        self._pending.extendleft(reversed(undelivered))
        if self._connection is connection:
            self._connection = None
            self._outbox = None
            self._writer = None


class DeviceLogHandler(logging.Handler):
    """Mirrors log records into ``deviceLog`` events.

    Attach next to the existing handlers; normal log output is unaffected.
    """

    def __init__(self, bridge: ReportingBridge, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self._bridge = bridge

    def emit(self, record: logging.LogRecord) -> None:
        # Channel internals log while sending; forwarding them would loop.
        if record.name.startswith(("websockets", __name__)):
            return
        try:
            self._bridge.send(
                EventKind.DEVICE_LOG,
                {"type": _console_type(record.levelno), "msg": [self.format(record)]},
            )
        except Exception:
            self.handleError(record)


def _console_type(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return "error"
    if levelno >= logging.WARNING:
        return "warn"
    return "log"
