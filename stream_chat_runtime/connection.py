"""
Realtime event connection for the Stream Chat runtime SDK.

A :class:`Connection` dials the websocket endpoint, waits for the
handshake frame that names the connection, then runs two asyncio tasks
side by side: an :class:`~stream_chat_runtime.events.EventReader` that
feeds the caller's handler, and a :class:`KeepaliveWriter` that stops the
peer from treating the socket as idle.

Usage::

    async def on_event(event):
        print(event.type, event.message)

    conn = await Connection.open(WS_URL, credentials, on_event)
    print(f"Connected as {conn.id}")
    ...
    await conn.aclose()

Reconnecting is up to the caller: :meth:`Connection.wait` returns the
error that stopped a background task, and the connection does nothing
further about it.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, Awaitable, Callable, Coroutine
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from stream_chat_runtime.errors import (
    CodecError,
    ConnectError,
    DeadlineExceeded,
    HandshakeProtocolError,
    HandshakeTimeout,
    TransportError,
)
from stream_chat_runtime.events import EventHandler, EventReader, read_frame
from stream_chat_runtime.serialization import decode, to_dict
from stream_chat_runtime.types import ConnectionConfig, ConnectRequest, Credentials, Event

logger = logging.getLogger(__name__)

# Opens the transport for a URL; ``websockets.connect`` by default.
Dialer = Callable[..., Awaitable[Any]]


# ============================================================
#  Handshake
# ============================================================


def connect_url(address: str, credentials: Credentials) -> str:
    """Build the websocket URL carrying the authenticated connect request."""
    request = ConnectRequest(user_details=credentials.user)
    query = urlencode(
        {
            "json": json.dumps(to_dict(request), separators=(",", ":")),
            "api_key": credentials.api_key,
            "authorization": credentials.token,
            "stream-auth-type": "jwt",
        }
    )
    sep = "&" if "?" in address else "?"
    return f"{address}{sep}{query}"


async def _close_transport(transport: Any) -> None:
    try:
        await transport.close()
    except Exception:
        logger.debug("Error closing websocket", exc_info=True)


async def handshake(
    address: str,
    credentials: Credentials,
    *,
    config: ConnectionConfig,
    dial: Dialer,
) -> tuple[Any, Event]:
    """Open the transport and read the frame that identifies the session.

    Returns the open transport and the decoded handshake event. The
    transport is closed again on every failure path.

    Raises:
        ConnectError: the transport could not be opened.
        HandshakeTimeout: no frame arrived within ``config.handshake_timeout``.
        HandshakeProtocolError: the frame was undecodable or had no
            ``connection_id``.
    """
    url = connect_url(address, credentials)
    try:
        transport = await dial(url, open_timeout=config.handshake_timeout, ping_interval=None)
    except (OSError, asyncio.TimeoutError, WebSocketException) as e:
        raise ConnectError(f"cannot open websocket to {address}: {e}") from e

    try:
        raw = await read_frame(transport, config.handshake_timeout)
    except DeadlineExceeded as e:
        await _close_transport(transport)
        raise HandshakeTimeout(
            f"no handshake frame within {config.handshake_timeout:g}s"
        ) from e
    except TransportError as e:
        await _close_transport(transport)
        raise ConnectError(f"connection lost during handshake: {e}") from e

    try:
        event = decode(Event, raw)
    except CodecError as e:
        await _close_transport(transport)
        raise HandshakeProtocolError(f"undecodable handshake frame: {e}") from e

    if not event.connection_id:
        await _close_transport(transport)
        raise HandshakeProtocolError("handshake frame carries no connection_id")

    return transport, event


# ============================================================
#  Keepalive
# ============================================================


class KeepaliveWriter:
    """Sends the liveness payload on a fixed cadence until closed.

    A failed or late write ends :meth:`run` with a
    :class:`~stream_chat_runtime.errors.TransportError`; there is no retry.
    """

    def __init__(
        self,
        transport: Any,
        closed: asyncio.Event,
        *,
        write_deadline: float = 8.0,
        interval: float = 28.0,
        payload: bytes = b"ping",
    ) -> None:
        self._transport = transport
        self._closed = closed
        self._write_deadline = write_deadline
        self._interval = interval
        self._payload = payload

    async def run(self) -> None:
        while not self._closed.is_set():
            try:
                await self._write()
            except TransportError:
                if self._closed.is_set():
                    return
                raise
            # sleep, but wake early on close
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._closed.wait(), timeout=self._interval)

    async def _write(self) -> None:
        try:
            await asyncio.wait_for(self._transport.send(self._payload), timeout=self._write_deadline)
        except asyncio.TimeoutError as e:
            raise DeadlineExceeded(f"keepalive not written within {self._write_deadline:g}s") from e
        except ConnectionClosed as e:
            raise TransportError(f"connection closed: {e}") from e
        except OSError as e:
            raise TransportError(f"keepalive write failed: {e}") from e


# ============================================================
#  Lifecycle
# ============================================================


class Connection:
    """One live realtime session.

    The transport belongs to the reader and keepalive tasks once
    :meth:`dial` returns; the connection itself only touches it again to
    close it in :meth:`join`.
    """

    def __init__(
        self,
        address: str,
        credentials: Credentials,
        handler: EventHandler,
        *,
        config: ConnectionConfig | None = None,
        dial: Dialer | None = None,
    ) -> None:
        self._address = address
        self._credentials = credentials
        self._handler = handler
        self._config = config or ConnectionConfig()
        self._dial = dial or websockets.connect

        # State
        self._id = ""
        self._handshake_event: Event | None = None
        self._transport: Any | None = None
        self._closed = asyncio.Event()
        self._stopped = asyncio.Event()
        self._error: BaseException | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._transport_closed = False

    @classmethod
    async def open(
        cls,
        address: str,
        credentials: Credentials,
        handler: EventHandler,
        *,
        config: ConnectionConfig | None = None,
        dial: Dialer | None = None,
    ) -> Connection:
        """Create a connection and :meth:`dial` it."""
        conn = cls(address, credentials, handler, config=config, dial=dial)
        await conn.dial()
        return conn

    @property
    def id(self) -> str:
        """Server-assigned connection id (empty until the handshake completes)."""
        return self._id

    @property
    def handshake_event(self) -> Event | None:
        """The first frame of the session, never passed to the handler."""
        return self._handshake_event

    @property
    def error(self) -> BaseException | None:
        """The first error that stopped a background task."""
        return self._error

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    async def dial(self) -> None:
        """Perform the handshake and start the reader and keepalive tasks.

        The handshake frame is fully processed before either task starts,
        so :attr:`id` is set before any event reaches the handler.
        """
        if self._transport is not None:
            raise RuntimeError("connection already dialed")

        transport, event = await handshake(
            self._address, self._credentials, config=self._config, dial=self._dial
        )
        self._transport = transport
        self._handshake_event = event
        self._id = event.connection_id

        reader = EventReader(transport, self._handler, self._closed, self._config.read_deadline)
        writer = KeepaliveWriter(
            transport,
            self._closed,
            write_deadline=self._config.write_deadline,
            interval=self._config.keepalive_interval,
            payload=self._config.keepalive_payload,
        )
        self._tasks = [
            asyncio.create_task(self._supervise("event reader", reader.run())),
            asyncio.create_task(self._supervise("keepalive writer", writer.run())),
        ]
        logger.info("Realtime connection %s established", self._id)

    async def _supervise(self, name: str, coro: Coroutine[Any, Any, None]) -> None:
        try:
            await coro
        except Exception as e:
            logger.warning("%s stopped on connection %s: %s", name, self._id, e)
            if self._error is None:
                self._error = e
            self._stopped.set()
        else:
            logger.debug("%s on connection %s exited", name, self._id)

    def close(self) -> None:
        """Signal both tasks to stop.

        Returns immediately; an in-flight read or write is left to finish or
        hit its deadline. Await :meth:`join` to wait for the tasks.
        """
        if self._closed.is_set():
            return
        self._closed.set()
        self._stopped.set()
        logger.info("Closing realtime connection %s", self._id or "-")

    async def wait(self) -> BaseException | None:
        """Block until a background task fails or the connection is closed.

        Returns the first error that stopped a task, or ``None`` after a clean
        :meth:`close`.
        """
        await self._stopped.wait()
        return self._error

    async def join(self) -> None:
        """Wait for both tasks to exit, then close the transport."""
        if self._tasks:
            await asyncio.gather(*self._tasks)
        if self._transport is not None and not self._transport_closed:
            self._transport_closed = True
            await _close_transport(self._transport)

    async def aclose(self) -> None:
        """Close the connection and wait for it to shut down."""
        self.close()
        await self.join()

    async def __aenter__(self) -> Connection:
        if self._transport is None:
            await self.dial()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
