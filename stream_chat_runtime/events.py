"""
Inbound side of a realtime connection.

:class:`EventReader` pulls frames off the transport one at a time, decodes
them as :class:`~stream_chat_runtime.types.Event` and hands them to the
caller's handler in arrival order. Health checks are consumed here.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

from websockets.exceptions import ConnectionClosed

from stream_chat_runtime.errors import DeadlineExceeded, TransportError
from stream_chat_runtime.serialization import decode
from stream_chat_runtime.types import Event, EventType

logger = logging.getLogger(__name__)

# Type alias for event handlers
EventHandler = Callable[[Event], Coroutine[Any, Any, None] | None]


async def read_frame(transport: Any, deadline: float) -> str:
    """Return the next text frame from ``transport``.

    Fragment reassembly and ping/pong/close handling happen inside the
    websocket library. Binary data frames are skipped. The deadline covers
    the whole call, skipped frames included.

    Raises:
        DeadlineExceeded: no text frame arrived within ``deadline`` seconds.
        TransportError: the connection closed or the socket failed.
    """

    async def _next_text() -> str:
        while True:
            frame = await transport.recv()
            if isinstance(frame, str):
                return frame
            logger.debug("Discarding %d-byte binary frame", len(frame))

    try:
        return await asyncio.wait_for(_next_text(), timeout=deadline)
    except asyncio.TimeoutError as e:
        raise DeadlineExceeded(f"no frame received within {deadline:g}s") from e
    except ConnectionClosed as e:
        raise TransportError(f"connection closed: {e}") from e
    except OSError as e:
        raise TransportError(f"read failed: {e}") from e


class EventReader:
    """Reads and dispatches events until the shared close signal fires.

    Any transport or decode failure ends :meth:`run` with that error; the
    reader never skips a bad frame and carries on.
    """

    def __init__(
        self,
        transport: Any,
        handler: EventHandler,
        closed: asyncio.Event,
        read_deadline: float = 35.0,
    ) -> None:
        self._transport = transport
        self._handler = handler
        self._closed = closed
        self._read_deadline = read_deadline

    async def run(self) -> None:
        while not self._closed.is_set():
            try:
                raw = await read_frame(self._transport, self._read_deadline)
            except TransportError:
                if self._closed.is_set():
                    return
                raise
            # close() may have fired while we were blocked on the read
            if self._closed.is_set():
                return

            event = decode(Event, raw)
            if event.type == EventType.HEALTH_CHECK:
                logger.debug("Health check on connection %s", event.connection_id or "-")
                continue
            await self._dispatch(event)

    async def _dispatch(self, event: Event) -> None:
        """Run the handler to completion before the next frame is read."""
        try:
            result = self._handler(event)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("Error in event handler for %s", event.type)
