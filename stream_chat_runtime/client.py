"""
Stream Chat runtime SDK: Python client.

Server-side client for the chat API, using ``httpx`` for REST calls and
``websockets`` (via :class:`~stream_chat_runtime.connection.Connection`)
for realtime events. Every entity in a response goes through the
extensible codec, so custom fields survive a fetch/update cycle.

Usage::

    from stream_chat_runtime import StreamChat, User

    client = StreamChat(api_key="key", token="server-jwt")

    msg = await client.messages.get_message("m1")
    msg.extra_data["priority"] = "high"
    await client.messages.update_message(msg)

    conn = await client.connect_user(User(id="bot"), user_token, on_event)
    ...
    await conn.aclose()
    await client.close()
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote as url_quote

import httpx

from stream_chat_runtime.connection import Connection, Dialer
from stream_chat_runtime.errors import APIError, RateLimit
from stream_chat_runtime.events import EventHandler
from stream_chat_runtime.serialization import from_dict, to_dict
from stream_chat_runtime.version import __version__
from stream_chat_runtime.types import (
    ConnectionConfig,
    Credentials,
    Message,
    QueryMessageHistoryResponse,
    Reaction,
    User,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://chat.stream-io-api.com"
DEFAULT_WS_URL = "wss://chat.stream-io-api.com/connect"
DEFAULT_TIMEOUT = 6.0


class _HttpClient:
    """Thin wrapper around httpx for API requests."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        token: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": token,
                "Stream-Auth-Type": "jwt",
                "X-Stream-Client": f"stream-chat-runtime-python-{__version__}",
            },
            timeout=timeout,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request to the API.

        Raises:
            APIError: the API answered with a status of 400 or above. A 429
                response carries the parsed :class:`RateLimit`.
        """
        query = dict(params or {})
        query["api_key"] = self._api_key

        response = await self._client.request(
            method=method,
            url="/" + path.lstrip("/"),
            params=query,
            json=body,
        )

        if response.status_code >= 400:
            try:
                err_data = response.json()
            except ValueError as e:
                raise APIError(f"cannot decode error: {e}", status_code=response.status_code) from e
            err = APIError.from_response_body(response.status_code, err_data)
            if response.status_code == 429:
                err.rate_limit = RateLimit.from_headers(response.headers)
            logger.debug("API error %d on %s %s: %s", response.status_code, method, path, err.message)
            raise err

        if response.status_code == 204 or not response.content:
            return {}

        return response.json()

    async def close(self) -> None:
        await self._client.aclose()


# ============================================================
#  Sub-managers
# ============================================================


class _MessageManager:
    """Message, reaction and message history operations."""

    def __init__(self, http: _HttpClient) -> None:
        self._http = http

    async def get_message(self, message_id: str) -> Message:
        if not message_id:
            raise ValueError("message ID must be not empty")
        data = await self._http.request("GET", f"messages/{url_quote(message_id, safe='')}")
        return from_dict(Message, data.get("message") or {})

    async def update_message(self, message: Message) -> Message:
        """Replace a message; ``extra_data`` is sent alongside the schema fields.

        Returns the message as stored by the server.
        """
        if not message.id:
            raise ValueError("message ID must be not empty")
        data = await self._http.request(
            "POST",
            f"messages/{url_quote(message.id, safe='')}",
            {"message": to_dict(message)},
        )
        return from_dict(Message, data.get("message") or {})

    async def send_reaction(self, message_id: str, reaction: Reaction, user_id: str) -> Message:
        """Add a reaction to a message and return the updated message."""
        if not message_id:
            raise ValueError("message ID must be not empty")
        if not user_id:
            raise ValueError("user ID is empty")
        reaction = reaction.model_copy(update={"user_id": user_id})
        data = await self._http.request(
            "POST",
            f"messages/{url_quote(message_id, safe='')}/reaction",
            {"reaction": to_dict(reaction)},
        )
        return from_dict(Message, data.get("message") or {})

    async def query_message_history(
        self,
        filter: dict[str, Any],
        sort: list[dict[str, Any]] | None = None,
        limit: int | None = None,
        next: str | None = None,
        prev: str | None = None,
    ) -> QueryMessageHistoryResponse:
        """Query earlier revisions of edited messages.

        Args:
            filter: Filter conditions, at least one is required
                (e.g. ``{"message_id": "m1"}``).
            sort: Sort options, e.g. ``[{"field": "message_updated_at", "direction": -1}]``.
            limit: Page size.
            next: Cursor for the following page.
            prev: Cursor for the preceding page.

        Returns:
            :class:`QueryMessageHistoryResponse`; each entry keeps its
            custom fields in ``extra_data``.
        """
        if not filter:
            raise ValueError("you need specify one filter at least")
        body: dict[str, Any] = {"filter": filter}
        if sort:
            body["sort"] = sort
        if limit:
            body["limit"] = limit
        if next:
            body["next"] = next
        if prev:
            body["prev"] = prev
        data = await self._http.request("POST", "messages/history", body)
        return from_dict(QueryMessageHistoryResponse, data)


class _UserManager:
    """User operations."""

    def __init__(self, http: _HttpClient) -> None:
        self._http = http

    async def upsert_user(self, user: User) -> User:
        if not user.id:
            raise ValueError("user ID is empty")
        data = await self._http.request("POST", "users", {"users": {user.id: to_dict(user)}})
        users = data.get("users") or {}
        return from_dict(User, users.get(user.id) or {})


# ============================================================
#  Main client
# ============================================================


class StreamChat:
    """
    Server-side chat client.

    Provides REST access to messages and users and opens realtime event
    connections on behalf of users.
    """

    def __init__(
        self,
        api_key: str,
        token: str,
        base_url: str = DEFAULT_BASE_URL,
        ws_url: str = DEFAULT_WS_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("API key is empty")
        if not token:
            raise ValueError("token is empty")

        self._api_key = api_key
        self._ws_url = ws_url
        self._http = _HttpClient(base_url, api_key, token, timeout=timeout, transport=transport)

        # Sub-managers
        self.messages = _MessageManager(self._http)
        self.users = _UserManager(self._http)

    @property
    def api_key(self) -> str:
        return self._api_key

    async def connect_user(
        self,
        user: User,
        user_token: str,
        handler: EventHandler,
        config: ConnectionConfig | None = None,
        dial: Dialer | None = None,
    ) -> Connection:
        """Open a realtime connection as ``user``.

        Args:
            user: The connecting user; ``id`` is required, other profile
                fields are sent as details.
            user_token: Bearer token issued for that user.
            handler: Called with each event, in arrival order.
            config: Deadline and keepalive settings.
            dial: Replaces ``websockets.connect`` for opening the socket.

        Returns:
            An open :class:`Connection`. Reconnecting after
            :meth:`Connection.wait` reports an error is up to the caller.
        """
        credentials = Credentials(api_key=self._api_key, token=user_token, user=user)
        return await Connection.open(self._ws_url, credentials, handler, config=config, dial=dial)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.close()
