"""
Unit tests for the Stream Chat REST client.

Uses respx to mock HTTP requests to the API, so no actual backend
required. Tests verify that requests carry the credentials and that
responses come back through the entity codec with custom fields intact.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
import respx

from stream_chat_runtime.client import StreamChat, _HttpClient
from stream_chat_runtime.errors import APIError, RateLimit
from stream_chat_runtime.types import Message, Reaction, User

from fakes import FAST, FakeTransport, hello_frame, make_dialer

BASE_URL = "http://localhost:3030"
API_KEY = "key_for_unit_tests"
TOKEN = "server-jwt"


def sent_json(route: respx.Route) -> Any:
    return json.loads(route.calls.last.request.content)


# ============================================================
#  HTTP Client
# ============================================================


@pytest.mark.asyncio
async def test_http_client_sends_credentials() -> None:
    """Every request carries the API key, token and auth type."""
    with respx.mock:
        route = respx.get(url__startswith=f"{BASE_URL}/messages/m1").mock(
            return_value=httpx.Response(200, json={"message": {"id": "m1"}})
        )
        client = _HttpClient(BASE_URL, API_KEY, TOKEN)
        data = await client.request("GET", "messages/m1")
        await client.close()

        assert route.called
        request = route.calls.last.request
        assert request.url.params["api_key"] == API_KEY
        assert request.headers["Authorization"] == TOKEN
        assert request.headers["Stream-Auth-Type"] == "jwt"
        assert request.headers["X-Stream-Client"].startswith("stream-chat-runtime-python-")
        assert data["message"]["id"] == "m1"


@pytest.mark.asyncio
async def test_http_client_api_error() -> None:
    with respx.mock:
        respx.get(url__startswith=f"{BASE_URL}/messages/missing").mock(
            return_value=httpx.Response(
                404,
                json={
                    "code": 4,
                    "message": "GetMessage failed with error: message does not exist",
                    "StatusCode": 404,
                    "duration": "0.10ms",
                    "more_info": "https://getstream.io/chat/docs/api_errors_response",
                },
            )
        )
        client = _HttpClient(BASE_URL, API_KEY, TOKEN)
        with pytest.raises(APIError) as exc_info:
            await client.request("GET", "messages/missing")
        await client.close()

        err = exc_info.value
        assert err.status_code == 404
        assert err.code == 4
        assert "does not exist" in str(err)
        assert err.rate_limit is None


@pytest.mark.asyncio
async def test_http_client_rate_limited() -> None:
    with respx.mock:
        respx.post(url__startswith=f"{BASE_URL}/users").mock(
            return_value=httpx.Response(
                429,
                json={"code": 9, "message": "Too many requests", "StatusCode": 429},
                headers={
                    "X-Ratelimit-Limit": "60",
                    "X-Ratelimit-Remaining": "0",
                    "X-Ratelimit-Reset": "1700000000",
                },
            )
        )
        client = _HttpClient(BASE_URL, API_KEY, TOKEN)
        with pytest.raises(APIError) as exc_info:
            await client.request("POST", "users", {"users": {}})
        await client.close()

        rl = exc_info.value.rate_limit
        assert rl is not None
        assert rl.limit == 60
        assert rl.remaining == 0
        assert rl.reset is not None
        assert int(rl.reset.timestamp()) == 1700000000


def test_rate_limit_ignores_bad_headers() -> None:
    rl = RateLimit.from_headers({"X-Ratelimit-Limit": "sixty", "X-Ratelimit-Reset": "0"})

    assert rl == RateLimit(limit=0, remaining=0, reset=None)
    assert rl.model_dump() == {"limit": 0, "remaining": 0, "reset": None}


@pytest.mark.asyncio
async def test_http_client_undecodable_error() -> None:
    with respx.mock:
        respx.get(url__startswith=f"{BASE_URL}/messages/m1").mock(
            return_value=httpx.Response(502, text="<html>bad gateway</html>")
        )
        client = _HttpClient(BASE_URL, API_KEY, TOKEN)
        with pytest.raises(APIError) as exc_info:
            await client.request("GET", "messages/m1")
        await client.close()

        assert exc_info.value.status_code == 502
        assert str(exc_info.value).startswith("cannot decode error")


# ============================================================
#  Messages
# ============================================================


@pytest.mark.asyncio
async def test_get_message_keeps_custom_fields() -> None:
    with respx.mock:
        respx.get(url__startswith=f"{BASE_URL}/messages/m1").mock(
            return_value=httpx.Response(
                200,
                json={
                    "message": {
                        "id": "m1",
                        "text": "hi",
                        "user": {"id": "u1", "team_color": "blue"},
                        "custom_flag": True,
                    },
                    "duration": "1ms",
                },
            )
        )
        chat = StreamChat(API_KEY, TOKEN, base_url=BASE_URL)
        msg = await chat.messages.get_message("m1")
        await chat.close()

        assert msg.id == "m1"
        assert msg.extra_data == {"custom_flag": True}
        assert msg.user is not None
        assert msg.user.extra_data == {"team_color": "blue"}


@pytest.mark.asyncio
async def test_update_message_sends_extra_data() -> None:
    with respx.mock:
        route = respx.post(url__startswith=f"{BASE_URL}/messages/m1").mock(
            return_value=httpx.Response(
                201,
                json={"message": {"id": "m1", "text": "edited", "priority": "high"}},
            )
        )
        chat = StreamChat(API_KEY, TOKEN, base_url=BASE_URL)
        msg = Message(id="m1", text="edited")
        msg.extra_data["priority"] = "high"
        msg.extra_data["text"] = "collides"
        result = await chat.messages.update_message(msg)
        await chat.close()

        body = sent_json(route)
        assert body["message"]["text"] == "edited"
        assert body["message"]["priority"] == "high"
        assert result.extra_data == {"priority": "high"}


@pytest.mark.asyncio
async def test_send_reaction_sets_user() -> None:
    with respx.mock:
        route = respx.post(url__startswith=f"{BASE_URL}/messages/m1/reaction").mock(
            return_value=httpx.Response(
                201,
                json={
                    "message": {
                        "id": "m1",
                        "latest_reactions": [
                            {"message_id": "m1", "user_id": "u1", "type": "love", "sparkle": 3}
                        ],
                        "reaction_counts": {"love": 1},
                    },
                    "reaction": {"message_id": "m1", "user_id": "u1", "type": "love"},
                },
            )
        )
        chat = StreamChat(API_KEY, TOKEN, base_url=BASE_URL)
        msg = await chat.messages.send_reaction("m1", Reaction(type="love", extra_data={"sparkle": 3}), "u1")
        await chat.close()

        body = sent_json(route)
        assert body["reaction"] == {"message_id": "", "user_id": "u1", "type": "love", "sparkle": 3}
        assert msg.reaction_counts == {"love": 1}
        assert msg.latest_reactions[0].extra_data == {"sparkle": 3}


@pytest.mark.asyncio
async def test_query_message_history() -> None:
    with respx.mock:
        route = respx.post(url__startswith=f"{BASE_URL}/messages/history").mock(
            return_value=httpx.Response(
                200,
                json={
                    "message_history": [
                        {
                            "message_id": "m1",
                            "message_updated_by_id": "u1",
                            "message_updated_at": "2024-05-01T10:00:00Z",
                            "text": "first draft",
                            "custom_field": "value",
                        }
                    ],
                    "next": "cursor-2",
                    "duration": "2ms",
                },
            )
        )
        chat = StreamChat(API_KEY, TOKEN, base_url=BASE_URL)
        resp = await chat.messages.query_message_history({"message_id": "m1"}, limit=10)
        await chat.close()

        assert sent_json(route) == {"filter": {"message_id": "m1"}, "limit": 10}
        assert resp.next == "cursor-2"
        assert len(resp.message_history) == 1
        entry = resp.message_history[0]
        assert entry.text == "first draft"
        assert entry.extra_data == {"custom_field": "value"}


@pytest.mark.asyncio
async def test_query_message_history_requires_filter() -> None:
    chat = StreamChat(API_KEY, TOKEN, base_url=BASE_URL)
    with pytest.raises(ValueError):
        await chat.messages.query_message_history({})
    await chat.close()


# ============================================================
#  Users
# ============================================================


@pytest.mark.asyncio
async def test_upsert_user() -> None:
    with respx.mock:
        route = respx.post(url__startswith=f"{BASE_URL}/users").mock(
            return_value=httpx.Response(
                201,
                json={"users": {"u1": {"id": "u1", "name": "Bob", "role": "user", "plan": "pro"}}},
            )
        )
        chat = StreamChat(API_KEY, TOKEN, base_url=BASE_URL)
        user = await chat.users.upsert_user(User(id="u1", name="Bob", extra_data={"plan": "pro"}))
        await chat.close()

        assert sent_json(route) == {"users": {"u1": {"id": "u1", "name": "Bob", "plan": "pro"}}}
        assert user.role == "user"
        assert user.extra_data == {"plan": "pro"}


# ============================================================
#  Client
# ============================================================


def test_client_requires_credentials() -> None:
    with pytest.raises(ValueError):
        StreamChat("", TOKEN)
    with pytest.raises(ValueError):
        StreamChat(API_KEY, "")


@pytest.mark.asyncio
async def test_connect_user_dials_ws_url() -> None:
    transport = FakeTransport(hello_frame("conn-9"))
    dial = make_dialer(transport)
    chat = StreamChat(API_KEY, TOKEN, base_url=BASE_URL, ws_url="ws://localhost:3030/connect")

    conn = await chat.connect_user(User(id="u1"), "user-jwt", lambda e: None, config=FAST, dial=dial)
    assert conn.id == "conn-9"
    url, _ = dial.calls[0]
    assert url.startswith("ws://localhost:3030/connect?")
    assert "authorization=user-jwt" in url

    conn.close()
    transport.push(hello_frame())
    await conn.join()
    await chat.close()
