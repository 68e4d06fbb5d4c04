"""
Stream Chat runtime SDK for Python.

Server-side, async-first client for a hosted chat backend: signed REST
calls plus a long-lived realtime event connection. Entities keep any
fields beyond their schema in ``extra_data``, so custom data is never
lost between a fetch and an update.

Example::

    from stream_chat_runtime import StreamChat, User

    client = StreamChat(api_key="key", token="server-jwt")

    async def on_event(event):
        if event.type == "message.new":
            print(event.message.text, event.message.extra_data)

    conn = await client.connect_user(User(id="bot"), user_token, on_event)
    print(f"Connected as {conn.id}")

    err = await conn.wait()   # returns on failure or close
    await conn.aclose()
    await client.close()
"""

from stream_chat_runtime.client import StreamChat
from stream_chat_runtime.connection import Connection, KeepaliveWriter, handshake
from stream_chat_runtime.events import EventHandler, EventReader
from stream_chat_runtime.errors import (
    APIError,
    CodecError,
    ConnectError,
    DeadlineExceeded,
    HandshakeProtocolError,
    HandshakeTimeout,
    MalformedPayload,
    RateLimit,
    StreamChatError,
    TransportError,
    TypeMismatch,
)
from stream_chat_runtime.serialization import (
    ExtensibleModel,
    decode,
    encode,
    extra_keys,
    from_dict,
    schema_keys,
    to_dict,
)
from stream_chat_runtime.types import (
    Attachment,
    Channel,
    ChannelMember,
    ConnectionConfig,
    ConnectRequest,
    Credentials,
    Event,
    EventType,
    Message,
    MessageHistoryEntry,
    MessageType,
    Mute,
    QueryMessageHistoryResponse,
    Reaction,
    User,
)
from stream_chat_runtime.version import __version__

__all__ = [
    "StreamChat",
    "Connection",
    "KeepaliveWriter",
    "handshake",
    "EventHandler",
    "EventReader",
    "APIError",
    "CodecError",
    "ConnectError",
    "DeadlineExceeded",
    "HandshakeProtocolError",
    "HandshakeTimeout",
    "MalformedPayload",
    "RateLimit",
    "StreamChatError",
    "TransportError",
    "TypeMismatch",
    "ExtensibleModel",
    "decode",
    "encode",
    "extra_keys",
    "from_dict",
    "schema_keys",
    "to_dict",
    "Attachment",
    "Channel",
    "ChannelMember",
    "ConnectionConfig",
    "ConnectRequest",
    "Credentials",
    "Event",
    "EventType",
    "Message",
    "MessageHistoryEntry",
    "MessageType",
    "Mute",
    "QueryMessageHistoryResponse",
    "Reaction",
    "User",
    "__version__",
]
