"""
Pydantic models for the Stream Chat runtime SDK.

Entities subclass :class:`~stream_chat_runtime.serialization.ExtensibleModel`
so that any field the API (or a caller) adds beyond the schema below is
kept in ``extra_data`` and written back out on encode.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, Field, field_validator, model_validator

from stream_chat_runtime.serialization import ExtensibleModel


# ============================================================
#  Configuration
# ============================================================


class ConnectionConfig(BaseModel):
    """Timing settings for a realtime connection, in seconds."""

    read_deadline: float = Field(35.0, gt=0)
    write_deadline: float = Field(8.0, gt=0)
    keepalive_interval: float = Field(28.0, gt=0)
    handshake_timeout: float = Field(35.0, gt=0)
    keepalive_payload: bytes = b"ping"

    @model_validator(mode="after")
    def _keepalive_within_read_deadline(self) -> ConnectionConfig:
        if self.keepalive_interval >= self.read_deadline:
            raise ValueError("keepalive_interval must be shorter than read_deadline")
        return self


# ============================================================
#  Users
# ============================================================


class User(ExtensibleModel):
    """A chat user."""

    __omit_empty__: ClassVar[frozenset[str]] = frozenset(
        {"name", "image", "role", "online", "invisible",
         "created_at", "updated_at", "last_active", "mutes"}
    )

    id: str = ""
    name: str = ""
    image: str = ""
    role: str = ""

    online: bool = False
    invisible: bool = False

    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_active: datetime | None = None

    mutes: list[Mute] = Field(default_factory=list)


class Mute(BaseModel):
    """A user muting another user."""

    user: User = Field(default_factory=User)
    target: User = Field(default_factory=User)
    created_at: datetime | None = None
    updated_at: datetime | None = None


User.model_rebuild()


class Credentials(BaseModel):
    """What the realtime handshake needs to authenticate a user."""

    api_key: str
    token: str
    user: User

    @field_validator("user")
    @classmethod
    def _user_has_id(cls, user: User) -> User:
        if not user.id:
            raise ValueError("user id is required")
        return user


# ============================================================
#  Messages
# ============================================================


class MessageType(str, Enum):
    REGULAR = "regular"
    ERROR = "error"
    REPLY = "reply"
    SYSTEM = "system"
    EPHEMERAL = "ephemeral"


class Attachment(ExtensibleModel):
    """A file, link or rich card attached to a message."""

    __omit_empty__: ClassVar[frozenset[str]] = frozenset(
        {"type", "author_name", "title", "title_link", "text",
         "image_url", "thumb_url", "asset_url", "og_scrape_url"}
    )

    type: str = ""  # text, image, audio, video

    author_name: str = ""
    title: str = ""
    title_link: str = ""
    text: str = ""

    image_url: str = ""
    thumb_url: str = ""
    asset_url: str = ""
    og_scrape_url: str = ""


class Reaction(ExtensibleModel):
    """A reaction on a message."""

    __omit_empty__: ClassVar[frozenset[str]] = frozenset({"score", "created_at"})

    message_id: str = ""
    user_id: str = ""
    type: str = ""
    score: int = 0
    created_at: datetime | None = None


class Message(ExtensibleModel):
    """A chat message."""

    id: str = ""

    text: str = ""
    html: str = ""

    type: str = ""  # one of MessageType

    user: User | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    latest_reactions: list[Reaction] = Field(default_factory=list)
    own_reactions: list[Reaction] = Field(default_factory=list)
    reaction_counts: dict[str, int] = Field(default_factory=dict)

    parent_id: str = ""
    show_in_channel: bool = False

    reply_count: int = 0

    mentioned_users: list[User] = Field(default_factory=list)

    created_at: datetime | None = None
    updated_at: datetime | None = None


class MessageHistoryEntry(ExtensibleModel):
    """One earlier revision of an edited message."""

    message_id: str = ""
    message_updated_by_id: str = ""
    message_updated_at: datetime | None = None

    text: str = ""
    attachments: list[Attachment] = Field(default_factory=list)


class QueryMessageHistoryResponse(BaseModel):
    """A page of message history entries."""

    message_history: list[MessageHistoryEntry] = Field(default_factory=list)
    next: str | None = None
    prev: str | None = None
    duration: str = ""


# ============================================================
#  Channels
# ============================================================


class ChannelMember(ExtensibleModel):
    """A user's membership in a channel."""

    __omit_empty__: ClassVar[frozenset[str]] = frozenset(
        {"user_id", "user", "is_moderator", "invited", "invite_accepted_at",
         "invite_rejected_at", "status", "role", "ban_expires",
         "created_at", "updated_at"}
    )

    user_id: str = ""
    user: User | None = None
    is_moderator: bool = False

    invited: bool = False
    invite_accepted_at: datetime | None = None
    invite_rejected_at: datetime | None = None
    status: str = ""
    role: str = ""
    channel_role: str = ""
    banned: bool = False
    ban_expires: datetime | None = None
    shadow_banned: bool = False
    notifications_muted: bool = False

    created_at: datetime | None = None
    updated_at: datetime | None = None


class Channel(ExtensibleModel):
    """A chat channel."""

    id: str = ""
    type: str = ""
    cid: str = ""  # channel_type:channel_id
    team: str = ""

    created_by: User | None = None
    disabled: bool = False
    frozen: bool = False

    member_count: int = 0
    members: list[ChannelMember] = Field(default_factory=list)

    message_count: int | None = None
    messages: list[Message] = Field(default_factory=list)

    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_message_at: datetime | None = None

    watcher_count: int = 0
    hidden: bool = False

    @property
    def full_cid(self) -> str:
        return self.cid or f"{self.type}:{self.id}"


# ============================================================
#  Realtime
# ============================================================


class EventType(str, Enum):
    """Event kinds delivered over the realtime connection."""

    USER_PRESENCE_CHANGED = "user.presence.changed"
    USER_WATCHING_START = "user.watching.start"
    USER_WATCHING_STOP = "user.watching.stop"
    USER_UPDATED = "user.updated"
    TYPING_START = "typing.start"
    TYPING_STOP = "typing.stop"
    MESSAGE_NEW = "message.new"
    MESSAGE_UPDATED = "message.updated"
    MESSAGE_DELETED = "message.deleted"
    MESSAGE_READ = "message.read"
    REACTION_NEW = "reaction.new"
    REACTION_DELETED = "reaction.deleted"
    MEMBER_ADDED = "member.added"
    MEMBER_UPDATED = "member.updated"
    MEMBER_REMOVED = "member.removed"
    CHANNEL_UPDATED = "channel.updated"
    CHANNEL_DELETED = "channel.deleted"
    HEALTH_CHECK = "health.check"
    NOTIFICATION_NEW_MESSAGE = "notification.message_new"
    NOTIFICATION_MARK_READ = "notification.mark_read"
    NOTIFICATION_INVITED = "notification.invited"
    NOTIFICATION_INVITE_ACCEPTED = "notification.invite_accepted"
    NOTIFICATION_ADDED_TO_CHANNEL = "notification.added_to_channel"
    NOTIFICATION_REMOVED_FROM_CHANNEL = "notification.removed_from_channel"
    NOTIFICATION_MUTES_UPDATED = "notification.mutes_updated"

    # local events
    CONNECTION_CHANGED = "connection.changed"
    CONNECTION_RECOVERED = "connection.recovered"


class Event(ExtensibleModel):
    """An event received over the realtime connection.

    ``type`` is kept as a plain string so kinds newer than
    :class:`EventType` still decode; compare against the enum members.
    """

    __omit_empty__: ClassVar[frozenset[str]] = frozenset(
        {"cid", "message", "reaction", "channel", "member", "user",
         "user_id", "me", "watcher_count", "connection_id"}
    )

    type: str = ""
    cid: str = ""
    message: Message | None = None
    reaction: Reaction | None = None
    channel: Channel | None = None
    member: ChannelMember | None = None
    user: User | None = None
    user_id: str = ""
    me: User | None = None
    watcher_count: int = 0
    # set on the first frame of a connection
    connection_id: str = ""

    created_at: datetime | None = None


class ConnectRequest(BaseModel):
    """Handshake document sent when opening a realtime connection."""

    server_determines_connection_id: bool = True
    user_details: User
