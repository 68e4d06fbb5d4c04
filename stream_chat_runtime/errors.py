"""
Exception types raised by the Stream Chat runtime SDK.

Codec errors come from decoding wire payloads, connect errors from the
realtime handshake, transport errors from the background reader and
keepalive tasks, and :class:`APIError` from the REST layer.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import BaseModel


class StreamChatError(Exception):
    """Base class for every error raised by this package."""


# ============================================================
#  Codec
# ============================================================


class CodecError(StreamChatError):
    """A wire payload could not be decoded into an entity."""


class MalformedPayload(CodecError):
    """The payload is not a valid JSON object."""


class TypeMismatch(CodecError):
    """A schema field is present but cannot be converted to its declared type."""


# ============================================================
#  Realtime connection
# ============================================================


class ConnectError(StreamChatError):
    """The realtime connection could not be established."""


class HandshakeTimeout(ConnectError):
    """No handshake frame arrived within the allowed wait."""


class HandshakeProtocolError(ConnectError):
    """The handshake frame was undecodable or carried no connection id."""


class TransportError(StreamChatError):
    """An I/O failure on an open realtime connection."""


class DeadlineExceeded(TransportError):
    """A read or write did not complete before its deadline."""


# ============================================================
#  REST
# ============================================================

HEADER_RATE_LIMIT = "X-Ratelimit-Limit"
HEADER_RATE_REMAINING = "X-Ratelimit-Remaining"
HEADER_RATE_RESET = "X-Ratelimit-Reset"


def _int_header(headers: Mapping[str, str], name: str) -> int:
    try:
        return int(headers.get(name, ""))
    except ValueError:
        return 0


class RateLimit(BaseModel):
    """Rate limit state reported by the API on a 429 response."""

    limit: int = 0
    remaining: int = 0
    reset: datetime | None = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> RateLimit:
        """Parse ``X-Ratelimit-*`` headers; missing or bad values stay zero."""
        reset = _int_header(headers, HEADER_RATE_RESET)
        return cls(
            limit=_int_header(headers, HEADER_RATE_LIMIT),
            remaining=_int_header(headers, HEADER_RATE_REMAINING),
            reset=datetime.fromtimestamp(reset, tz=timezone.utc) if reset > 0 else None,
        )


class APIError(StreamChatError):
    """An error response returned by the chat API."""

    def __init__(
        self,
        message: str,
        *,
        code: int = 0,
        status_code: int = 0,
        exception_fields: dict[str, str] | None = None,
        duration: str = "",
        more_info: str = "",
        rate_limit: RateLimit | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.exception_fields = exception_fields or {}
        self.duration = duration
        self.more_info = more_info
        self.rate_limit = rate_limit

    @classmethod
    def from_response_body(cls, status_code: int, body: dict[str, Any]) -> APIError:
        return cls(
            str(body.get("message", "")),
            code=int(body.get("code", 0) or 0),
            status_code=int(body.get("StatusCode", status_code) or status_code),
            exception_fields=body.get("exception_fields") or {},
            duration=str(body.get("duration", "")),
            more_info=str(body.get("more_info", "")),
        )
