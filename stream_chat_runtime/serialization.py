"""
Extensible entity codec for the Stream Chat runtime SDK.

Every domain entity carries a fixed set of schema fields plus an open
``extra_data`` bag. Decoding splits a wire document into the two: schema
keys populate the typed fields and every other key lands in the bag.
Encoding merges them back, with the typed fields winning on any key
collision.

Usage::

    from stream_chat_runtime.serialization import decode, encode
    from stream_chat_runtime.types import Message

    msg = decode(Message, b'{"id": "m1", "text": "hi", "custom_flag": true}')
    msg.extra_data            # {"custom_flag": True}
    msg.extra_data["score"] = 3
    encode(msg)               # id, text, custom_flag and score, plus defaults
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, ClassVar, Iterable, Mapping, TypeVar

from pydantic import BaseModel, Field, ValidationError, model_serializer, model_validator

from stream_chat_runtime.errors import MalformedPayload, TypeMismatch

logger = logging.getLogger(__name__)

# Name of the bag attribute on every entity. On input, a mapping under this
# key is flattened into the bag.
EXTRA_DATA_FIELD = "extra_data"

ModelT = TypeVar("ModelT", bound=BaseModel)


# ============================================================
#  Extra fields registry
# ============================================================


@lru_cache(maxsize=None)
def schema_keys(model: type[BaseModel]) -> frozenset[str]:
    """Return the wire keys written for ``model``'s schema fields.

    This is exactly the key set :func:`encode` can emit from typed fields,
    so it is also the set removed from a decoded document before the rest
    is kept as extra data.
    """
    return frozenset(
        field.alias or name
        for name, field in model.model_fields.items()
        if name != EXTRA_DATA_FIELD
    )


def extra_keys(model: type[BaseModel], keys: Iterable[str]) -> set[str]:
    """Return the keys in ``keys`` that are not part of ``model``'s schema."""
    known = schema_keys(model)
    return {key for key in keys if key not in known}


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) == 0
    return False


# ============================================================
#  Entity base
# ============================================================


class ExtensibleModel(BaseModel):
    """Base for entities with schema fields plus an open ``extra_data`` bag.

    Subclasses declare their schema as ordinary pydantic fields and list the
    wire keys that are dropped from output when empty in ``__omit_empty__``.
    """

    __omit_empty__: ClassVar[frozenset[str]] = frozenset()

    extra_data: dict[str, Any] = Field(default_factory=dict, exclude=True)

    @model_validator(mode="wrap")
    @classmethod
    def _split_extra_data(cls, data: Any, handler: Any) -> Any:
        if not isinstance(data, Mapping):
            return handler(data)

        known = schema_keys(cls)
        fields: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            if key in known:
                fields[key] = value
            elif key == EXTRA_DATA_FIELD and isinstance(value, Mapping):
                continue
            else:
                extra[key] = value

        # Custom fields may arrive nested under "extra_data"; they belong at
        # the root of the bag.
        nested = data.get(EXTRA_DATA_FIELD)
        if isinstance(nested, Mapping):
            for key, value in nested.items():
                if key not in known:
                    extra[key] = value

        fields[EXTRA_DATA_FIELD] = extra
        return handler(fields)

    @model_serializer(mode="wrap")
    def _merge_extra_data(self, handler: Any) -> dict[str, Any]:
        typed = handler(self)
        known = schema_keys(type(self))
        omit = type(self).__omit_empty__

        merged = {k: v for k, v in self.extra_data.items() if k not in known}
        for key, value in typed.items():
            if key in omit and _is_empty(value):
                continue
            merged[key] = value
        return merged


# ============================================================
#  Codec
# ============================================================


def from_dict(model: type[ModelT], data: Any) -> ModelT:
    """Build ``model`` from an already parsed JSON document.

    Raises:
        MalformedPayload: ``data`` is not a JSON object.
        TypeMismatch: a schema field cannot be converted to its type.
    """
    if not isinstance(data, Mapping):
        raise MalformedPayload(
            f"expected a JSON object for {model.__name__}, got {type(data).__name__}"
        )
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise TypeMismatch(f"invalid {model.__name__} payload: {e}") from e


def decode(model: type[ModelT], raw: bytes | str) -> ModelT:
    """Decode a wire payload into ``model``.

    No partially populated entity is ever returned; the error is the only
    output of a failed decode.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedPayload(f"invalid JSON document for {model.__name__}: {e}") from e
    return from_dict(model, data)


def to_dict(entity: BaseModel) -> dict[str, Any]:
    """Return the JSON-ready document for ``entity``, extra data included."""
    return entity.model_dump(mode="json", by_alias=True)


def encode(entity: BaseModel) -> bytes:
    """Encode ``entity`` as a UTF-8 JSON document."""
    return json.dumps(to_dict(entity), separators=(",", ":")).encode("utf-8")
