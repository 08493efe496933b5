import json
from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import field
from datetime import UTC
from datetime import datetime
from typing import Any

from .id import message_id

TEXT_CONTENT_TYPE = "text/plain"
BYTES_CONTENT_TYPE = "application/octet-stream"
MAP_CONTENT_TYPE = "application/json"


@dataclass(eq=False, frozen=True, kw_only=True)
class Message:
    """A delivered or deliverable payload.

    The body is opaque to the container. Subclasses only add a view over it.
    """

    body: bytes
    id: str = field(default_factory=message_id)
    destination: str = ""
    properties: Mapping[str, Any] = field(default_factory=dict)
    redelivered: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def __repr__(self):
        return f"<{type(self).__name__} {self.id}>"


@dataclass(eq=False, frozen=True, kw_only=True)
class TextMessage(Message):
    charset: str = "utf-8"

    @property
    def text(self) -> str:
        return self.body.decode(self.charset)


@dataclass(eq=False, frozen=True, kw_only=True)
class BytesMessage(Message):
    pass


@dataclass(eq=False, frozen=True, kw_only=True)
class MapMessage(Message):
    @property
    def map(self) -> dict[str, Any]:
        value = json.loads(self.body)
        if not isinstance(value, dict):
            raise ValueError(f"Map message body is not an object: {value!r}")
        return value


def text_message(text: str, /, *, charset: str = "utf-8", **fields) -> TextMessage:
    return TextMessage(body=text.encode(charset), charset=charset, **fields)


def bytes_message(body: bytes, /, **fields) -> BytesMessage:
    return BytesMessage(body=body, **fields)


def map_message(mapping: Mapping[str, Any], /, **fields) -> MapMessage:
    return MapMessage(body=json.dumps(dict(mapping)).encode(), **fields)


def content_type(message: Message) -> str:
    """The wire content type that identifies the kind of message."""
    match message:
        case TextMessage():
            return TEXT_CONTENT_TYPE
        case MapMessage():
            return MAP_CONTENT_TYPE
        case _:
            return BYTES_CONTENT_TYPE


def from_wire(
    body: bytes,
    /,
    *,
    content_type: str | None,
    charset: str | None = None,
    **fields,
) -> Message:
    """Build the message class that matches a wire content type."""
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if media_type.startswith("text/"):
        return TextMessage(body=body, charset=charset or "utf-8", **fields)
    if media_type == MAP_CONTENT_TYPE:
        return MapMessage(body=body, **fields)
    return BytesMessage(body=body, **fields)
