from dataclasses import dataclass
from dataclasses import field
from datetime import UTC
from datetime import datetime

from .id import random_id


@dataclass(eq=False, kw_only=True)
class Event:
    event_id: str = field(default_factory=random_id, repr=False)
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(tz=UTC), repr=False
    )
    bean: str


@dataclass(eq=False, kw_only=True)
class BeanActivated(Event):
    destination: str


@dataclass(eq=False, kw_only=True)
class BeanDeactivated(Event):
    destination: str


@dataclass(eq=False, kw_only=True)
class MessageEvent(Event):
    message_id: str


@dataclass(eq=False, kw_only=True)
class MessageDelivered(MessageEvent):
    pass


@dataclass(eq=False, kw_only=True)
class MessageAcknowledged(MessageEvent):
    pass


@dataclass(eq=False, kw_only=True)
class MessageFailed(MessageEvent):
    exception: Exception


@dataclass(eq=False, kw_only=True)
class MessageRedelivered(MessageEvent):
    pass


@dataclass(eq=False, kw_only=True)
class MessageDiscarded(MessageEvent):
    pass
