from dataclasses import dataclass

from .activation import ActivationConfig
from .listener import MessageListener


@dataclass(frozen=True)
class Bean:
    """A registered message-driven bean."""

    name: str
    listener: type[MessageListener]
    activation: ActivationConfig

    def create(self) -> MessageListener:
        return self.listener()

    @property
    def path(self) -> str:
        return f"{self.listener.__module__}.{self.listener.__qualname__}"

    def __repr__(self):
        return f"<{type(self).__name__} {self.name!r}>"
