from abc import ABC
from abc import abstractmethod
from collections.abc import Iterable

from .message import Message


class Receiver(Iterable[Message], ABC):
    """Receive and settle messages from a destination.

    Iterating the receiver delivers messages. Every delivered message must be
    settled exactly once, either acknowledged or recovered, which frees its
    capacity for another delivery.

    When the receiver shuts down, iteration ends, and messages that were
    delivered but not yet settled are returned to the broker to be
    redelivered.
    """

    @abstractmethod
    def acknowledge(self, message: Message, /):
        """Acknowledge a message.

        The message was processed, and will not be delivered again.
        """
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def recover(self, message: Message, /, *, requeue: bool):
        """Recover a message whose processing failed.

        When requeued, the message is delivered again, marked as redelivered.
        Otherwise it is discarded.
        """
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def shutdown(self):
        """Stop receiving messages."""
        raise NotImplementedError("Subclasses must implement this method.")
