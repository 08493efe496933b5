from abc import ABC
from abc import abstractmethod

from .activation import Destination
from .message import Message
from .receiver import Receiver
from .tls import TLSConfig


class Broker(ABC):
    """A broker delivers messages sent to queues and topics.

    Messages sent to a queue are delivered to exactly one of its receivers.
    Messages sent to a topic are delivered to every subscription of the
    topic. Delivery is at-least-once: a message that is not acknowledged
    before its receiver shuts down is delivered again.
    """

    @classmethod
    @abstractmethod
    def from_uri(cls, uri: str, /, *, tls: TLSConfig | None = None):
        """Create a broker instance from a URI."""
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def send(self, message: Message, /, *, destination: Destination):
        """Send a message to a destination."""
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def purge(self, *, queue: str) -> int:
        """Purge all messages from the queue, returning how many were removed."""
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def receive(
        self,
        destination: Destination,
        /,
        *,
        concurrency: int,
        subscription: str | None = None,
    ) -> Receiver:
        """Receive messages from a destination.

        At most ``concurrency`` messages are delivered without being
        acknowledged or recovered. A subscription name makes a topic
        subscription durable, so that messages sent while no receiver is
        active are kept for the next one.
        """
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def shutdown(self):
        """Signal the final shutdown of the broker."""
        raise NotImplementedError("Subclasses must implement this method.")
