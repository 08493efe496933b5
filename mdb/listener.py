from abc import ABC
from abc import abstractmethod

from .message import Message


class MessageListener(ABC):
    """Receive messages delivered from a destination.

    The container creates one instance per concurrent session, and never
    delivers to the same instance from two threads at once. ``setup`` runs
    before the first delivery to an instance and ``teardown`` after its last.
    """

    def setup(self):
        """Prepare the instance before it receives messages."""

    @abstractmethod
    def on_message(self, message: Message, /):
        """Handle a single delivered message.

        Returning normally acknowledges the message. Raising an exception
        marks the delivery as failed.
        """
        raise NotImplementedError("Subclasses must implement this method.")

    def teardown(self):
        """Release anything acquired in ``setup``."""
