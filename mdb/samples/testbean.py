import sys

from mdb import Message
from mdb import MessageListener
from mdb import TextMessage
from mdb import message_driven


@message_driven(
    name="TestMessageBean",
    activation_config={
        "destinationType": "jakarta.jms.Queue",
        "destination": "DEV.QUEUE.1",
        "connectionFactoryLookup": "jms/MQConnectionFactory",
    },
)
class TestMessageBean(MessageListener):
    """Print every message received on DEV.QUEUE.1."""

    def on_message(self, message: Message, /):
        try:
            match message:
                case TextMessage():
                    print(f"MDB RECEIVED MESSAGE: {message.text}")
                case _:
                    print(f"MDB RECEIVED NON-TEXT MESSAGE: {type(message).__name__}")
        except Exception as exception:
            print(f"MDB ERROR: {exception}", file=sys.stderr)
