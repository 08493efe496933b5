from collections.abc import Callable
from collections.abc import Iterator
from datetime import UTC
from datetime import datetime
from threading import Lock
from typing import Any
from typing import cast

from pika import BlockingConnection
from pika import ConnectionParameters
from pika import URLParameters

from mdb.activation import Destination
from mdb.activation import DestinationType
from mdb.message import Message
from mdb.message import from_wire
from mdb.receiver import Receiver

TOPIC_EXCHANGE = "amq.topic"


class PikaReceiver(Receiver):
    """Receive from a RabbitMQ queue on a dedicated connection.

    The connection belongs to the thread that iterates the receiver, so
    settlement from other threads is handed over to it.
    """

    def __init__(
        self,
        connection_params: ConnectionParameters | URLParameters,
        destination: Destination,
        /,
        *,
        concurrency: int,
        subscription: str | None = None,
    ):
        self.__destination = destination
        self.__connection = BlockingConnection(connection_params)
        self.__channel = self.__connection.channel()
        self.__channel.basic_qos(prefetch_count=concurrency)

        match destination.type:
            case DestinationType.QUEUE:
                self.__channel.queue_declare(queue=destination.name, durable=True)
                self.__queue = destination.name
            case DestinationType.TOPIC if subscription:
                self.__channel.queue_declare(queue=subscription, durable=True)
                self.__queue = subscription
            case DestinationType.TOPIC:
                self.__queue = cast(
                    str,
                    self.__channel.queue_declare("", exclusive=True).method.queue,
                )
        if destination.type is DestinationType.TOPIC:
            self.__channel.queue_bind(
                self.__queue, TOPIC_EXCHANGE, routing_key=destination.name
            )

        self.__tags = dict[Message, int]()
        self.__lock = Lock()
        self.__iterating = False
        self.__shutdown = False

    def __iter__(self) -> Iterator[Message]:
        with self.__lock:
            if self.__shutdown:
                return
            self.__iterating = True

        try:
            for method, properties, body in self.__channel.consume(self.__queue):
                fields: dict[str, Any] = {
                    "destination": self.__destination.name,
                    "properties": properties.headers or {},
                    "redelivered": bool(method.redelivered),
                }
                if properties.message_id:
                    fields["id"] = properties.message_id
                if properties.timestamp:
                    fields["timestamp"] = datetime.fromtimestamp(
                        properties.timestamp, tz=UTC
                    )
                message = from_wire(
                    body,
                    content_type=properties.content_type,
                    charset=properties.content_encoding,
                    **fields,
                )
                self.__tags[message] = cast(int, method.delivery_tag)
                yield message
        finally:
            if self.__connection.is_open:
                self.__connection.close()

    def __blocking_callback(self, fn: Callable[[], Any]):
        """Queue a callback and block until it is executed."""
        lock = Lock()
        lock.acquire()

        def callback():
            try:
                fn()
            finally:
                lock.release()

        self.__connection.add_callback_threadsafe(callback)
        with lock:
            return

    def __tag(self, message: Message) -> int:
        try:
            return self.__tags.pop(message)
        except KeyError:
            raise ValueError(f"{message!r} is not awaiting settlement") from None

    def acknowledge(self, message: Message, /):
        tag = self.__tag(message)
        self.__blocking_callback(lambda: self.__channel.basic_ack(delivery_tag=tag))

    def recover(self, message: Message, /, *, requeue: bool):
        tag = self.__tag(message)
        self.__blocking_callback(
            lambda: self.__channel.basic_nack(delivery_tag=tag, requeue=requeue)
        )

    def shutdown(self):
        with self.__lock:
            if self.__shutdown:
                return
            self.__shutdown = True
            iterating = self.__iterating

        if not self.__connection.is_open:
            return
        if iterating:
            # Ends the consume loop, which closes the connection
            self.__blocking_callback(self.__channel.cancel)
        else:
            self.__connection.close()
