import logging
from threading import Lock

from pika import BasicProperties
from pika import BlockingConnection
from pika import ConnectionParameters
from pika import DeliveryMode
from pika import SSLOptions
from pika import URLParameters
from pika.adapters.blocking_connection import BlockingChannel

from mdb.activation import Destination
from mdb.activation import DestinationType
from mdb.broker import Broker
from mdb.message import Message
from mdb.message import TextMessage
from mdb.message import content_type
from mdb.tls import TLSConfig

from .receiver import TOPIC_EXCHANGE
from .receiver import PikaReceiver

logger = logging.getLogger(__name__)

SCHEMES = {"pika": "amqp", "pikas": "amqps"}


class PikaBroker(Broker):
    """A broker backed by RabbitMQ.

    Queues are durable queues on the default exchange. Topics are routing
    keys on the ``amq.topic`` exchange.
    """

    @classmethod
    def from_uri(cls, uri: str, /, *, tls: TLSConfig | None = None):
        """Create a broker instance from a URI.

        ``pika://`` connects with plain AMQP, ``pikas://`` with AMQP over TLS.
        """
        scheme, _, rest = uri.partition(":")
        if scheme not in SCHEMES:
            raise ValueError(f"URI scheme must be 'pika:' or 'pikas:', got: {uri}")

        parameters = URLParameters(f"{SCHEMES[scheme]}:{rest}")
        if scheme == "pikas":
            context = (tls or TLSConfig()).create_context()
            parameters.ssl_options = SSLOptions(
                context, server_hostname=parameters.host
            )
        return cls(parameters)

    def __init__(self, connection_params: ConnectionParameters | URLParameters, /):
        self.__connection_params = connection_params
        self.__producer_lock = Lock()
        self.__producer: BlockingChannel | None = None
        self.__declared = set[str]()
        self.__receivers = set[PikaReceiver]()
        self.__shutdown_lock = Lock()
        self.__shutdown = False

    @property
    def connection_params(self) -> ConnectionParameters | URLParameters:
        return self.__connection_params

    def __channel(self) -> BlockingChannel:
        """The channel to produce on, connecting on first use."""
        if self.__producer is None or self.__producer.is_closed:
            logger.debug("Connecting to %s", self.__connection_params.host)
            connection = BlockingConnection(self.__connection_params)
            self.__producer = connection.channel()
            self.__declared.clear()
        return self.__producer

    def __declare(self, channel: BlockingChannel, queue: str):
        if queue not in self.__declared:
            channel.queue_declare(queue=queue, durable=True)
            self.__declared.add(queue)

    def send(self, message: Message, /, *, destination: Destination):
        properties = BasicProperties(
            message_id=message.id,
            content_type=content_type(message),
            content_encoding=(
                message.charset if isinstance(message, TextMessage) else None
            ),
            headers=dict(message.properties) or None,
            timestamp=int(message.timestamp.timestamp()),
            delivery_mode=DeliveryMode.Persistent,
        )
        with self.__producer_lock:
            channel = self.__channel()
            match destination.type:
                case DestinationType.QUEUE:
                    self.__declare(channel, destination.name)
                    channel.basic_publish(
                        exchange="",
                        routing_key=destination.name,
                        body=message.body,
                        properties=properties,
                    )
                case DestinationType.TOPIC:
                    channel.basic_publish(
                        exchange=TOPIC_EXCHANGE,
                        routing_key=destination.name,
                        body=message.body,
                        properties=properties,
                    )

    def purge(self, *, queue: str) -> int:
        with self.__producer_lock:
            channel = self.__channel()
            self.__declare(channel, queue)
            return channel.queue_purge(queue=queue).method.message_count

    def receive(
        self,
        destination: Destination,
        /,
        *,
        concurrency: int,
        subscription: str | None = None,
    ) -> PikaReceiver:
        if concurrency <= 0:
            raise ValueError(f"Concurrency must be positive, got: {concurrency}")
        if subscription and destination.type is not DestinationType.TOPIC:
            raise ValueError("Only topics support subscriptions")
        receiver = PikaReceiver(
            self.__connection_params,
            destination,
            concurrency=concurrency,
            subscription=subscription,
        )
        with self.__shutdown_lock:
            self.__receivers.add(receiver)
        return receiver

    def shutdown(self):
        """Signal the final shutdown of the broker."""
        with self.__shutdown_lock:
            if self.__shutdown:
                return
            self.__shutdown = True
            receivers = set(self.__receivers)
            self.__receivers.clear()

        for receiver in receivers:
            receiver.shutdown()

        with self.__producer_lock:
            if self.__producer is not None and self.__producer.connection.is_open:
                self.__producer.connection.close()
            self.__producer = None
