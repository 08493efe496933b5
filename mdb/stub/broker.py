from contextlib import suppress
from dataclasses import replace
from queue import Empty
from queue import Queue
from queue import ShutDown
from threading import Lock

from mdb.activation import Destination
from mdb.activation import DestinationType
from mdb.broker import Broker
from mdb.message import Message
from mdb.tls import TLSConfig

from .receiver import StubReceiver


class StubBroker(Broker):
    """An in-memory broker for tests."""

    def __init__(self):
        self.__lock = Lock()
        self.__shutdown = False
        self.__queues = dict[str, Queue[Message]]()
        self.__topics = dict[str, set[Queue[Message]]]()
        self.__durable = dict[tuple[str, str], Queue[Message]]()
        self.__receivers = set[StubReceiver]()

    @classmethod
    def from_uri(cls, uri: str, /, *, tls: TLSConfig | None = None):
        return cls()

    def __queue(self, name: str) -> Queue[Message]:
        with self.__lock:
            return self.__queues.setdefault(name, Queue[Message]())

    def send(self, message: Message, /, *, destination: Destination):
        message = replace(message, destination=destination.name)
        match destination.type:
            case DestinationType.QUEUE:
                self.__queue(destination.name).put(message)
            case DestinationType.TOPIC:
                with self.__lock:
                    subscribers = set(self.__topics.get(destination.name, ()))
                for subscriber in subscribers:
                    with suppress(ShutDown):
                        subscriber.put(message)

    def purge(self, *, queue: str) -> int:
        messages = self.__queue(queue)
        purged = 0
        with suppress(Empty):
            while True:
                messages.get_nowait()
                purged += 1
        return purged

    def receive(
        self,
        destination: Destination,
        /,
        *,
        concurrency: int,
        subscription: str | None = None,
    ) -> StubReceiver:
        if concurrency <= 0:
            raise ValueError(f"Concurrency must be positive, got: {concurrency}")

        match destination.type:
            case DestinationType.QUEUE:
                if subscription:
                    raise ValueError("Only topics support subscriptions")
                receiver = StubReceiver(
                    self.__queue(destination.name), capacity=concurrency
                )
            case DestinationType.TOPIC if subscription:
                with self.__lock:
                    key = (destination.name, subscription)
                    if key not in self.__durable:
                        self.__durable[key] = Queue[Message]()
                        self.__topics.setdefault(destination.name, set()).add(
                            self.__durable[key]
                        )
                    queue = self.__durable[key]
                receiver = StubReceiver(queue, capacity=concurrency)
            case DestinationType.TOPIC:
                queue = Queue[Message]()
                with self.__lock:
                    self.__topics.setdefault(destination.name, set()).add(queue)

                def unsubscribe():
                    with self.__lock:
                        self.__topics[destination.name].discard(queue)
                    queue.shutdown(immediate=True)

                receiver = StubReceiver(
                    queue, capacity=concurrency, on_shutdown=unsubscribe
                )

        with self.__lock:
            self.__receivers.add(receiver)
        return receiver

    def shutdown(self):
        with self.__lock:
            if self.__shutdown:
                return
            self.__shutdown = True
            receivers = set(self.__receivers)
            queues = {
                *self.__queues.values(),
                *self.__durable.values(),
            }

        for receiver in receivers:
            receiver.shutdown()
        for queue in queues:
            queue.shutdown(immediate=True)

        with self.__lock:
            self.__queues.clear()
            self.__topics.clear()
            self.__durable.clear()
            self.__receivers.clear()
