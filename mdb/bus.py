from collections.abc import Iterable
from contextlib import suppress
from itertools import chain
from queue import Queue
from queue import ShutDown
from threading import Lock
from typing import Any


class Bus:
    """Distribute events to in-process subscribers."""

    def __init__(self):
        self.__lock = Lock()
        self.__shutdown = False
        self.__subscriptions: dict[type, set[Queue[Any]]] = {}

    def subscribe[T](self, types: Iterable[type[T]]) -> Queue[T]:
        """Get a queue of future events that are instances of any of the types."""
        queue = Queue[T]()
        with self.__lock:
            if self.__shutdown:
                queue.shutdown()
                return queue
            for type in types:
                self.__subscriptions.setdefault(type, set()).add(queue)
        return queue

    def unsubscribe(self, queue: Queue, /):
        with self.__lock:
            for subscriptions in self.__subscriptions.values():
                subscriptions.discard(queue)
        queue.shutdown()

    def publish(self, event: Any, /):
        with self.__lock:
            subscribers = {
                subscription
                for type, subscriptions in self.__subscriptions.items()
                for subscription in subscriptions
                if isinstance(event, type)
            }
        for subscriber in subscribers:
            with suppress(ShutDown):
                subscriber.put(event)

    def shutdown(self):
        with self.__lock:
            self.__shutdown = True
            subscribers = set(chain.from_iterable(self.__subscriptions.values()))
            self.__subscriptions.clear()
        for subscriber in subscribers:
            subscriber.shutdown()
