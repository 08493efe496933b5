from collections.abc import Callable
from collections.abc import Iterator
from contextlib import suppress
from dataclasses import replace
from queue import Empty
from queue import Queue
from queue import ShutDown
from threading import Condition

from mdb.message import Message
from mdb.receiver import Receiver

POLL_INTERVAL = 0.05


class StubReceiver(Receiver):
    def __init__(
        self,
        queue: Queue[Message],
        /,
        *,
        capacity: int,
        on_shutdown: Callable[[], None] | None = None,
    ):
        self.__queue = queue
        self.__capacity = capacity
        # A semaphore won't do, because shutdown must wake every waiter
        self.__condition = Condition()
        self.__unsettled = set[Message]()
        self.__shutdown = False
        self.__on_shutdown = on_shutdown

    def __iter__(self) -> Iterator[Message]:
        while True:
            with self.__condition:
                while self.__capacity <= 0 and not self.__shutdown:
                    self.__condition.wait()
                if self.__shutdown:
                    return
                self.__capacity -= 1

            message = self.__get()
            if message is None:
                return

            with self.__condition:
                shutdown = self.__shutdown
                if not shutdown:
                    self.__unsettled.add(message)
            if shutdown:
                self.__requeue(message)
                return
            yield message

    def __get(self) -> Message | None:
        # The queue may be shared with other receivers, so poll for shutdown
        while not self.__shutdown:
            try:
                return self.__queue.get(timeout=POLL_INTERVAL)
            except Empty:
                continue
            except ShutDown:
                return None
        return None

    def __settle(self, message: Message):
        with self.__condition:
            if message not in self.__unsettled:
                raise ValueError(f"{message!r} is not awaiting settlement")
            self.__unsettled.remove(message)
            self.__capacity += 1
            self.__condition.notify()

    def __requeue(self, message: Message):
        with suppress(ShutDown):
            self.__queue.put(replace(message, redelivered=True))

    def acknowledge(self, message: Message, /):
        self.__settle(message)

    def recover(self, message: Message, /, *, requeue: bool):
        self.__settle(message)
        if requeue:
            self.__requeue(message)

    def shutdown(self):
        with self.__condition:
            if self.__shutdown:
                return
            self.__shutdown = True
            unsettled = list(self.__unsettled)
            self.__unsettled.clear()
            self.__condition.notify_all()

        for message in unsettled:
            self.__requeue(message)
        if self.__on_shutdown:
            self.__on_shutdown()
