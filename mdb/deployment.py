import logging
from concurrent.futures import Future
from contextlib import suppress
from queue import Queue
from queue import ShutDown
from threading import Lock

from .bean import Bean
from .broker import Broker
from .bus import Bus
from .event import BeanActivated
from .event import BeanDeactivated
from .event import MessageAcknowledged
from .event import MessageDelivered
from .event import MessageDiscarded
from .event import MessageFailed
from .event import MessageRedelivered
from .listener import MessageListener
from .message import Message
from .receiver import Receiver
from .thread import Thread

logger = logging.getLogger(__name__)


class Deployment:
    """The running activation of a message-driven bean.

    A receiver thread keeps the broker subscription active and hands
    messages to a pool of runner threads. Each runner owns one listener
    instance, so the pool size is the bean's concurrency.
    """

    def __init__(self, bean: Bean, broker: Broker, bus: Bus):
        self.__bean = bean
        self.__broker = broker
        self.__bus = bus
        self.__messages = Queue[Message]()
        self.__receiver: Receiver | None = None
        self.__lock = Lock()
        self.__started = False
        self.__stopped = False

        concurrency = bean.activation.concurrency
        self.__receiver_thread = Thread(self.__receive, name=f"{bean.name}-receiver")
        self.__runner_threads = [
            Thread(self.__run, name=f"{bean.name}-runner-{i + 1}")
            for i in range(concurrency)
        ]

    @property
    def bean(self) -> Bean:
        return self.__bean

    @property
    def futures(self) -> list[Future]:
        """The futures of every thread of the deployment."""
        return [self.__receiver_thread.future] + [
            thread.future for thread in self.__runner_threads
        ]

    def start(self):
        activation = self.__bean.activation
        with self.__lock:
            if self.__started:
                raise RuntimeError(f"{self.__bean!r} is already deployed")

            # Subscribe before any thread starts, so a failure is raised here
            self.__receiver = self.__broker.receive(
                activation.destination,
                concurrency=activation.concurrency,
                subscription=activation.subscription,
            )
            self.__started = True
            for thread in self.__runner_threads:
                thread.start()
            self.__receiver_thread.start()

        logger.info(
            "Activated message-driven bean %s on %s with %d session(s)",
            self.__bean.name,
            activation.destination,
            activation.concurrency,
        )
        self.__bus.publish(
            BeanActivated(
                bean=self.__bean.name, destination=str(activation.destination)
            )
        )

    def __receive(self):
        """Put messages from the receiver onto the runner queue."""
        assert self.__receiver is not None
        for message in self.__receiver:
            with suppress(ShutDown):
                self.__messages.put(message)

    def __run(self):
        """Deliver messages to a listener instance until stopped."""
        listener = self.__bean.create()
        listener.setup()
        try:
            while True:
                try:
                    message = self.__messages.get()
                except ShutDown:
                    break
                self.__deliver(listener, message)
        finally:
            listener.teardown()

    def __deliver(self, listener: MessageListener, message: Message):
        assert self.__receiver is not None
        name = self.__bean.name
        self.__bus.publish(MessageDelivered(bean=name, message_id=message.id))

        try:
            listener.on_message(message)
        except Exception as exception:
            logger.exception(
                "Message-driven bean %s failed to process %r", name, message
            )
            self.__bus.publish(
                MessageFailed(bean=name, message_id=message.id, exception=exception)
            )
        else:
            self.__receiver.acknowledge(message)
            self.__bus.publish(MessageAcknowledged(bean=name, message_id=message.id))
            return

        if not self.__bean.activation.redeliver:
            self.__receiver.acknowledge(message)
            self.__bus.publish(MessageAcknowledged(bean=name, message_id=message.id))
        elif message.redelivered:
            logger.error("Discarding %r after failed redelivery", message)
            self.__receiver.recover(message, requeue=False)
            self.__bus.publish(MessageDiscarded(bean=name, message_id=message.id))
        else:
            self.__receiver.recover(message, requeue=True)
            self.__bus.publish(MessageRedelivered(bean=name, message_id=message.id))

    def stop(self):
        """Stop delivering messages and release the subscription.

        Messages that were received but not yet delivered are returned to
        the broker.
        """
        with self.__lock:
            if not self.__started or self.__stopped:
                return
            self.__stopped = True

        self.__messages.shutdown(immediate=True)
        for thread in self.__runner_threads:
            thread.join()
        assert self.__receiver is not None
        self.__receiver.shutdown()
        self.__receiver_thread.join()

        logger.info("Deactivated message-driven bean %s", self.__bean.name)
        self.__bus.publish(
            BeanDeactivated(
                bean=self.__bean.name,
                destination=str(self.__bean.activation.destination),
            )
        )
