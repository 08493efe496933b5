import threading
from collections.abc import Callable
from queue import Empty
from queue import Queue
from threading import Barrier
from threading import Lock

import pytest

from mdb.activation import ActivationConfig
from mdb.activation import Destination
from mdb.bean import Bean
from mdb.bus import Bus
from mdb.deployment import Deployment
from mdb.event import BeanActivated
from mdb.event import BeanDeactivated
from mdb.event import Event
from mdb.event import MessageAcknowledged
from mdb.event import MessageDelivered
from mdb.event import MessageDiscarded
from mdb.event import MessageFailed
from mdb.event import MessageRedelivered
from mdb.listener import MessageListener
from mdb.message import Message
from mdb.message import text_message
from mdb.stub.broker import StubBroker

TIMEOUT = 5
QUEUE = Destination("work")


def create_bean(handler: Callable[[Message], None], **properties: str) -> Bean:
    class Listener(MessageListener):
        def on_message(self, message, /):
            handler(message)

    return Bean(
        "worker",
        Listener,
        ActivationConfig.parse({"destination": QUEUE.name, **properties}),
    )


@pytest.fixture
def broker():
    broker = StubBroker()
    yield broker
    broker.shutdown()


@pytest.fixture
def bus():
    bus = Bus()
    yield bus
    bus.shutdown()


def until[E: Event](events: Queue[Event], kind: type[E]) -> list[Event]:
    """Collect events up to and including the first one of the given kind."""
    collected = []
    while True:
        event = events.get(timeout=TIMEOUT)
        collected.append(event)
        if isinstance(event, kind):
            return collected


@pytest.mark.timeout(10)
def test_delivers_and_acknowledges(broker, bus):
    received = Queue[Message]()
    deployment = Deployment(create_bean(received.put), broker, bus)
    events = bus.subscribe({Event})

    deployment.start()
    try:
        sent = text_message("hello")
        broker.send(sent, destination=QUEUE)
        message = received.get(timeout=TIMEOUT)
        collected = until(events, MessageAcknowledged)
    finally:
        deployment.stop()

    assert message.id == sent.id
    assert message.text == "hello"
    assert [type(event) for event in collected] == [
        BeanActivated,
        MessageDelivered,
        MessageAcknowledged,
    ]
    assert collected[-1].message_id == sent.id
    assert isinstance(events.get(timeout=TIMEOUT), BeanDeactivated)


@pytest.mark.timeout(10)
def test_failed_message_is_acknowledged_by_default(broker, bus):
    def fail(message):
        raise RuntimeError("boom")

    deployment = Deployment(create_bean(fail), broker, bus)
    events = bus.subscribe({MessageDelivered})
    failures = bus.subscribe({MessageFailed, MessageAcknowledged})

    deployment.start()
    try:
        broker.send(text_message("bad"), destination=QUEUE)
        collected = until(failures, MessageAcknowledged)
        events.get(timeout=TIMEOUT)
        with pytest.raises(Empty):
            events.get(timeout=0.3)
    finally:
        deployment.stop()

    assert [type(event) for event in collected] == [MessageFailed, MessageAcknowledged]
    assert str(collected[0].exception) == "boom"


@pytest.mark.timeout(10)
def test_failed_message_is_redelivered_once(broker, bus):
    def fail(message):
        raise RuntimeError("boom")

    deployment = Deployment(
        create_bean(fail, redeliverOnError="true"), broker, bus
    )
    events = bus.subscribe({Event})

    deployment.start()
    try:
        broker.send(text_message("bad"), destination=QUEUE)
        collected = until(events, MessageDiscarded)
    finally:
        deployment.stop()

    assert [type(event) for event in collected] == [
        BeanActivated,
        MessageDelivered,
        MessageFailed,
        MessageRedelivered,
        MessageDelivered,
        MessageFailed,
        MessageDiscarded,
    ]


@pytest.mark.timeout(10)
def test_sessions_process_messages_concurrently(broker, bus):
    barrier = Barrier(3, timeout=TIMEOUT)
    deployment = Deployment(
        create_bean(lambda message: barrier.wait(), maxSession="3"), broker, bus
    )
    events = bus.subscribe({MessageAcknowledged, MessageFailed})

    deployment.start()
    try:
        for i in range(3):
            broker.send(text_message(f"message {i}"), destination=QUEUE)
        collected = [events.get(timeout=TIMEOUT) for _ in range(3)]
    finally:
        deployment.stop()

    assert all(isinstance(event, MessageAcknowledged) for event in collected)


@pytest.mark.timeout(10)
def test_listener_lifecycle(broker, bus):
    lock = Lock()
    calls = []

    class Listener(MessageListener):
        def setup(self):
            with lock:
                calls.append("setup")

        def on_message(self, message, /):
            pass

        def teardown(self):
            with lock:
                calls.append("teardown")

    bean = Bean(
        "lifecycle",
        Listener,
        ActivationConfig.parse({"destination": QUEUE.name, "maxSession": "2"}),
    )
    deployment = Deployment(bean, broker, bus)
    deployment.start()
    deployment.stop()

    assert sorted(calls) == ["setup", "setup", "teardown", "teardown"]


def test_start_twice_is_rejected(broker, bus):
    deployment = Deployment(create_bean(lambda message: None), broker, bus)
    deployment.start()
    try:
        with pytest.raises(RuntimeError, match="already deployed"):
            deployment.start()
    finally:
        deployment.stop()


def test_stop_is_idempotent(broker, bus):
    deployment = Deployment(create_bean(lambda message: None), broker, bus)
    deployment.stop()
    deployment.start()
    deployment.stop()
    deployment.stop()
    assert all(future.done() for future in deployment.futures)


def test_threads_are_named_after_the_bean(broker, bus):
    deployment = Deployment(
        create_bean(lambda message: None, maxSession="2"), broker, bus
    )
    deployment.start()
    try:
        names = {thread.name for thread in threading.enumerate()}
    finally:
        deployment.stop()

    assert {
        "mdb-worker-receiver",
        "mdb-worker-runner-1",
        "mdb-worker-runner-2",
    } <= names
