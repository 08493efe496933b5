import pytest

from mdb.container import Container
from mdb.event import MessageAcknowledged
from mdb.message import TextMessage
from mdb.message import bytes_message
from mdb.message import text_message
from mdb.samples import testbean
from mdb.stub.broker import StubBroker

TIMEOUT = 5


def test_prints_text_messages(capsys):
    testbean.TestMessageBean().on_message(text_message("hello"))
    assert capsys.readouterr().out == "MDB RECEIVED MESSAGE: hello\n"


def test_prints_type_of_other_messages(capsys):
    testbean.TestMessageBean().on_message(bytes_message(b"\x00"))
    assert capsys.readouterr().out == "MDB RECEIVED NON-TEXT MESSAGE: BytesMessage\n"


def test_reports_errors(capsys):
    testbean.TestMessageBean().on_message(TextMessage(body=b"\xff"))
    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err.startswith("MDB ERROR: ")


@pytest.mark.timeout(10)
def test_integration(capsys):
    mq = StubBroker()
    container = Container(
        broker=StubBroker(),
        connection_factories={"jms/MQConnectionFactory": mq},
    )
    events = container.subscribe({MessageAcknowledged})
    try:
        container.deploy(container.bean("TestMessageBean"))
        for body in ["hello", b"\x00"]:
            container.send(
                "DEV.QUEUE.1", body, connection_factory="jms/MQConnectionFactory"
            )
        for _ in range(2):
            events.get(timeout=TIMEOUT)
    finally:
        container.unsubscribe(events)
        container.shutdown()

    out = capsys.readouterr().out
    assert "MDB RECEIVED MESSAGE: hello\n" in out
    assert "MDB RECEIVED NON-TEXT MESSAGE: BytesMessage\n" in out
