import pytest

from mdb.message import BytesMessage
from mdb.message import MapMessage
from mdb.message import TextMessage
from mdb.message import bytes_message
from mdb.message import content_type
from mdb.message import from_wire
from mdb.message import map_message
from mdb.message import text_message


def test_text_message_encodes_with_charset():
    message = text_message("café", charset="latin-1")
    assert message.body == "café".encode("latin-1")
    assert message.text == "café"


def test_messages_compare_by_identity():
    first = text_message("same")
    second = text_message("same")
    assert first != second
    assert first.id != second.id
    assert len({first, second}) == 2


def test_map_message_requires_an_object():
    assert map_message({"a": 1}).map == {"a": 1}
    with pytest.raises(ValueError, match="not an object"):
        MapMessage(body=b"[1, 2]").map


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        (text_message("x"), "text/plain"),
        (map_message({}), "application/json"),
        (bytes_message(b"x"), "application/octet-stream"),
    ],
)
def test_content_type(message, expected):
    assert content_type(message) == expected


@pytest.mark.parametrize(
    ("wire_type", "expected"),
    [
        ("text/plain", TextMessage),
        ("text/xml; charset=utf-8", TextMessage),
        ("application/json", MapMessage),
        ("application/octet-stream", BytesMessage),
        (None, BytesMessage),
    ],
)
def test_from_wire_picks_message_class(wire_type, expected):
    message = from_wire(b"{}", content_type=wire_type, destination="q")
    assert type(message) is expected
    assert message.destination == "q"


def test_from_wire_uses_charset():
    message = from_wire(
        "naïve".encode("utf-16"), content_type="text/plain", charset="utf-16"
    )
    assert message.text == "naïve"


def test_message_ids_use_the_broker_form():
    message = text_message("hello")
    assert message.id.startswith("ID:")
    assert len(message.id) == len("ID:") + 24
