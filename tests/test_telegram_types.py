import json

import pytest

from tgbus.errors import ProtocolError
from tgbus.telegram.types import (
    UpdateKind,
    decode_update,
    decode_updates_response,
    parse_api_response,
)
from tests.fakes import make_update


@pytest.mark.parametrize(
    ("field", "kind"),
    [
        ("message", UpdateKind.MESSAGE),
        ("edited_message", UpdateKind.EDITED_MESSAGE),
        ("callback_query", UpdateKind.CALLBACK_QUERY),
        ("inline_query", UpdateKind.INLINE_QUERY),
    ],
)
def test_decode_update_resolves_kind(field: str, kind: UpdateKind) -> None:
    data = make_update(7, **{field: {"id": "x", "text": "hi"}})

    update = decode_update(data)

    assert update.update_id == 7
    assert update.kind is kind
    assert update.payload is not None
    assert json.loads(update.payload) == {"id": "x", "text": "hi"}
    assert update.raw == data


def test_message_wins_over_callback_query() -> None:
    data = make_update(
        1,
        callback_query={"id": "cb"},
        message={"message_id": 10},
    )

    update = decode_update(data)

    assert update.kind is UpdateKind.MESSAGE
    assert json.loads(update.payload or b"") == {"message_id": 10}


def test_unrecognized_update_is_unknown() -> None:
    data = make_update(3, channel_post={"message_id": 1})

    update = decode_update(data)

    assert update.kind is UpdateKind.UNKNOWN
    assert update.payload is None
    assert update.raw == data


def test_null_field_is_not_populated() -> None:
    update = decode_update(b'{"update_id": 4, "message": null, "inline_query": {"id": "q"}}')
    assert update.kind is UpdateKind.INLINE_QUERY


@pytest.mark.parametrize(
    "data",
    [b"not json", b"[]", b'{"message": {}}', b'{"update_id": "one"}'],
)
def test_malformed_update_raises(data: bytes) -> None:
    with pytest.raises(ProtocolError):
        decode_update(data)


def test_updates_response_keeps_raw_items() -> None:
    first = make_update(1, message={"text": "a"})
    data = b'{"ok": true, "result": [' + first + b', {"bogus": 1}]}'

    items, envelope = decode_updates_response(data)

    assert envelope.ok is True
    assert json.loads(items[0]) == json.loads(first)
    assert json.loads(items[1]) == {"bogus": 1}


def test_updates_response_failure_envelope() -> None:
    data = json.dumps(
        {
            "ok": False,
            "error_code": 429,
            "description": "Too Many Requests: retry after 7",
            "parameters": {"retry_after": 7},
        }
    ).encode()

    items, envelope = decode_updates_response(data)

    assert items == []
    assert envelope.ok is False
    assert envelope.error_code == 429
    assert envelope.retry_after == 7


def test_parse_api_response_rejects_garbage() -> None:
    with pytest.raises(ProtocolError):
        parse_api_response(b"<html>Bad Gateway</html>")


def test_parse_api_response_ok() -> None:
    resp = parse_api_response(b'{"ok": true, "result": true, "description": "Webhook was set"}')
    assert resp.ok is True
    assert resp.retry_after is None
