from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

import msgspec

from ..errors import ProtocolError

__all__ = [
    "ALLOWED_UPDATES",
    "ApiResponse",
    "Update",
    "UpdateKind",
    "decode_update",
    "decode_updates_response",
    "encode_json",
    "parse_api_response",
]


class UpdateKind(str, enum.Enum):
    MESSAGE = "message"
    EDITED_MESSAGE = "edited_message"
    CALLBACK_QUERY = "callback_query"
    INLINE_QUERY = "inline_query"
    UNKNOWN = "unknown"


# Precedence order when more than one variant field is populated.
_VARIANTS = (
    UpdateKind.MESSAGE,
    UpdateKind.EDITED_MESSAGE,
    UpdateKind.CALLBACK_QUERY,
    UpdateKind.INLINE_QUERY,
)

ALLOWED_UPDATES = [kind.value for kind in _VARIANTS]


@dataclass(frozen=True, slots=True)
class Update:
    update_id: int
    kind: UpdateKind
    payload: bytes | None
    raw: bytes


class _WireUpdate(msgspec.Struct, forbid_unknown_fields=False):
    update_id: int
    message: msgspec.Raw = msgspec.field(default_factory=msgspec.Raw)
    edited_message: msgspec.Raw = msgspec.field(default_factory=msgspec.Raw)
    callback_query: msgspec.Raw = msgspec.field(default_factory=msgspec.Raw)
    inline_query: msgspec.Raw = msgspec.field(default_factory=msgspec.Raw)


class _ResponseParameters(msgspec.Struct, forbid_unknown_fields=False):
    retry_after: float | None = None


class ApiResponse(msgspec.Struct, forbid_unknown_fields=False):
    ok: bool
    result: msgspec.Raw = msgspec.field(default_factory=msgspec.Raw)
    description: str | None = None
    error_code: int | None = None
    parameters: _ResponseParameters | None = None

    @property
    def retry_after(self) -> float | None:
        if self.parameters is None:
            return None
        return self.parameters.retry_after


class _UpdatesResponse(msgspec.Struct, forbid_unknown_fields=False):
    ok: bool
    result: list[msgspec.Raw] = msgspec.field(default_factory=list)
    description: str | None = None
    error_code: int | None = None
    parameters: _ResponseParameters | None = None


_UPDATE_DECODER = msgspec.json.Decoder(_WireUpdate)
_RESPONSE_DECODER = msgspec.json.Decoder(ApiResponse)
_UPDATES_DECODER = msgspec.json.Decoder(_UpdatesResponse)


def _populated(raw: msgspec.Raw) -> bool:
    return len(raw) > 0 and bytes(raw) != b"null"


def decode_update(data: bytes) -> Update:
    """Decode one update and resolve its variant once, by precedence."""
    try:
        wire = _UPDATE_DECODER.decode(data)
    except msgspec.DecodeError as exc:
        raise ProtocolError(f"bad update: {exc}") from exc
    for kind in _VARIANTS:
        value: msgspec.Raw = getattr(wire, kind.value)
        if _populated(value):
            return Update(
                update_id=wire.update_id,
                kind=kind,
                payload=bytes(value),
                raw=bytes(data),
            )
    return Update(
        update_id=wire.update_id,
        kind=UpdateKind.UNKNOWN,
        payload=None,
        raw=bytes(data),
    )


def parse_api_response(data: bytes) -> ApiResponse:
    try:
        return _RESPONSE_DECODER.decode(data)
    except msgspec.DecodeError as exc:
        raise ProtocolError(f"bad api response: {exc}") from exc


def decode_updates_response(data: bytes) -> tuple[list[bytes], ApiResponse]:
    """Split a ``getUpdates`` response into raw update bodies and its envelope.

    Updates are kept as undecoded bytes so a single malformed entry does not
    poison the rest of the batch.
    """
    try:
        resp = _UPDATES_DECODER.decode(data)
    except msgspec.DecodeError as exc:
        raise ProtocolError(f"bad getUpdates response: {exc}") from exc
    envelope = ApiResponse(
        ok=resp.ok,
        description=resp.description,
        error_code=resp.error_code,
        parameters=resp.parameters,
    )
    return [bytes(item) for item in resp.result], envelope


def encode_json(value: Any) -> bytes:
    return msgspec.json.encode(value)
