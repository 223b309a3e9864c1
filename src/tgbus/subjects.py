from __future__ import annotations

from .telegram.types import UpdateKind

RAW_METHOD = "raw"

UPDATE_SUFFIX = "update"
KIND_SUFFIX = {
    UpdateKind.MESSAGE: "message",
    UpdateKind.EDITED_MESSAGE: "edited",
    UpdateKind.CALLBACK_QUERY: "callback",
    UpdateKind.INLINE_QUERY: "inline",
}

# <prefix>.<bot>.out.<method>
_MIN_OUT_SEGMENTS = 4


def incoming(prefix: str, bot: str, suffix: str) -> str:
    return f"{prefix}.{bot}.in.{suffix}"


def outgoing(prefix: str, bot: str, method: str) -> str:
    return f"{prefix}.{bot}.out.{method}"


def outgoing_pattern(prefix: str, bot: str) -> str:
    return f"{prefix}.{bot}.out.>"


def method_from_subject(subject: str) -> str | None:
    parts = subject.split(".")
    if len(parts) < _MIN_OUT_SEGMENTS or not parts[-1]:
        return None
    return parts[-1]
