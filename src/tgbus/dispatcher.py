from __future__ import annotations

import re
from dataclasses import dataclass

import msgspec

from .bus import Bus, BusMessage
from .config import BotIdentity
from .errors import ProtocolError, TransportError
from .logging import get_logger
from .subjects import RAW_METHOD, method_from_subject, outgoing_pattern
from .telegram.client import BotApi
from .telegram.types import encode_json

logger = get_logger(__name__)

_EMPTY_PARAMS = b"{}"
_API_METHOD_RE = re.compile(r"[A-Za-z0-9_]+")


@dataclass(frozen=True, slots=True)
class OutgoingCommand:
    api_method: str
    payload: bytes
    reply_to: str | None = None


class RawRequest(msgspec.Struct, forbid_unknown_fields=False):
    method: str
    params: msgspec.Raw = msgspec.field(default_factory=msgspec.Raw)


_RAW_DECODER = msgspec.json.Decoder(RawRequest)


def parse_command(message: BusMessage) -> OutgoingCommand:
    """Turn a bus message on ``<prefix>.<bot>.out.<method>`` into a command.

    ``out.raw`` carries ``{"method": ..., "params": ...}`` in the body; any
    other method name is taken from the subject and the body is sent as is.
    """
    method = method_from_subject(message.subject)
    if method is None:
        raise ProtocolError("invalid subject format")
    if method != RAW_METHOD:
        if _API_METHOD_RE.fullmatch(method) is None:
            raise ProtocolError("invalid method")
        return OutgoingCommand(
            api_method=method, payload=message.data, reply_to=message.reply_to
        )
    try:
        raw = _RAW_DECODER.decode(message.data)
    except msgspec.DecodeError as exc:
        raise ProtocolError(f"bad raw request: {exc}") from exc
    api_method = raw.method.strip()
    if not api_method:
        raise ProtocolError("bad raw request: empty method")
    if _API_METHOD_RE.fullmatch(api_method) is None:
        raise ProtocolError("bad raw request: invalid method")
    params = bytes(raw.params)
    if not params or params == b"null":
        params = _EMPTY_PARAMS
    return OutgoingCommand(
        api_method=api_method, payload=params, reply_to=message.reply_to
    )


def error_envelope(description: str) -> bytes:
    return encode_json({"error": description})


class OutgoingDispatcher:
    def __init__(self, bus: Bus, client: BotApi, *, prefix: str) -> None:
        self._bus = bus
        self._client = client
        self._prefix = prefix

    async def subscribe(self, bot: BotIdentity) -> str:
        subject = outgoing_pattern(self._prefix, bot.name)

        async def handler(message: BusMessage) -> None:
            await self.handle(bot, message)

        await self._bus.subscribe(subject, handler)
        logger.info("dispatch.subscribed", bot=bot.name, subject=subject)
        return subject

    async def handle(self, bot: BotIdentity, message: BusMessage) -> None:
        try:
            command = parse_command(message)
        except ProtocolError as exc:
            logger.warning(
                "dispatch.bad_command",
                bot=bot.name,
                subject=message.subject,
                error=str(exc),
            )
            await self._reply(bot, message.reply_to, error_envelope(str(exc)))
            return

        try:
            result = await self._client.call(
                bot.token, command.api_method, command.payload
            )
        except TransportError as exc:
            logger.error(
                "dispatch.api_error",
                bot=bot.name,
                method=command.api_method,
                error=str(exc),
            )
            await self._reply(
                bot, command.reply_to, error_envelope(f"API error: {exc}")
            )
            return

        logger.info(
            "dispatch.ok",
            bot=bot.name,
            method=command.api_method,
            replied=command.reply_to is not None,
        )
        await self._reply(bot, command.reply_to, result)

    async def _reply(self, bot: BotIdentity, reply_to: str | None, data: bytes) -> None:
        if reply_to is None:
            return
        try:
            await self._bus.publish(reply_to, data)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "dispatch.reply_failed",
                bot=bot.name,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
