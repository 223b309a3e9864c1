from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

import nats
import nats.errors

from .errors import TransportError
from .logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class BusMessage:
    subject: str
    data: bytes
    reply_to: str | None = None


MessageHandler = Callable[[BusMessage], Awaitable[None]]


class Bus(Protocol):
    async def publish(self, subject: str, data: bytes) -> None: ...

    async def subscribe(self, subject: str, handler: MessageHandler) -> None: ...

    async def close(self) -> None: ...


def to_bus_message(msg: Any) -> BusMessage:
    return BusMessage(
        subject=msg.subject,
        data=bytes(msg.data),
        reply_to=msg.reply or None,
    )


class NatsBus:
    def __init__(self, nc: Any) -> None:
        self._nc = nc

    @classmethod
    async def connect(cls, url: str, *, name: str = "tgbus") -> NatsBus:
        async def on_error(exc: Exception) -> None:
            logger.error(
                "bus.error", error=str(exc), error_type=exc.__class__.__name__
            )

        async def on_disconnected() -> None:
            logger.warning("bus.disconnected")

        async def on_reconnected() -> None:
            logger.info("bus.reconnected")

        try:
            nc = await nats.connect(
                servers=[url],
                name=name,
                error_cb=on_error,
                disconnected_cb=on_disconnected,
                reconnected_cb=on_reconnected,
            )
        except Exception as exc:  # noqa: BLE001
            raise TransportError(f"NATS connect {url}: {exc}") from exc
        logger.info("bus.connected", url=url)
        return cls(nc)

    async def publish(self, subject: str, data: bytes) -> None:
        try:
            await self._nc.publish(subject, data)
        except nats.errors.Error as exc:
            raise TransportError(f"publish {subject}: {exc}") from exc

    async def subscribe(self, subject: str, handler: MessageHandler) -> None:
        async def callback(msg: Any) -> None:
            await handler(to_bus_message(msg))

        try:
            await self._nc.subscribe(subject, cb=callback)
        except nats.errors.Error as exc:
            raise TransportError(f"subscribe {subject}: {exc}") from exc

    async def request(self, subject: str, data: bytes, *, timeout_s: float) -> bytes:
        try:
            msg = await self._nc.request(subject, data, timeout=timeout_s)
        except nats.errors.Error as exc:
            raise TransportError(f"request {subject}: {exc!r}") from exc
        return bytes(msg.data)

    async def close(self) -> None:
        if self._nc.is_closed:
            return
        try:
            await self._nc.drain()
        except nats.errors.Error as exc:
            logger.warning("bus.drain_failed", error=str(exc))
            await self._nc.close()
