from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import anyio

from ..config import BotIdentity
from ..errors import PollFailed, ProtocolError, TransportError
from ..logging import get_logger
from ..router import UpdateRouter
from ..telegram.client import BotApi
from ..telegram.types import (
    ALLOWED_UPDATES,
    decode_update,
    decode_updates_response,
    parse_api_response,
)

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PollCursor:
    bot_name: str
    offset: int = 0

    def advance(self, update_id: int) -> PollCursor:
        return PollCursor(self.bot_name, max(self.offset, update_id + 1))


class PollIngestor:
    """Long-poll ``getUpdates`` for one bot per ``run`` task.

    The cursor only moves forward after a well-formed batch; failed requests
    are retried with the same offset after a fixed backoff.
    """

    def __init__(
        self,
        client: BotApi,
        router: UpdateRouter,
        *,
        timeout_s: int = 30,
        backoff_s: float = 3.0,
        allowed_updates: list[str] | None = None,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self._client = client
        self._router = router
        self._timeout_s = timeout_s
        self._backoff_s = backoff_s
        self._allowed_updates = (
            list(ALLOWED_UPDATES) if allowed_updates is None else allowed_updates
        )
        self._sleep = sleep

    async def prepare(self, bot: BotIdentity) -> None:
        # getUpdates is refused while a webhook is registered for the bot.
        try:
            data = await self._client.call(bot.token, "deleteWebhook", b"{}")
            resp = parse_api_response(data)
        except (TransportError, ProtocolError) as exc:
            logger.warning("poll.delete_webhook_failed", bot=bot.name, error=str(exc))
            return
        if not resp.ok:
            logger.warning(
                "poll.delete_webhook_failed",
                bot=bot.name,
                error=resp.description,
            )

    async def poll_once(self, bot: BotIdentity, cursor: PollCursor) -> PollCursor:
        try:
            data = await self._client.get_updates(
                bot.token,
                offset=cursor.offset,
                timeout_s=self._timeout_s,
                allowed_updates=self._allowed_updates,
            )
            items, envelope = decode_updates_response(data)
        except (TransportError, ProtocolError) as exc:
            raise PollFailed(str(exc)) from exc
        if not envelope.ok:
            raise PollFailed(
                envelope.description or f"error_code={envelope.error_code}",
                retry_after=envelope.retry_after,
            )

        routed = 0
        for item in items:
            try:
                update = decode_update(item)
            except ProtocolError as exc:
                logger.error("poll.bad_update", bot=bot.name, error=str(exc))
                continue
            cursor = cursor.advance(update.update_id)
            await self._router.route(bot, update)
            routed += 1
        if items and not routed:
            # nothing to advance past
            raise PollFailed("no decodable updates in batch")
        return cursor

    async def run(self, bot: BotIdentity, *, offset: int = 0) -> None:
        cursor = PollCursor(bot.name, offset)
        failures = 0
        logger.info("poll.started", bot=bot.name, offset=offset)
        await self.prepare(bot)
        while True:
            try:
                cursor = await self.poll_once(bot, cursor)
            except PollFailed as exc:
                failures += 1
                delay = max(self._backoff_s, exc.retry_after or 0.0)
                logger.warning(
                    "poll.failed",
                    bot=bot.name,
                    offset=cursor.offset,
                    failures=failures,
                    retry_in=delay,
                    error=exc.reason,
                )
                await self._sleep(delay)
                continue
            except Exception as exc:  # noqa: BLE001
                failures += 1
                logger.exception(
                    "poll.unexpected_error",
                    bot=bot.name,
                    offset=cursor.offset,
                    failures=failures,
                    error_type=exc.__class__.__name__,
                )
                await self._sleep(self._backoff_s)
                continue
            if failures:
                logger.info("poll.recovered", bot=bot.name, failures=failures)
                failures = 0
