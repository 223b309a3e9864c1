from __future__ import annotations

from .bus import Bus
from .config import BotIdentity
from .logging import get_logger
from .subjects import KIND_SUFFIX, UPDATE_SUFFIX, incoming
from .telegram.types import Update

logger = get_logger(__name__)


class UpdateRouter:
    """Publish decoded updates under the bot's ``in`` subjects.

    Every update goes to ``<prefix>.<bot>.in.update``; recognized kinds are
    also published, payload only, to their type-scoped subject.
    """

    def __init__(self, bus: Bus, *, prefix: str) -> None:
        self._bus = bus
        self._prefix = prefix

    def subjects_for(self, bot: BotIdentity, update: Update) -> list[tuple[str, bytes]]:
        out = [(incoming(self._prefix, bot.name, UPDATE_SUFFIX), update.raw)]
        suffix = KIND_SUFFIX.get(update.kind)
        if suffix is not None and update.payload is not None:
            out.append((incoming(self._prefix, bot.name, suffix), update.payload))
        return out

    async def route(self, bot: BotIdentity, update: Update) -> int:
        published = 0
        for subject, data in self.subjects_for(bot, update):
            try:
                await self._bus.publish(subject, data)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "route.publish_failed",
                    bot=bot.name,
                    subject=subject,
                    update_id=update.update_id,
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                )
                continue
            published += 1
        logger.info(
            "route.update",
            bot=bot.name,
            update_id=update.update_id,
            kind=update.kind.value,
            published=published,
        )
        return published
