from __future__ import annotations

from collections.abc import Awaitable, Callable

import anyio
from anyio.abc import TaskStatus
from fastapi import FastAPI

from .bus import Bus
from .config import BotRegistry, GatewaySettings
from .dispatcher import OutgoingDispatcher
from .errors import TransportError
from .ingest.poll import PollIngestor
from .ingest.webhook import WebhookIngestor, create_app, serve_http
from .logging import get_logger
from .router import UpdateRouter
from .telegram.client import BotApi

logger = get_logger(__name__)

HttpServe = Callable[[FastAPI], Awaitable[None]]


class Gateway:
    """Wire ingestion and outgoing dispatch for every configured bot.

    ``run`` blocks until cancelled; shutdown work (webhook removal, bus drain,
    client close) runs shielded from that cancellation.
    """

    def __init__(
        self,
        settings: GatewaySettings,
        registry: BotRegistry,
        bus: Bus,
        client: BotApi,
        *,
        serve: HttpServe | None = None,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self._bus = bus
        self._client = client
        self._serve = serve
        self.router = UpdateRouter(bus, prefix=settings.subject_prefix)
        self.dispatcher = OutgoingDispatcher(
            bus, client, prefix=settings.subject_prefix
        )
        self.webhook: WebhookIngestor | None = None
        self.poller: PollIngestor | None = None
        if settings.mode == "webhook":
            assert settings.webhook_base_url is not None
            self.webhook = WebhookIngestor(
                registry,
                client,
                self.router,
                base_url=settings.webhook_base_url,
                secret=settings.webhook_secret,
            )
        else:
            self.poller = PollIngestor(
                client,
                self.router,
                timeout_s=settings.poll_timeout_s,
                backoff_s=settings.poll_backoff_s,
                sleep=sleep,
            )

    async def _serve_http(self, app: FastAPI) -> None:
        if self._serve is not None:
            await self._serve(app)
            return
        await serve_http(app, host=self.settings.host, port=self.settings.port)

    async def start(self) -> None:
        logger.info(
            "gateway.starting",
            mode=self.settings.mode,
            bots=list(self.registry.names),
        )
        for bot in self.registry:
            await self.dispatcher.subscribe(bot)
        if self.webhook is not None:
            registered = await self.webhook.register_all()
            if not registered:
                raise TransportError("no webhook could be registered")

    async def run(
        self, *, task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED
    ) -> None:
        try:
            await self.start()
            async with anyio.create_task_group() as tg:
                if self.webhook is not None:
                    tg.start_soon(self._serve_http, create_app(self.webhook))
                else:
                    assert self.poller is not None
                    for bot in self.registry:
                        tg.start_soon(self.poller.run, bot, name=f"poll:{bot.name}")
                task_status.started()
        finally:
            with anyio.CancelScope(shield=True):
                await self.shutdown()

    async def shutdown(self) -> None:
        logger.info("gateway.stopping")
        if self.webhook is not None:
            await self.webhook.unregister_all()
        try:
            await self._bus.close()
        except Exception as exc:  # noqa: BLE001
            logger.warning("gateway.bus_close_failed", error=str(exc))
        await self._client.close()
        logger.info("gateway.stopped")
