from __future__ import annotations

import contextlib
import hmac
from collections.abc import Iterator

import anyio
import uvicorn
from fastapi import FastAPI, Header, HTTPException, Request, Response
from fastapi.responses import PlainTextResponse

from ..config import BotIdentity, BotRegistry
from ..errors import (
    ApiCallFailed,
    AuthError,
    ProtocolError,
    TransportError,
    UnknownBotError,
)
from ..logging import get_logger
from ..router import UpdateRouter
from ..telegram.client import BotApi
from ..telegram.types import ALLOWED_UPDATES, decode_update, encode_json, parse_api_response

logger = get_logger(__name__)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"
WEBHOOK_PATH = "/webhook"


class WebhookIngestor:
    def __init__(
        self,
        registry: BotRegistry,
        client: BotApi,
        router: UpdateRouter,
        *,
        base_url: str,
        secret: str | None = None,
        allowed_updates: list[str] | None = None,
    ) -> None:
        self._registry = registry
        self._client = client
        self._router = router
        self._base_url = base_url.rstrip("/")
        self._secret = secret or None
        self._allowed_updates = (
            list(ALLOWED_UPDATES) if allowed_updates is None else allowed_updates
        )

    def webhook_url(self, bot: BotIdentity) -> str:
        return f"{self._base_url}{WEBHOOK_PATH}/{bot.name}"

    async def _call_ok(self, bot: BotIdentity, method: str, params: dict) -> None:
        data = await self._client.call(bot.token, method, encode_json(params))
        try:
            resp = parse_api_response(data)
        except ProtocolError as exc:
            raise ApiCallFailed(f"{method}: {exc}") from exc
        if not resp.ok:
            raise ApiCallFailed(
                f"{method}: {resp.description or f'error_code={resp.error_code}'}"
            )

    async def register(self, bot: BotIdentity) -> None:
        params: dict[str, object] = {
            "url": self.webhook_url(bot),
            "allowed_updates": self._allowed_updates,
        }
        if self._secret is not None:
            params["secret_token"] = self._secret
        await self._call_ok(bot, "setWebhook", params)
        logger.info("webhook.registered", bot=bot.name, url=self.webhook_url(bot))

    async def register_all(self) -> list[str]:
        """Register every bot; failures are logged and the bot is skipped."""
        registered: list[str] = []
        for bot in self._registry:
            try:
                await self.register(bot)
            except TransportError as exc:
                logger.error("webhook.register_failed", bot=bot.name, error=str(exc))
                continue
            registered.append(bot.name)
        return registered

    async def unregister_all(self) -> None:
        for bot in self._registry:
            try:
                await self._call_ok(bot, "deleteWebhook", {})
            except TransportError as exc:
                logger.warning("webhook.delete_failed", bot=bot.name, error=str(exc))
                continue
            logger.info("webhook.deleted", bot=bot.name)

    def check_secret(self, secret_token: str | None) -> None:
        if self._secret is None:
            return
        if not hmac.compare_digest(self._secret, secret_token or ""):
            raise AuthError("invalid webhook secret")

    async def receive(
        self, bot_name: str, body: bytes, secret_token: str | None = None
    ) -> None:
        bot = self._registry.get(bot_name)
        if bot is None:
            raise UnknownBotError(bot_name)
        self.check_secret(secret_token)
        update = decode_update(body)
        await self._router.route(bot, update)


def create_app(ingestor: WebhookIngestor) -> FastAPI:
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/health")
    async def health() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.post(WEBHOOK_PATH + "/{bot_name:path}")
    async def webhook(
        bot_name: str,
        request: Request,
        secret_token: str | None = Header(default=None, alias=SECRET_HEADER),
    ) -> Response:
        if not bot_name:
            raise HTTPException(status_code=400, detail="missing bot name")
        try:
            body = await request.body()
            await ingestor.receive(bot_name, body, secret_token)
        except UnknownBotError:
            raise HTTPException(status_code=404, detail="unknown bot") from None
        except AuthError:
            logger.warning("webhook.unauthorized", bot=bot_name)
            raise HTTPException(status_code=401, detail="unauthorized") from None
        except ProtocolError as exc:
            logger.warning("webhook.bad_update", bot=bot_name, error=str(exc))
            raise HTTPException(status_code=400, detail="bad json") from None
        return Response(status_code=200)

    return app


class _Server(uvicorn.Server):
    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        # Signals are owned by the CLI.
        yield

    def install_signal_handlers(self) -> None:
        pass


async def serve_http(app: FastAPI, *, host: str, port: int) -> None:
    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        lifespan="off",
        log_config=None,
        timeout_graceful_shutdown=5,
    )
    server = _Server(config)
    logger.info("http.listening", host=host, port=port)
    try:
        await server.serve()
    except SystemExit as exc:
        # uvicorn exits the process when it cannot bind.
        raise TransportError(f"HTTP server failed to start on {host}:{port}") from exc
    except anyio.get_cancelled_exc_class():
        if server.started:
            server.should_exit = True
            with anyio.CancelScope(shield=True):
                await server.shutdown()
        raise
