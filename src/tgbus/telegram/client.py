from __future__ import annotations

from typing import Protocol

import httpx

from ..errors import ApiCallFailed
from ..logging import get_logger, redact_token
from .types import encode_json

logger = get_logger(__name__)

API_BASE_URL = "https://api.telegram.org"

# Extra HTTP time on top of the server-side long-poll wait.
_POLL_TIMEOUT_MARGIN_S = 10.0


class BotApi(Protocol):
    async def call(self, token: str, method: str, payload: bytes) -> bytes: ...

    async def get_updates(
        self,
        token: str,
        offset: int,
        timeout_s: int,
        allowed_updates: list[str] | None = None,
    ) -> bytes: ...

    async def close(self) -> None: ...


class TelegramClient:
    """One HTTP request per Bot API method; responses are returned unparsed.

    The client holds no per-bot state: the token is supplied on every call.
    """

    def __init__(
        self,
        *,
        timeout_s: float = 30,
        base_url: str = API_BASE_URL,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _url(self, token: str, method: str) -> str:
        if not token:
            raise ValueError("Telegram token is empty")
        return f"{self._base}/bot{token}/{method}"

    async def call(self, token: str, method: str, payload: bytes) -> bytes:
        logger.debug("telegram.request", method=method, size=len(payload))
        try:
            resp = await self._client.post(
                self._url(token, method),
                content=payload,
                headers={"Content-Type": "application/json"},
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise _failed(method, exc) from None
        logger.debug("telegram.response", method=method, status=resp.status_code)
        return resp.content

    async def get_updates(
        self,
        token: str,
        offset: int,
        timeout_s: int,
        allowed_updates: list[str] | None = None,
    ) -> bytes:
        params: dict[str, str | int] = {"offset": offset, "timeout": timeout_s}
        if allowed_updates is not None:
            params["allowed_updates"] = encode_json(allowed_updates).decode()
        try:
            resp = await self._client.get(
                self._url(token, "getUpdates"),
                params=params,
                timeout=timeout_s + _POLL_TIMEOUT_MARGIN_S,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise _failed("getUpdates", exc) from None
        return resp.content


def _failed(method: str, exc: httpx.HTTPError | httpx.InvalidURL) -> ApiCallFailed:
    stage = "read response" if isinstance(exc, httpx.ReadError) else "request"
    detail = str(exc) or exc.__class__.__name__
    reason = redact_token(f"{method} {stage}: {detail}")
    logger.warning(
        "telegram.network_error",
        method=method,
        error=reason,
        error_type=exc.__class__.__name__,
    )
    return ApiCallFailed(reason)
