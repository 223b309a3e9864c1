from __future__ import annotations

import os
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic import field_validator, model_validator

from .errors import ConfigError

# Environment variable names
ENV_BOT_PREFIX = "BOT_"
ENV_NATS_URL = "NATS_URL"
ENV_MODE = "GATEWAY_MODE"
ENV_WEBHOOK_BASE_URL = "WEBHOOK_BASE_URL"
ENV_WEBHOOK_SECRET = "WEBHOOK_SECRET"
ENV_HOST = "HOST"
ENV_PORT = "PORT"
ENV_SUBJECT_PREFIX = "SUBJECT_PREFIX"
ENV_POLL_TIMEOUT = "POLL_TIMEOUT"
ENV_POLL_BACKOFF = "POLL_BACKOFF"

DEFAULT_NATS_URL = "nats://localhost:4222"

_FIELD_ENV = {
    "nats_url": ENV_NATS_URL,
    "mode": ENV_MODE,
    "webhook_base_url": ENV_WEBHOOK_BASE_URL,
    "webhook_secret": ENV_WEBHOOK_SECRET,
    "host": ENV_HOST,
    "port": ENV_PORT,
    "subject_prefix": ENV_SUBJECT_PREFIX,
    "poll_timeout_s": ENV_POLL_TIMEOUT,
    "poll_backoff_s": ENV_POLL_BACKOFF,
}

_BOT_NAME_RE = re.compile(r"[a-z0-9_-]+")
_SUBJECT_TOKEN_RE = re.compile(r"[^\s.*>]+")

Mode = Literal["poll", "webhook"]


def normalize_bot_name(raw: str) -> str:
    return raw.strip().lower()


def is_subject_token(value: str) -> bool:
    return _SUBJECT_TOKEN_RE.fullmatch(value) is not None


@dataclass(frozen=True, slots=True)
class BotIdentity:
    name: str
    token: str = field(repr=False)


def discover_bots(environ: Mapping[str, str] | None = None) -> tuple[BotIdentity, ...]:
    """Collect bot identities from ``BOT_<NAME>=<token>`` variables.

    Names are lower-cased; two keys that normalize to the same name are
    rejected instead of letting environment order decide the winner.
    """
    env = os.environ if environ is None else environ
    keys_by_name: dict[str, str] = {}
    bots: list[BotIdentity] = []
    for key, value in env.items():
        if not key.startswith(ENV_BOT_PREFIX):
            continue
        token = value.strip()
        if not token:
            continue
        name = normalize_bot_name(key[len(ENV_BOT_PREFIX) :])
        if _BOT_NAME_RE.fullmatch(name) is None:
            raise ConfigError(
                f"Invalid bot name {name!r} from {key}; "
                "expected letters, digits, '_' or '-'."
            )
        if name in keys_by_name:
            raise ConfigError(
                f"Bot name {name!r} is configured twice "
                f"({keys_by_name[name]} and {key})."
            )
        keys_by_name[name] = key
        bots.append(BotIdentity(name=name, token=token))
    if not bots:
        raise ConfigError(
            f"No bots configured. Set {ENV_BOT_PREFIX}<NAME>=<token> "
            "environment variables."
        )
    return tuple(sorted(bots, key=lambda bot: bot.name))


class BotRegistry:
    """Immutable name -> identity lookup, iterated in name order."""

    __slots__ = ("_bots",)

    def __init__(self, bots: Iterable[BotIdentity]) -> None:
        by_name: dict[str, BotIdentity] = {}
        for bot in bots:
            if bot.name in by_name:
                raise ConfigError(f"Bot name {bot.name!r} is configured twice.")
            by_name[bot.name] = bot
        self._bots = dict(sorted(by_name.items()))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BotRegistry:
        return cls(discover_bots(environ))

    def get(self, name: str) -> BotIdentity | None:
        return self._bots.get(name)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._bots)

    def __iter__(self) -> Iterator[BotIdentity]:
        return iter(self._bots.values())

    def __len__(self) -> int:
        return len(self._bots)

    def __contains__(self, name: object) -> bool:
        return name in self._bots

    def __repr__(self) -> str:
        return f"BotRegistry(names={list(self._bots)!r})"


class GatewaySettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    nats_url: str = DEFAULT_NATS_URL
    mode: Mode = "poll"
    webhook_base_url: str | None = None
    webhook_secret: str | None = Field(default=None, repr=False)
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    subject_prefix: str = "telegram"
    poll_timeout_s: int = Field(default=30, ge=0)
    poll_backoff_s: float = Field(default=3.0, gt=0)

    @field_validator("webhook_base_url", "webhook_secret")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @field_validator("webhook_base_url")
    @classmethod
    def _trim_base_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        if not value.startswith(("http://", "https://")):
            raise ValueError("expected an http(s) URL")
        return value.rstrip("/")

    @field_validator("subject_prefix")
    @classmethod
    def _check_prefix(cls, value: str) -> str:
        if not value or not all(is_subject_token(part) for part in value.split(".")):
            raise ValueError("expected dot-separated subject tokens without wildcards")
        return value

    @model_validator(mode="after")
    def _check_webhook(self) -> GatewaySettings:
        if self.mode == "webhook" and self.webhook_base_url is None:
            raise ValueError(f"{ENV_WEBHOOK_BASE_URL} is required in webhook mode")
        return self


def _format_validation_error(exc: ValidationError) -> str:
    parts: list[str] = []
    for error in exc.errors():
        loc = error.get("loc") or ()
        field_name = str(loc[0]) if loc else ""
        label = _FIELD_ENV.get(field_name, field_name)
        message = str(error.get("msg", "invalid value"))
        parts.append(f"{label}: {message}" if label else message)
    return "; ".join(parts)


def load_settings(
    environ: Mapping[str, str] | None = None,
    *,
    mode: str | None = None,
) -> GatewaySettings:
    env = os.environ if environ is None else environ
    data: dict[str, object] = {}
    for field_name, env_name in _FIELD_ENV.items():
        value = env.get(env_name)
        if value is not None and value.strip():
            data[field_name] = value.strip()
    if mode is not None:
        data["mode"] = mode.strip().lower()
    elif "mode" in data:
        data["mode"] = str(data["mode"]).lower()
    else:
        data["mode"] = "webhook" if "webhook_base_url" in data else "poll"
    try:
        return GatewaySettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(
            f"Invalid gateway settings: {_format_validation_error(exc)}"
        ) from None
