from __future__ import annotations

import anyio
import msgspec
import typer

from ..bus import NatsBus
from ..config import is_subject_token, load_settings, normalize_bot_name
from ..errors import ConfigError, TransportError
from ..subjects import outgoing


async def _request(url: str, subject: str, data: bytes, timeout_s: float) -> bytes:
    bus = await NatsBus.connect(url, name="tgbus-call")
    try:
        return await bus.request(subject, data, timeout_s=timeout_s)
    finally:
        await bus.close()


def call_cmd(
    bot: str = typer.Argument(..., help="Bot name, as listed by `tgbus bots`."),
    method: str = typer.Argument(..., help="Bot API method, or `raw`."),
    params: str = typer.Argument("{}", help="JSON body to publish."),
    timeout: float = typer.Option(10.0, "--timeout", help="Reply timeout in seconds."),
) -> None:
    """Send one Bot API call through a running gateway and print the reply."""
    try:
        msgspec.json.decode(params)
    except msgspec.DecodeError:
        typer.echo("error: PARAMS must be valid JSON", err=True)
        raise typer.Exit(code=1) from None
    name = normalize_bot_name(bot)
    if not is_subject_token(name) or not is_subject_token(method):
        typer.echo("error: BOT and METHOD must be single subject tokens", err=True)
        raise typer.Exit(code=1)
    try:
        settings = load_settings()
    except ConfigError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    subject = outgoing(settings.subject_prefix, name, method)
    try:
        reply = anyio.run(
            _request,
            settings.nats_url,
            subject,
            params.encode(),
            timeout,
            backend="asyncio",
        )
    except TransportError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(reply.decode("utf-8", errors="replace"))
