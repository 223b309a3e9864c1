from __future__ import annotations

import signal
from pathlib import Path

import anyio
import typer
from anyio import CancelScope
from dotenv import load_dotenv

from .. import __version__
from ..bus import NatsBus
from ..config import BotRegistry, GatewaySettings, load_settings
from ..errors import ConfigError, GatewayError
from ..gateway import Gateway
from ..logging import get_logger, setup_logging
from ..telegram.client import TelegramClient
from .call import call_cmd

logger = get_logger(__name__)

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Relay Telegram bot updates and API calls over NATS.",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _exit_config_error(exc: ConfigError) -> None:
    typer.echo(f"error: {exc}", err=True)
    raise typer.Exit(code=1) from exc


def _find_gateway_error(exc: BaseException) -> GatewayError | None:
    if isinstance(exc, GatewayError):
        return exc
    if isinstance(exc, BaseExceptionGroup):
        for inner in exc.exceptions:
            found = _find_gateway_error(inner)
            if found is not None:
                return found
    return None


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)


async def _cancel_on_signal(scope: CancelScope) -> None:
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        async for signum in signals:
            logger.info("gateway.signal", signal=signal.Signals(signum).name)
            scope.cancel()
            return


async def _run_gateway(settings: GatewaySettings, registry: BotRegistry) -> None:
    bus = await NatsBus.connect(settings.nats_url)
    client = TelegramClient(timeout_s=30)
    gateway = Gateway(settings, registry, bus, client)
    async with anyio.create_task_group() as tg:
        tg.start_soon(_cancel_on_signal, tg.cancel_scope)
        await gateway.run()


@app.command()
def run(
    mode: str | None = typer.Option(
        None, "--mode", help="Ingestion mode: poll or webhook."
    ),
    debug: bool = typer.Option(False, "--debug", help="Console logs at DEBUG level."),
) -> None:
    """Run the gateway until interrupted."""
    setup_logging(debug=debug)
    try:
        registry = BotRegistry.from_env()
        settings = load_settings(mode=mode)
    except ConfigError as exc:
        _exit_config_error(exc)
        return
    try:
        anyio.run(_run_gateway, settings, registry, backend="asyncio")
    except BaseException as exc:
        found = _find_gateway_error(exc)
        if found is None:
            raise
        logger.error("gateway.failed", error=str(found))
        raise typer.Exit(code=1) from found


@app.command()
def bots() -> None:
    """List the bot names discovered from BOT_<NAME> variables."""
    try:
        registry = BotRegistry.from_env()
    except ConfigError as exc:
        _exit_config_error(exc)
        return
    for name in registry.names:
        typer.echo(name)


app.command(name="call")(call_cmd)


def main() -> None:
    app()
