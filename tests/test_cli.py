import os
from pathlib import Path

import pytest
from typer.testing import CliRunner

from tgbus import __version__
from tgbus.cli import _find_gateway_error, app
from tgbus.errors import TransportError

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("BOT_") or key in {"GATEWAY_MODE", "WEBHOOK_BASE_URL"}:
            monkeypatch.delenv(key)


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_bots_lists_names_only(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOT_SUPPORT", "111:secretTOKENvalue")
    monkeypatch.setenv("BOT_alerts", "222:otherTOKENvalue")

    result = runner.invoke(app, ["bots"])

    assert result.exit_code == 0
    assert result.output.split() == ["alerts", "support"]
    assert "TOKEN" not in result.output


def test_bots_reads_dotenv(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # restored on teardown so the loaded value does not leak
    monkeypatch.setenv("BOT_FROMFILE", "")
    monkeypatch.delenv("BOT_FROMFILE")
    (tmp_path / ".env").write_text("BOT_FROMFILE=333:dotenvTOKEN\n")

    result = runner.invoke(app, ["bots"])

    assert result.exit_code == 0
    assert "fromfile" in result.output


def test_run_without_bots_fails() -> None:
    result = runner.invoke(app, ["run"])

    assert result.exit_code == 1
    assert "No bots configured" in result.output


def test_run_webhook_without_base_url_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOT_SUPPORT", "111:aaa")
    monkeypatch.delenv("WEBHOOK_BASE_URL", raising=False)

    result = runner.invoke(app, ["run", "--mode", "webhook"])

    assert result.exit_code == 1
    assert "WEBHOOK_BASE_URL" in result.output


def test_call_rejects_invalid_json() -> None:
    result = runner.invoke(app, ["call", "support", "sendMessage", "{oops"])

    assert result.exit_code == 1
    assert "valid JSON" in result.output


def test_find_gateway_error_unwraps_groups() -> None:
    inner = TransportError("bus down")
    group = BaseExceptionGroup("wrapped", [ExceptionGroup("x", [inner])])

    assert _find_gateway_error(group) is inner
    assert _find_gateway_error(RuntimeError("other")) is None
