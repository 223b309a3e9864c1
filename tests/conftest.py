import pytest

from tests.fakes import FakeBus, FakeTelegram


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_bus() -> FakeBus:
    return FakeBus()


@pytest.fixture
def fake_telegram() -> FakeTelegram:
    return FakeTelegram()
