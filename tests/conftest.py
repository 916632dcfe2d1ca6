import pytest

from fakes import FakeRpcClient
from pumptrade.config.settings import EngineContext


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def context() -> EngineContext:
    return EngineContext(
        rpc_url="http://localhost:8899",
        confirm_timeout_seconds=5.0,
        confirm_poll_seconds=0.0,
    )


@pytest.fixture
def rpc() -> FakeRpcClient:
    return FakeRpcClient()
