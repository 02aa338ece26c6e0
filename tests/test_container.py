from __future__ import annotations

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from libs.common.errors import ConfigurationError, UpstreamTransientError
from libs.contracts.models import StatusEvent
from tests.conftest import FakeBroker, FakeWallet
from wc_bridge.app.settings import Settings
from wc_bridge.bootstrap.container import build_runtime_components


class _UnreachableBroker(FakeBroker):
    def __init__(self) -> None:
        super().__init__()
        self.ping_attempts = 0

    async def ping(self) -> None:
        self.ping_attempts += 1
        raise RedisConnectionError("connection refused")


def _settings(**overrides: object) -> Settings:
    return Settings(_env_file=None, **overrides)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_runtime_components_share_stores_and_broker() -> None:
    broker = FakeBroker()
    wallet = FakeWallet()

    runtime = await build_runtime_components(
        _settings(sign_timeout_seconds=12.0),
        broker=broker,  # type: ignore[arg-type]
        wallet=wallet,
    )

    assert runtime.broker is broker
    assert runtime.wallet is wallet
    assert not runtime.consumer.running

    runtime.orchestrator.bind_wallet_events()
    await runtime.sink.publish(StatusEvent(status="ready"))
    assert set(wallet.handlers) == {"session_proposal", "session_request", "session_delete"}
    assert len(broker.lists["wc-pairing-events"]) == 1


@pytest.mark.asyncio
async def test_runtime_creates_wallet_from_factory_path() -> None:
    runtime = await build_runtime_components(
        _settings(wallet_factory="tests.conftest:build_fake_wallet", wc_project_id="project-123"),
        broker=FakeBroker(),  # type: ignore[arg-type]
    )

    assert isinstance(runtime.wallet, FakeWallet)
    assert runtime.wallet.project_id == "project-123"
    assert runtime.wallet.metadata is not None
    assert runtime.wallet.metadata["name"] == "MMWB Wallet"


@pytest.mark.asyncio
async def test_runtime_requires_wallet_factory() -> None:
    with pytest.raises(ConfigurationError):
        await build_runtime_components(_settings(wallet_factory=""), broker=FakeBroker())  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_unreachable_broker_is_closed_and_reported() -> None:
    broker = _UnreachableBroker()

    with pytest.raises(UpstreamTransientError):
        await build_runtime_components(
            _settings(redis_connect_retries=0),
            broker=broker,  # type: ignore[arg-type]
            wallet=FakeWallet(),
        )

    assert broker.ping_attempts == 1
    assert broker.closed
