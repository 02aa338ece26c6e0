from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from libs.common.logging import get_logger
from libs.contracts.models import StatusEvent
from wc_bridge.app.settings import Settings
from wc_bridge.app.status_events import READY_MESSAGE, PairingStatus
from wc_bridge.bootstrap.container import RuntimeComponents, build_runtime_components
from wc_bridge.bootstrap.safety import install_safety_nets

logger = get_logger("wc_bridge.lifespan")


async def _shutdown(runtime: RuntimeComponents) -> None:
    await runtime.consumer.stop()
    wallet_close = getattr(runtime.wallet, "aclose", None)
    if callable(wallet_close):
        try:
            await wallet_close()
        except Exception as exc:
            logger.warning("wallet_close_failed", error=str(exc))
    await runtime.broker.aclose()
    logger.info("bridge_stopped")


def create_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        install_safety_nets()
        runtime = await build_runtime_components(settings)

        app.state.settings = settings
        app.state.binding_store = runtime.binding_store
        app.state.session_store = runtime.session_store
        app.state.pairing_consumer = runtime.consumer

        try:
            runtime.orchestrator.bind_wallet_events()
            await runtime.consumer.start()
            await runtime.sink.publish(StatusEvent(status=PairingStatus.READY, message=READY_MESSAGE))
            logger.info(
                "bridge_started",
                pairing_request_list=settings.pairing_request_list,
                pairing_events_list=settings.pairing_events_list,
                sign_request_list=settings.sign_request_list,
            )
            yield
        finally:
            await _shutdown(runtime)

    return lifespan
