from __future__ import annotations

import asyncio
import contextlib

from libs.common.errors import DomainError
from libs.common.logging import get_logger
from wc_bridge.modules.bridge.contracts import BrokerProtocol, PairingRequest
from wc_bridge.modules.bridge.orchestrator import BridgeOrchestrator

logger = get_logger("wc_bridge.pairing_consumer")


class PairingRequestConsumer:
    def __init__(
        self,
        *,
        broker: BrokerProtocol,
        orchestrator: BridgeOrchestrator,
        list_name: str,
        backoff_seconds: float = 1.0,
    ) -> None:
        self._broker = broker
        self._orchestrator = orchestrator
        self._list_name = list_name
        self._backoff_seconds = backoff_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._consume_loop())
        logger.info("pairing_consumer_started", list=self._list_name)

    async def stop(self) -> None:
        """대기 중인 BLPOP을 취소하고 루프를 종료해요."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("pairing_consumer_stopped", list=self._list_name)

    async def _consume_loop(self) -> None:
        while True:
            try:
                raw = await self._broker.blocking_pop(self._list_name, 0)
                if raw is None:
                    continue
                logger.debug("pairing_request_popped", list=self._list_name, size=len(raw))
                await self._orchestrator.dispatch(PairingRequest(raw=raw))
            except DomainError as exc:
                log_level = logger.warning if exc.retryable else logger.error
                log_level(
                    "pairing_consumer_domain_error",
                    error_code=exc.error_code,
                    retryable=exc.retryable,
                    error=str(exc),
                )
                await asyncio.sleep(self._backoff_seconds)
            except Exception as exc:
                logger.exception("pairing_consumer_loop_error", error=str(exc))
                await asyncio.sleep(self._backoff_seconds)
