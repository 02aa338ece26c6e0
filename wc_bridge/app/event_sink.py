from __future__ import annotations

import asyncio
import random

from libs.common.errors import UpstreamTransientError
from libs.common.logging import get_logger
from libs.contracts.models import StatusEvent
from wc_bridge.app.wire_codec import encode_json_envelope
from wc_bridge.modules.bridge.contracts import BrokerProtocol

logger = get_logger("wc_bridge.event_sink")


class QueueEventSink:
    """페어링/세션 상태 이벤트를 `wc-pairing-events` 리스트로 내보내요."""

    def __init__(self, broker: BrokerProtocol, list_name: str, max_attempts: int = 4) -> None:
        self._broker = broker
        self._list_name = list_name
        self._max_attempts = max_attempts

    async def publish(self, event: StatusEvent) -> None:
        payload = encode_json_envelope(event.to_wire())
        for attempt in range(self._max_attempts):
            try:
                length = await self._broker.push(self._list_name, payload)
            except UpstreamTransientError:
                if attempt == self._max_attempts - 1:
                    raise
                await self._backoff(attempt)
                continue

            logger.info("status_event_published", list=self._list_name, status=event.status, length=length)
            return

    @staticmethod
    async def _backoff(attempt: int) -> None:
        """지수 백오프에 ±20 % 범위의 full jitter를 적용해요."""
        base = 0.3 * (2 ** attempt)
        jitter = base * random.uniform(-0.2, 0.2)
        await asyncio.sleep(base + jitter)
