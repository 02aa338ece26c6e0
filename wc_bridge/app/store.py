"""페어링 바인딩과 활성 세션을 보관하는 인메모리 저장소예요.

프로세스가 재시작되면 세 구조(FIFO, 재사용 캐시, 세션 맵)가 모두 사라져요.
영속 저장소에서 복원하는 일은 이 서비스 밖의 책임이에요.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any

from libs.contracts.models import DappInfo


@dataclass(slots=True, frozen=True)
class PendingBinding:
    address: str
    metadata: Any = None


@dataclass(slots=True, frozen=True)
class SessionContext:
    address: str
    metadata: Any
    dapp: DappInfo


class InMemoryBindingStore:
    """페어링 직후 들어온 주소를 세션 제안과 짝지어 줘요.

    새 주소는 FIFO로 소비하고, 같은 페어링으로 다시 들어온 제안은
    마지막으로 승인된 바인딩을 재사용해요. 재사용 캐시는 세션이 끝나도 지우지 않아요.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._pending: deque[PendingBinding] = deque()
        self._by_pairing: dict[str, PendingBinding] = {}

    async def enqueue(self, address: str, metadata: Any) -> int:
        async with self._lock:
            self._pending.append(PendingBinding(address=address, metadata=metadata))
            return len(self._pending)

    async def dequeue_or_reuse(self, pairing_id: str | None) -> PendingBinding | None:
        async with self._lock:
            if self._pending:
                return self._pending.popleft()
            if pairing_id is not None:
                return self._by_pairing.get(pairing_id)
            return None

    async def bind_reuse(self, pairing_id: str, address: str, metadata: Any) -> None:
        async with self._lock:
            self._by_pairing[pairing_id] = PendingBinding(address=address, metadata=metadata)

    async def pending_count(self) -> int:
        async with self._lock:
            return len(self._pending)


class InMemorySessionStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._sessions: dict[str, SessionContext] = {}

    async def put(self, session_id: str, context: SessionContext) -> None:
        async with self._lock:
            self._sessions[session_id] = context

    async def get(self, session_id: str) -> SessionContext | None:
        async with self._lock:
            return self._sessions.get(session_id)

    async def remove(self, session_id: str) -> SessionContext | None:
        async with self._lock:
            return self._sessions.pop(session_id, None)

    async def count(self) -> int:
        async with self._lock:
            return len(self._sessions)
