from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from libs.contracts.models import StatusEvent
from wc_bridge.app.store import InMemoryBindingStore, InMemorySessionStore


@pytest.fixture
def binding_store() -> InMemoryBindingStore:
    """각 테스트용으로 새로 생성한 빈 바인딩 저장소예요."""
    return InMemoryBindingStore()


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


class FakeSubscription:
    def __init__(self, broker: "FakeBroker", channel: str) -> None:
        self._broker = broker
        self.channel = channel
        self.queue: asyncio.Queue[bytes] = asyncio.Queue()
        self.closed = False

    async def messages(self) -> AsyncIterator[bytes]:
        while True:
            yield await self.queue.get()

    async def close(self) -> None:
        self.closed = True
        self._broker.subscriptions.pop(self.channel, None)
        self._broker.closed_channels.append(self.channel)


class FakeBroker:
    """Redis 리스트와 pub/sub 채널을 메모리로 흉내 내요.

    `responders`에 리스트 이름별 콜백을 넣으면 push 직후 호출돼서 백엔드 응답을 흉내 낼 수 있어요.
    """

    def __init__(self) -> None:
        self.lists: dict[str, deque[bytes]] = defaultdict(deque)
        self.pushed: list[tuple[str, bytes]] = []
        self.subscriptions: dict[str, FakeSubscription] = {}
        self.closed_channels: list[str] = []
        self.responders: dict[str, Callable[[bytes], None]] = {}
        self.closed = False

    async def ping(self) -> None:
        return None

    async def aclose(self) -> None:
        self.closed = True

    async def push(self, list_name: str, payload: bytes) -> int:
        self.lists[list_name].append(payload)
        self.pushed.append((list_name, payload))
        responder = self.responders.get(list_name)
        if responder is not None:
            responder(payload)
        return len(self.lists[list_name])

    async def blocking_pop(self, list_name: str, timeout_seconds: float) -> bytes | None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_seconds
        while True:
            items = self.lists.get(list_name)
            if items:
                return items.popleft()
            if timeout_seconds and loop.time() >= deadline:
                return None
            await asyncio.sleep(0.005)

    async def subscribe(self, channel: str) -> FakeSubscription:
        subscription = FakeSubscription(self, channel)
        self.subscriptions[channel] = subscription
        return subscription

    def publish(self, channel: str, payload: bytes) -> None:
        subscription = self.subscriptions.get(channel)
        if subscription is not None:
            subscription.queue.put_nowait(payload)


class FakeSink:
    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    async def publish(self, event: StatusEvent) -> None:
        self.events.append(event.to_wire())


class FakeWallet:
    """지갑 세션 라이브러리 호출을 기록만 하는 가짜 클라이언트예요."""

    def __init__(self, project_id: str | None = None, metadata: dict[str, Any] | None = None) -> None:
        self.project_id = project_id
        self.metadata = metadata
        self.paired: list[str] = []
        self.approved: list[tuple[int, dict[str, Any]]] = []
        self.rejected: list[tuple[int, int, str]] = []
        self.responses: list[tuple[str, dict[str, Any]]] = []
        self.handlers: dict[str, Any] = {}
        self.pair_error: Exception | None = None
        self.respond_error: Exception | None = None
        self.closed = False
        self._next_topic = 0

    async def pair(self, uri: str) -> None:
        if self.pair_error is not None:
            raise self.pair_error
        self.paired.append(uri)

    async def approve_session(self, *, proposal_id: int, namespaces: dict[str, Any]) -> str:
        self.approved.append((proposal_id, namespaces))
        self._next_topic += 1
        return f"session-topic-{self._next_topic}"

    async def reject_session(self, *, proposal_id: int, code: int, message: str) -> None:
        self.rejected.append((proposal_id, code, message))

    async def respond_session_request(self, *, topic: str, response: dict[str, Any]) -> None:
        self.responses.append((topic, response))
        if self.respond_error is not None:
            raise self.respond_error

    def on(self, event_name: str, handler: Any) -> None:
        self.handlers[event_name] = handler

    async def aclose(self) -> None:
        self.closed = True


async def build_fake_wallet(*, project_id: str, metadata: dict[str, Any]) -> FakeWallet:
    return FakeWallet(project_id=project_id, metadata=metadata)


def build_incomplete_wallet(*, project_id: str, metadata: dict[str, Any]) -> object:
    del project_id, metadata
    return object()


async def wait_until(predicate: Callable[[], bool], *, timeout_seconds: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_seconds
    while loop.time() < deadline:
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("조건을 시간 안에 만족하지 못했어요.")
