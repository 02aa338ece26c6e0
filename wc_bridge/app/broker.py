from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from libs.common.errors import UpstreamTransientError
from libs.common.logging import get_logger

logger = get_logger("wc_bridge.broker")


def is_transient_broker_error(exc: Exception) -> bool:
    return isinstance(exc, (RedisConnectionError, RedisTimeoutError, OSError))


class ReplySubscription:
    """pub/sub 채널 하나에 대한 구독이에요. `close()`를 여러 번 불러도 안전해요."""

    def __init__(self, pubsub: Any, channel: str) -> None:
        self._pubsub = pubsub
        self._channel = channel
        self._closed = False

    async def messages(self) -> AsyncIterator[bytes]:
        async for message in self._pubsub.listen():
            if message.get("type") != "message":
                continue
            data = message.get("data")
            if isinstance(data, str):
                data = data.encode("utf-8")
            if isinstance(data, (bytes, bytearray)):
                yield bytes(data)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._pubsub.unsubscribe(self._channel)
        finally:
            await self._pubsub.aclose()


class RedisBroker:
    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisBroker":
        # BLPOP 0 으로 무한 대기하므로 소켓 타임아웃은 두지 않아요.
        return cls(redis.Redis.from_url(url, decode_responses=False))

    async def ping(self) -> None:
        await self._client.ping()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def push(self, list_name: str, payload: bytes) -> int:
        try:
            length = await self._client.rpush(list_name, payload)
        except RedisError as exc:
            raise UpstreamTransientError(f"큐에 메시지를 넣지 못했어요: {list_name}") from exc
        logger.debug("queued_rpush", list=list_name, length=length)
        return int(length)

    async def blocking_pop(self, list_name: str, timeout_seconds: float) -> bytes | None:
        """`timeout_seconds`가 0이면 항목이 들어올 때까지 무한히 기다려요."""
        reply = await self._client.blpop([list_name], timeout=timeout_seconds)
        if not reply:
            return None
        _key, value = reply
        if isinstance(value, str):
            return value.encode("utf-8")
        return bytes(value)

    async def subscribe(self, channel: str) -> ReplySubscription:
        pubsub = self._client.pubsub()
        await pubsub.subscribe(channel)
        logger.debug("subscribed", channel=channel)
        return ReplySubscription(pubsub, channel)
