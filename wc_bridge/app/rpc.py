from __future__ import annotations

import asyncio
import json
import math
import uuid
from typing import Any

from libs.common.errors import TimeoutError as DomainTimeoutError
from libs.common.errors import UpstreamTransientError
from libs.common.logging import get_logger
from wc_bridge.app.wire_codec import decode, encode_json_envelope
from wc_bridge.modules.bridge.contracts import BrokerProtocol, ReplySubscriptionProtocol

logger = get_logger("wc_bridge.rpc")

_NO_REPLY = object()


class RpcTimeoutError(DomainTimeoutError):
    def __init__(self, correlation_id: str) -> None:
        super().__init__("sign timeout")
        self.correlation_id = correlation_id


def reply_channel_name(prefix: str, correlation_id: str) -> str:
    return f"{prefix}{correlation_id}"


def parse_reply(raw: bytes) -> Any:
    """응답 바이트를 코덱으로 풀고 본문을 JSON으로 파싱해요. 파싱 실패는 ValueError로 올라가요."""
    return json.loads(decode(raw).body)


class CorrelatedRpc:
    """서명 요청을 큐에 넣고 pub/sub 경로와 BLPOP 경로 중 먼저 도착한 응답을 돌려줘요.

    백엔드 프레임워크에 따라 응답이 publish로 오기도 하고 리스트 push로 오기도 해서
    두 경로를 같은 마감 시간 안에서 동시에 기다려요. 진 쪽 결과는 버려요.
    타임아웃이 나도 이미 넣은 요청은 회수하지 않아요.
    """

    def __init__(
        self,
        *,
        broker: BrokerProtocol,
        request_list: str,
        reply_prefix: str,
        poll_tick_seconds: int = 5,
        poll_error_backoff_seconds: float = 0.5,
    ) -> None:
        self._broker = broker
        self._request_list = request_list
        self._reply_prefix = reply_prefix
        self._poll_tick_seconds = max(1, min(5, poll_tick_seconds))
        self._poll_error_backoff_seconds = poll_error_backoff_seconds

    async def call(self, request: dict[str, Any], timeout_seconds: float = 300.0) -> Any:
        correlation_id = str(uuid.uuid4())
        reply_to = reply_channel_name(self._reply_prefix, correlation_id)
        inner = {**request, "cid": correlation_id, "replyTo": reply_to}
        payload = encode_json_envelope(
            inner,
            headers={"reply_to": reply_to, "correlation_id": correlation_id},
        )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_seconds
        # 응답이 push 직후 publish돼도 놓치지 않도록 먼저 구독해요.
        subscription = await self._broker.subscribe(reply_to)
        logger.info("rpc_reply_subscribed", channel=reply_to, cid=correlation_id)

        subscribe_task = asyncio.create_task(self._await_published_reply(subscription, correlation_id))
        poll_task = asyncio.create_task(self._poll_reply_list(reply_to, deadline, correlation_id))
        pending: set[asyncio.Task[Any]] = {subscribe_task, poll_task}
        last_error: BaseException | None = None
        try:
            length = await self._broker.push(self._request_list, payload)
            logger.info("rpc_request_queued", list=self._request_list, length=length, cid=correlation_id)

            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                done, pending = await asyncio.wait(pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    error = task.exception()
                    if error is not None:
                        last_error = error
                        logger.warning("rpc_reply_path_failed", cid=correlation_id, error=str(error))
                        continue
                    reply = task.result()
                    if reply is not _NO_REPLY:
                        logger.info("rpc_resolved", cid=correlation_id, via="pubsub" if task is subscribe_task else "blpop")
                        return reply
        finally:
            for task in (subscribe_task, poll_task):
                task.cancel()
            for task in (subscribe_task, poll_task):
                try:
                    await task
                except asyncio.CancelledError:
                    continue
                except Exception as exc:
                    logger.debug("rpc_reply_path_discarded", cid=correlation_id, error=str(exc))
            await self._release(subscription, reply_to)

        if last_error is not None and loop.time() < deadline:
            raise UpstreamTransientError("서명 응답 경로가 모두 실패했어요.") from last_error
        logger.error("rpc_timeout", cid=correlation_id, reply_to=reply_to)
        raise RpcTimeoutError(correlation_id)

    async def _await_published_reply(self, subscription: ReplySubscriptionProtocol, correlation_id: str) -> Any:
        async for raw in subscription.messages():
            try:
                return parse_reply(raw)
            except ValueError as exc:
                logger.error("rpc_pubsub_parse_error", cid=correlation_id, error=str(exc))
        return _NO_REPLY

    async def _poll_reply_list(self, reply_to: str, deadline: float, correlation_id: str) -> Any:
        loop = asyncio.get_running_loop()
        while loop.time() < deadline:
            remaining = deadline - loop.time()
            tick = max(1, min(self._poll_tick_seconds, math.ceil(remaining)))
            try:
                raw = await self._broker.blocking_pop(reply_to, tick)
            except Exception as exc:
                logger.warning("rpc_blpop_failed", cid=correlation_id, error=str(exc))
                await asyncio.sleep(max(0.0, min(self._poll_error_backoff_seconds, deadline - loop.time())))
                continue
            if raw is None:
                continue
            logger.debug("rpc_blpop_reply", cid=correlation_id, size=len(raw))
            try:
                return parse_reply(raw)
            except ValueError as exc:
                logger.error("rpc_blpop_parse_error", cid=correlation_id, error=str(exc))
        return _NO_REPLY

    @staticmethod
    async def _release(subscription: ReplySubscriptionProtocol, reply_to: str) -> None:
        try:
            await subscription.close()
        except Exception as exc:
            logger.warning("rpc_unsubscribe_failed", channel=reply_to, error=str(exc))
