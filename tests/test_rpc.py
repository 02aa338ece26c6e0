from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from tests.conftest import FakeBroker, wait_until
from wc_bridge.app.rpc import CorrelatedRpc, RpcTimeoutError, reply_channel_name
from wc_bridge.app.wire_codec import decode, encode_binary_envelope, encode_json_envelope

_REQUEST_LIST = "wc-sign-request-queue"
_REPLY_PREFIX = "wc-sign-replies:"


def _build_rpc(broker: FakeBroker) -> CorrelatedRpc:
    return CorrelatedRpc(broker=broker, request_list=_REQUEST_LIST, reply_prefix=_REPLY_PREFIX, poll_tick_seconds=1)


def _request_body(payload: bytes) -> tuple[dict[str, Any], dict[str, Any]]:
    decoded = decode(payload)
    assert decoded.headers is not None
    return json.loads(decoded.body), decoded.headers


def test_reply_channel_name_depends_only_on_correlation_id() -> None:
    assert reply_channel_name(_REPLY_PREFIX, "abc") == "wc-sign-replies:abc"
    assert reply_channel_name(_REPLY_PREFIX, "abc") == reply_channel_name(_REPLY_PREFIX, "abc")


@pytest.mark.asyncio
async def test_call_resolves_from_reply_list_and_unsubscribes() -> None:
    broker = FakeBroker()

    def reply_via_list(payload: bytes) -> None:
        body, _ = _request_body(payload)
        broker.lists[body["replyTo"]].append(encode_json_envelope({"result": {"signed_xdr": "AAAA"}}))

    broker.responders[_REQUEST_LIST] = reply_via_list

    reply = await _build_rpc(broker).call({"xdr": "AAA"}, timeout_seconds=2.0)

    assert reply == {"result": {"signed_xdr": "AAAA"}}
    assert len(broker.closed_channels) == 1
    assert broker.subscriptions == {}


@pytest.mark.asyncio
async def test_call_resolves_from_published_binary_reply() -> None:
    broker = FakeBroker()

    def reply_via_publish(payload: bytes) -> None:
        body, _ = _request_body(payload)
        broker.publish(body["replyTo"], encode_binary_envelope(b'{"error": "user declined"}'))

    broker.responders[_REQUEST_LIST] = reply_via_publish

    reply = await _build_rpc(broker).call({"xdr": "AAA"}, timeout_seconds=2.0)

    assert reply == {"error": "user declined"}
    assert broker.closed_channels


@pytest.mark.asyncio
async def test_call_skips_unparseable_reply_and_waits_for_valid_one() -> None:
    broker = FakeBroker()

    def reply_twice(payload: bytes) -> None:
        body, _ = _request_body(payload)
        broker.publish(body["replyTo"], b"not json at all")
        broker.lists[body["replyTo"]].append(b'{"result": {"ok": true}}')

    broker.responders[_REQUEST_LIST] = reply_twice

    reply = await _build_rpc(broker).call({"xdr": "AAA"}, timeout_seconds=2.0)

    assert reply == {"result": {"ok": True}}


@pytest.mark.asyncio
async def test_call_times_out_and_leaves_request_queued() -> None:
    broker = FakeBroker()

    with pytest.raises(RpcTimeoutError) as exc_info:
        await _build_rpc(broker).call({"xdr": "AAA"}, timeout_seconds=0.05)

    assert str(exc_info.value) == "sign timeout"
    assert exc_info.value.error_code == "TIMEOUT"
    assert len(broker.lists[_REQUEST_LIST]) == 1
    assert broker.closed_channels == [reply_channel_name(_REPLY_PREFIX, exc_info.value.correlation_id)]


@pytest.mark.asyncio
async def test_request_envelope_carries_correlation_headers() -> None:
    broker = FakeBroker()
    rpc = _build_rpc(broker)

    for _ in range(2):
        with pytest.raises(RpcTimeoutError):
            await rpc.call({"xdr": "AAA", "method": "stellar_signXDR"}, timeout_seconds=0.02)

    (first_list, first_payload), (_, second_payload) = broker.pushed
    first_body, first_headers = _request_body(first_payload)
    second_body, _ = _request_body(second_payload)

    assert first_list == _REQUEST_LIST
    assert first_body["xdr"] == "AAA"
    assert first_body["method"] == "stellar_signXDR"
    assert first_headers["correlation_id"] == first_body["cid"]
    assert first_headers["reply_to"] == first_body["replyTo"] == f"{_REPLY_PREFIX}{first_body['cid']}"
    assert first_headers["content_type"] == "application/json"
    assert first_headers["content_encoding"] == "utf-8"
    assert first_body["cid"] != second_body["cid"]


class _BlippingBroker(FakeBroker):
    def __init__(self) -> None:
        super().__init__()
        self.pop_failures = 1

    async def blocking_pop(self, list_name: str, timeout_seconds: float) -> bytes | None:
        if list_name.startswith(_REPLY_PREFIX) and self.pop_failures > 0:
            self.pop_failures -= 1
            raise RedisConnectionError("blip")
        return await super().blocking_pop(list_name, timeout_seconds)


@pytest.mark.asyncio
async def test_poll_path_recovers_after_broker_error() -> None:
    broker = _BlippingBroker()
    rpc = CorrelatedRpc(
        broker=broker,
        request_list=_REQUEST_LIST,
        reply_prefix=_REPLY_PREFIX,
        poll_tick_seconds=1,
        poll_error_backoff_seconds=0.05,
    )

    async def reply_later() -> None:
        await wait_until(lambda: bool(broker.pushed))
        await asyncio.sleep(0.2)
        body, _ = _request_body(broker.pushed[0][1])
        broker.lists[body["replyTo"]].append(b'{"result": {"ok": true}}')

    replier = asyncio.create_task(reply_later())
    reply = await rpc.call({"xdr": "AAA"}, timeout_seconds=2.0)
    await replier

    assert reply == {"result": {"ok": True}}
    assert broker.pop_failures == 0
