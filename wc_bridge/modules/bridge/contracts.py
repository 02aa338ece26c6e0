from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from libs.contracts.models import StatusEvent


class ReplySubscriptionProtocol(Protocol):
    def messages(self) -> AsyncIterator[bytes]: ...
    async def close(self) -> None: ...


class BrokerProtocol(Protocol):
    async def push(self, list_name: str, payload: bytes) -> int: ...
    async def blocking_pop(self, list_name: str, timeout_seconds: float) -> bytes | None: ...
    async def subscribe(self, channel: str) -> ReplySubscriptionProtocol: ...


class EventSinkProtocol(Protocol):
    async def publish(self, event: StatusEvent) -> None: ...


class RpcClientProtocol(Protocol):
    async def call(self, request: dict[str, Any], timeout_seconds: float) -> Any: ...


WalletEventHandler = Callable[[dict[str, Any]], Awaitable[None]]


class WalletClientProtocol(Protocol):
    async def pair(self, uri: str) -> None: ...
    async def approve_session(self, *, proposal_id: int, namespaces: dict[str, Any]) -> str: ...
    async def reject_session(self, *, proposal_id: int, code: int, message: str) -> None: ...
    async def respond_session_request(self, *, topic: str, response: dict[str, Any]) -> None: ...
    def on(self, event_name: str, handler: WalletEventHandler) -> None: ...


def _as_dict(value: object) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass(slots=True)
class SessionProposal:
    proposal_id: int
    pairing_topic: str | None
    required_namespaces: dict[str, Any]
    optional_namespaces: dict[str, Any]
    proposer_metadata: dict[str, Any]

    @classmethod
    def from_event(cls, event: dict[str, Any]) -> "SessionProposal":
        params = _as_dict(event.get("params"))
        proposer = _as_dict(params.get("proposer"))
        pairing_topic = params.get("pairingTopic")
        return cls(
            proposal_id=event["id"],
            pairing_topic=pairing_topic if isinstance(pairing_topic, str) and pairing_topic else None,
            required_namespaces=_as_dict(params.get("requiredNamespaces")),
            optional_namespaces=_as_dict(params.get("optionalNamespaces")),
            proposer_metadata=_as_dict(proposer.get("metadata")),
        )


@dataclass(slots=True)
class SessionRequest:
    request_id: int
    topic: str
    method: str | None
    params: Any = None
    chain_id: str | None = None

    @classmethod
    def from_event(cls, event: dict[str, Any]) -> "SessionRequest":
        params = _as_dict(event.get("params"))
        request = _as_dict(params.get("request"))
        method = request.get("method")
        chain_id = params.get("chainId")
        return cls(
            request_id=event["id"],
            topic=event["topic"],
            method=method if isinstance(method, str) else None,
            params=request.get("params"),
            chain_id=chain_id if isinstance(chain_id, str) else None,
        )

    def signing_payload(self) -> str | None:
        """`xdr`는 params 객체에 바로 오거나 위치 인자 배열의 첫 원소에 들어와요."""
        source: object = self.params
        if isinstance(source, list):
            source = source[0] if source else None
        if not isinstance(source, dict):
            return None
        xdr = source.get("xdr")
        return xdr if isinstance(xdr, str) and xdr else None


@dataclass(slots=True)
class SessionDelete:
    topic: str
    event_id: int | None = None

    @classmethod
    def from_event(cls, event: dict[str, Any]) -> "SessionDelete":
        event_id = event.get("id")
        return cls(topic=event["topic"], event_id=event_id if isinstance(event_id, int) else None)


@dataclass(slots=True)
class PairingRequest:
    raw: bytes


WalletEvent = PairingRequest | SessionProposal | SessionRequest | SessionDelete
