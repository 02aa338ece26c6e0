from __future__ import annotations

import json
import uuid
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from libs.common.errors import ValidationError
from libs.common.logging import get_logger
from libs.contracts.models import DappInfo, PairingRequestPayload, SignRequestPayload, StatusEvent
from wc_bridge.app.status_events import (
    APPROVED_MESSAGE,
    ENDED_MESSAGE,
    QUEUED_MESSAGE,
    PairingStatus,
    WalletErrorCode,
)
from wc_bridge.app.store import InMemoryBindingStore, InMemorySessionStore, SessionContext
from wc_bridge.app.wire_codec import decode
from wc_bridge.modules.bridge.contracts import (
    EventSinkProtocol,
    PairingRequest,
    RpcClientProtocol,
    SessionDelete,
    SessionProposal,
    SessionRequest,
    WalletClientProtocol,
    WalletEvent,
    WalletEventHandler,
)

logger = get_logger("wc_bridge.orchestrator")

JSONRPC_VERSION = "2.0"
MISSING_CHAIN_MESSAGE = "Required chain pubnet missing"
NO_ADDRESS_MESSAGE = "No address bound for proposal"
BAD_PARAMS_MESSAGE = "Bad params"

_EventT = TypeVar("_EventT")


def _str_or_none(value: object) -> str | None:
    return value if isinstance(value, str) else None


class BridgeOrchestrator:
    """페어링 요청, 세션 제안/요청/종료를 받아 지갑 세션과 서명 백엔드를 이어 줘요.

    페어링 요청과 세션 제안은 서로 다른 경로로 순서 없이 도착해요.
    그래서 주소는 `InMemoryBindingStore`에 먼저 쌓아 두고 제안이 올 때 꺼내 써요.
    각 핸들러는 예외를 상태 이벤트나 프로토콜 오류 응답으로 바꾸고 밖으로 던지지 않아요.
    """

    def __init__(
        self,
        *,
        wallet: WalletClientProtocol,
        rpc: RpcClientProtocol,
        sink: EventSinkProtocol,
        bindings: InMemoryBindingStore,
        sessions: InMemorySessionStore,
        chain_namespace: str = "stellar",
        accepted_chains: list[str] | None = None,
        default_methods: list[str] | None = None,
        sign_timeout_seconds: float = 300.0,
    ) -> None:
        self._wallet = wallet
        self._rpc = rpc
        self._sink = sink
        self._bindings = bindings
        self._sessions = sessions
        self._chain_namespace = chain_namespace
        self._accepted_chains = list(accepted_chains or ["stellar:pubnet", "pubnet"])
        self._default_methods = list(default_methods or ["stellar_signXDR", "stellar_signAndSubmitXDR"])
        self._sign_timeout_seconds = sign_timeout_seconds

    def bind_wallet_events(self) -> None:
        self._wallet.on(
            "session_proposal",
            self._guard(
                "session_proposal",
                SessionProposal.from_event,
                self.on_session_proposal,
                publish_parse_failure=True,
            ),
        )
        self._wallet.on("session_request", self._guard("session_request", SessionRequest.from_event, self.on_session_request))
        self._wallet.on("session_delete", self._guard("session_delete", SessionDelete.from_event, self.on_session_delete))
        logger.info("wallet_handlers_bound")

    async def dispatch(self, event: WalletEvent) -> None:
        if isinstance(event, PairingRequest):
            await self.on_pairing_request(event.raw)
        elif isinstance(event, SessionProposal):
            await self.on_session_proposal(event)
        elif isinstance(event, SessionRequest):
            await self.on_session_request(event)
        elif isinstance(event, SessionDelete):
            await self.on_session_delete(event)
        else:
            raise TypeError(f"지원하지 않는 이벤트예요: {type(event).__name__}")

    async def on_pairing_request(self, raw: bytes) -> None:
        body = decode(raw).body
        logger.info("pairing_request_received", size=len(raw))
        try:
            try:
                message = json.loads(body)
            except ValueError as exc:
                raise ValidationError(f"페어링 요청 본문이 JSON이 아니에요: {exc}") from exc
            if not isinstance(message, dict):
                logger.warning("pairing_request_dropped", reason="not_an_object")
                return
            payload = PairingRequestPayload.model_validate(message)
            if not payload.wc_uri or not payload.address:
                logger.warning(
                    "pairing_request_dropped",
                    has_wc_uri=bool(payload.wc_uri),
                    has_address=bool(payload.address),
                )
                return

            queue_length = await self._bindings.enqueue(payload.address, payload.metadata)
            logger.info("pairing_queued", address=payload.address, queue_length=queue_length)
            await self._wallet.pair(payload.wc_uri)
            logger.info("pairing_started", address=payload.address)

            await self._sink.publish(
                StatusEvent(
                    status=PairingStatus.QUEUED,
                    address=payload.address,
                    metadata=payload.metadata,
                    message=QUEUED_MESSAGE,
                )
            )
        except Exception as exc:
            logger.exception("pairing_request_failed", error=str(exc))
            await self._publish_failure(exc)

    async def on_session_proposal(self, proposal: SessionProposal) -> None:
        logger.info("session_proposal_received", proposal_id=proposal.proposal_id, pairing_topic=proposal.pairing_topic)
        try:
            selected = self._select_namespace(proposal)
            if selected is None:
                logger.warning("session_proposal_rejected", proposal_id=proposal.proposal_id, reason="missing_chain")
                await self._wallet.reject_session(
                    proposal_id=proposal.proposal_id,
                    code=WalletErrorCode.UNSUPPORTED_CHAIN,
                    message=MISSING_CHAIN_MESSAGE,
                )
                return
            namespace, chains = selected

            binding = await self._bindings.dequeue_or_reuse(proposal.pairing_topic)
            if binding is None:
                logger.warning("session_proposal_rejected", proposal_id=proposal.proposal_id, reason="no_address")
                await self._wallet.reject_session(
                    proposal_id=proposal.proposal_id,
                    code=WalletErrorCode.NO_BOUND_ADDRESS,
                    message=NO_ADDRESS_MESSAGE,
                )
                return

            methods = namespace.get("methods")
            events = namespace.get("events")
            namespaces = {
                self._chain_namespace: {
                    "accounts": [self._account_id(chain, binding.address) for chain in chains],
                    "methods": list(methods) if isinstance(methods, list) and methods else list(self._default_methods),
                    "events": list(events) if isinstance(events, list) else [],
                }
            }
            topic = await self._wallet.approve_session(proposal_id=proposal.proposal_id, namespaces=namespaces)
            logger.info("session_approved", topic=topic, address=binding.address)

            dapp = DappInfo(
                name=_str_or_none(proposal.proposer_metadata.get("name")),
                url=_str_or_none(proposal.proposer_metadata.get("url")),
            )
            await self._sessions.put(topic, SessionContext(address=binding.address, metadata=binding.metadata, dapp=dapp))
            if proposal.pairing_topic is not None:
                await self._bindings.bind_reuse(proposal.pairing_topic, binding.address, binding.metadata)

            await self._sink.publish(
                StatusEvent(
                    status=PairingStatus.APPROVED,
                    client_id=topic,
                    address=binding.address,
                    metadata=binding.metadata,
                    dapp_info=dapp,
                    message=APPROVED_MESSAGE,
                )
            )
        except Exception as exc:
            logger.exception("session_proposal_failed", proposal_id=proposal.proposal_id, error=str(exc))
            await self._publish_failure(exc)

    async def on_session_request(self, request: SessionRequest) -> None:
        logger.info(
            "session_request_received",
            topic=request.topic,
            request_id=request.request_id,
            method=request.method,
            chain_id=request.chain_id,
        )
        responded = False
        try:
            context = await self._sessions.get(request.topic)
            xdr = request.signing_payload()
            if context is None or xdr is None:
                logger.warning("session_request_bad_params", has_context=context is not None, has_xdr=xdr is not None)
                responded = True
                await self._respond_error(request, WalletErrorCode.BAD_PARAMS, BAD_PARAMS_MESSAGE)
                return

            sign_request = SignRequestPayload(
                request_id=str(uuid.uuid4()),
                wc_req_id=request.request_id,
                client_id=request.topic,
                method=request.method or "",
                xdr=xdr,
                address=context.address,
                metadata=context.metadata,
                dapp_info=context.dapp,
            )
            reply = await self._rpc.call(sign_request.to_wire(), timeout_seconds=self._sign_timeout_seconds)

            reply_body: dict[str, Any] = reply if isinstance(reply, dict) else {}
            if reply_body.get("error"):
                logger.warning("session_request_rejected", topic=request.topic, error=str(reply_body["error"]))
                responded = True
                await self._respond_error(request, WalletErrorCode.REJECTED, str(reply_body["error"]))
                return

            responded = True
            await self._wallet.respond_session_request(
                topic=request.topic,
                response={"id": request.request_id, "jsonrpc": JSONRPC_VERSION, "result": reply_body.get("result") or {}},
            )
            logger.info("session_request_completed", topic=request.topic, request_id=request.request_id)
        except Exception as exc:
            logger.exception("session_request_failed", topic=request.topic, error=str(exc))
            if not responded:
                await self._respond_error(request, WalletErrorCode.INTERNAL, str(exc))

    async def on_session_delete(self, delete: SessionDelete) -> None:
        context = await self._sessions.remove(delete.topic)
        logger.info("session_deleted", topic=delete.topic, event_id=delete.event_id, known=context is not None)
        await self._sink.publish(
            StatusEvent(
                status=PairingStatus.ENDED,
                client_id=delete.topic,
                address=context.address if context else None,
                metadata=context.metadata if context else None,
                message=ENDED_MESSAGE,
            )
        )

    def _select_namespace(self, proposal: SessionProposal) -> tuple[dict[str, Any], list[str]] | None:
        for namespaces in (proposal.required_namespaces, proposal.optional_namespaces):
            namespace = namespaces.get(self._chain_namespace)
            if not isinstance(namespace, dict):
                continue
            raw_chains = namespace.get("chains")
            offered = [chain for chain in raw_chains if isinstance(chain, str)] if isinstance(raw_chains, list) else []
            chains = [chain for chain in dict.fromkeys(offered) if chain in self._accepted_chains]
            if chains:
                return namespace, chains
        return None

    def _account_id(self, chain: str, address: str) -> str:
        if ":" in chain:
            return f"{chain}:{address}"
        return f"{self._chain_namespace}:{chain}:{address}"

    async def _respond_error(self, request: SessionRequest, code: int, message: str) -> None:
        await self._wallet.respond_session_request(
            topic=request.topic,
            response={"id": request.request_id, "jsonrpc": JSONRPC_VERSION, "error": {"code": code, "message": message}},
        )

    async def _publish_failure(self, exc: Exception) -> None:
        try:
            await self._sink.publish(StatusEvent(status=PairingStatus.FAILED, error=str(exc)))
        except Exception as publish_exc:
            logger.error("failure_event_publish_failed", error=str(publish_exc))

    def _guard(
        self,
        label: str,
        parse: Callable[[dict[str, Any]], _EventT],
        handler: Callable[[_EventT], Awaitable[None]],
        *,
        publish_parse_failure: bool = False,
    ) -> WalletEventHandler:
        """지갑 라이브러리에 넘길 핸들러예요. 어떤 예외도 라이브러리 쪽으로 새지 않아요."""

        async def wrapped(event: dict[str, Any]) -> None:
            try:
                parsed = parse(event)
            except Exception as exc:
                logger.exception("wallet_event_malformed", handler=label, error=str(exc))
                if publish_parse_failure:
                    await self._publish_failure(exc)
                return
            try:
                await handler(parsed)
            except Exception as exc:
                logger.exception("handler_exception", handler=label, error=str(exc))

        return wrapped
