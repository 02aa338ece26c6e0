from __future__ import annotations

from dataclasses import dataclass

from libs.common.errors import UpstreamTransientError
from libs.common.retry import retry_async
from wc_bridge.app.broker import RedisBroker, is_transient_broker_error
from wc_bridge.app.event_sink import QueueEventSink
from wc_bridge.app.rpc import CorrelatedRpc
from wc_bridge.app.settings import Settings
from wc_bridge.app.store import InMemoryBindingStore, InMemorySessionStore
from wc_bridge.app.wallet import create_wallet_client
from wc_bridge.modules.bridge.consumer import PairingRequestConsumer
from wc_bridge.modules.bridge.contracts import WalletClientProtocol
from wc_bridge.modules.bridge.orchestrator import BridgeOrchestrator


@dataclass(slots=True)
class RuntimeComponents:
    broker: RedisBroker
    wallet: WalletClientProtocol
    sink: QueueEventSink
    rpc: CorrelatedRpc
    binding_store: InMemoryBindingStore
    session_store: InMemorySessionStore
    orchestrator: BridgeOrchestrator
    consumer: PairingRequestConsumer


async def build_runtime_components(
    settings: Settings,
    *,
    broker: RedisBroker | None = None,
    wallet: WalletClientProtocol | None = None,
) -> RuntimeComponents:
    broker = broker or RedisBroker.from_url(settings.redis_url)
    try:
        await retry_async(
            broker.ping,
            retries=settings.redis_connect_retries,
            base_delay_seconds=0.5,
            max_delay_seconds=5.0,
            retry_filter=is_transient_broker_error,
        )
    except Exception as exc:
        await broker.aclose()
        raise UpstreamTransientError("큐 브로커에 연결하지 못했어요.") from exc

    if wallet is None:
        wallet = await create_wallet_client(
            settings.wallet_factory,
            project_id=settings.wc_project_id,
            metadata=settings.wallet_metadata(),
        )

    sink = QueueEventSink(broker, settings.pairing_events_list)
    rpc = CorrelatedRpc(
        broker=broker,
        request_list=settings.sign_request_list,
        reply_prefix=settings.sign_reply_prefix,
        poll_tick_seconds=settings.reply_poll_tick_seconds,
    )
    binding_store = InMemoryBindingStore()
    session_store = InMemorySessionStore()
    orchestrator = BridgeOrchestrator(
        wallet=wallet,
        rpc=rpc,
        sink=sink,
        bindings=binding_store,
        sessions=session_store,
        chain_namespace=settings.chain_namespace,
        accepted_chains=settings.accepted_chains,
        default_methods=settings.default_methods,
        sign_timeout_seconds=settings.sign_timeout_seconds,
    )
    consumer = PairingRequestConsumer(
        broker=broker,
        orchestrator=orchestrator,
        list_name=settings.pairing_request_list,
        backoff_seconds=settings.consumer_backoff_seconds,
    )

    return RuntimeComponents(
        broker=broker,
        wallet=wallet,
        sink=sink,
        rpc=rpc,
        binding_store=binding_store,
        session_store=session_store,
        orchestrator=orchestrator,
        consumer=consumer,
    )
