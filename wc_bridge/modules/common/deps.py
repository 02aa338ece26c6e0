from __future__ import annotations

from fastapi import HTTPException, Request, status

from wc_bridge.app.store import InMemoryBindingStore, InMemorySessionStore
from wc_bridge.modules.bridge.consumer import PairingRequestConsumer


def get_binding_store(request: Request) -> InMemoryBindingStore:
    return request.app.state.binding_store  # type: ignore[no-any-return]


def get_session_store(request: Request) -> InMemorySessionStore:
    return request.app.state.session_store  # type: ignore[no-any-return]


def get_consumer(request: Request) -> PairingRequestConsumer:
    consumer = getattr(request.app.state, "pairing_consumer", None)
    if not isinstance(consumer, PairingRequestConsumer) or not consumer.running:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="페어링 요청 소비자가 실행 중이 아니에요.")
    return consumer
