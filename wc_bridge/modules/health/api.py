from __future__ import annotations

from fastapi import APIRouter, Request

from wc_bridge.modules.common.deps import get_binding_store, get_consumer, get_session_store

router = APIRouter()


@router.get("/health/live")
async def health_live() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/ready")
async def health_ready(request: Request) -> dict[str, str | int]:
    get_consumer(request)
    return {
        "status": "ok",
        "pending_bindings": await get_binding_store(request).pending_count(),
        "active_sessions": await get_session_store(request).count(),
    }
