from __future__ import annotations

from fastapi import APIRouter


def build_api_router() -> APIRouter:
    from wc_bridge.modules.health.api import router as health_router

    api_router = APIRouter(prefix="/v1")
    api_router.include_router(health_router)
    return api_router


__all__ = ["build_api_router"]
