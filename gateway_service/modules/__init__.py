from __future__ import annotations

from fastapi import APIRouter


def build_api_router() -> APIRouter:
    from gateway_service.modules.health.api import router as health_router

    api_router = APIRouter(prefix="/v1")
    api_router.include_router(health_router)
    return api_router


def build_mcp_router(*, legacy_sse_enabled: bool) -> APIRouter:
    from gateway_service.modules.mcp.api import legacy_router, router

    mcp_router = APIRouter()
    mcp_router.include_router(router)
    if legacy_sse_enabled:
        mcp_router.include_router(legacy_router)
    return mcp_router


__all__ = ["build_api_router", "build_mcp_router"]
