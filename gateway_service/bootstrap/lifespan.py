from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from gateway_service.app.settings import Settings
from gateway_service.bootstrap.container import RuntimeComponents, build_runtime_components
from libs.common.logging import get_logger

logger = get_logger("gateway_service.lifespan")


def create_lifespan(settings: Settings, components: RuntimeComponents | None = None):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        runtime = components or await build_runtime_components(settings)

        app.state.settings = settings
        app.state.registry = runtime.registry
        app.state.resolver = runtime.resolver
        app.state.gateway = runtime.gateway
        app.state.completion_cache = runtime.cache
        logger.info("gateway_started", environment=settings.environment, **runtime.registry.counts())

        try:
            yield
        finally:
            closed = runtime.gateway.close_all()
            logger.info("gateway_stopping", closed_sessions=closed)
            await runtime.aclose()

    return lifespan
