from __future__ import annotations

from fastapi import FastAPI

from gateway_service.app.settings import Settings, settings
from gateway_service.bootstrap import RuntimeComponents, create_lifespan
from gateway_service.modules import build_api_router, build_mcp_router
from gateway_service.modules.health.api import public_router as public_health_router
from libs.common.http_handlers import register_exception_handlers
from libs.common.logging import configure_logging


def create_app(app_settings: Settings | None = None, components: RuntimeComponents | None = None) -> FastAPI:
    """애플리케이션을 만들어요. 테스트는 미리 만든 `components`를 넘겨 외부 연결 없이 띄워요."""
    resolved_settings = app_settings or settings
    configure_logging(resolved_settings.log_level)

    application = FastAPI(
        title=resolved_settings.service_name,
        version=resolved_settings.service_version,
        lifespan=create_lifespan(resolved_settings, components),
    )
    application.include_router(public_health_router)
    application.include_router(build_mcp_router(legacy_sse_enabled=resolved_settings.legacy_sse_enabled))
    application.include_router(build_api_router())
    register_exception_handlers(application, "gateway_service.errors")
    return application


app = create_app()
