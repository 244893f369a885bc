from __future__ import annotations

import asyncio
import sys

import uvicorn

from gateway_service.app.auth.models import Credential
from gateway_service.app.auth.resolver import DevelopmentResolver
from gateway_service.app.settings import Settings, settings
from gateway_service.app.stdio import serve_stdio
from gateway_service.bootstrap import build_runtime_components
from libs.common.logging import configure_logging


def _run(*, reload_enabled: bool) -> None:
    uvicorn.run(
        "gateway_service.app.main:app",
        host=settings.host,
        port=settings.port,
        reload=reload_enabled,
    )


def main() -> None:
    _run(reload_enabled=False)


def main_dev() -> None:
    _run(reload_enabled=True)


async def run_stdio(runtime_settings: Settings) -> None:
    """로컬 에이전트가 프로세스로 띄우는 단일 세션이에요. 토큰 대신 개발자 권한으로 capability를 골라요."""
    resolver = DevelopmentResolver(runtime_settings.dev_user_permissions)
    components = await build_runtime_components(runtime_settings, resolver=resolver)
    try:
        user = await resolver.resolve(Credential(token=None))
        await serve_stdio(components.gateway, user, stdin=sys.stdin, stdout=sys.stdout)
    finally:
        await components.aclose()


def main_stdio() -> None:
    configure_logging(settings.log_level, stream=sys.stderr)
    asyncio.run(run_stdio(settings))
