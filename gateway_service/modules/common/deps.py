from __future__ import annotations

from fastapi import HTTPException, Request, status

from gateway_service.app.auth.models import AuthenticatedUser, Credential, extract_bearer_token
from gateway_service.app.auth.resolver import AuthorizationResolver
from gateway_service.app.gateway import McpGateway
from gateway_service.app.settings import Settings, settings


def get_settings(request: Request) -> Settings:
    configured = getattr(request.app.state, "settings", None)
    if isinstance(configured, Settings):
        return configured
    return settings


def get_gateway(request: Request) -> McpGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if not isinstance(gateway, McpGateway):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="게이트웨이가 아직 준비되지 않았어요.")
    return gateway


def get_resolver(request: Request) -> AuthorizationResolver:
    resolver = getattr(request.app.state, "resolver", None)
    if resolver is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="인증 리졸버가 아직 준비되지 않았어요.")
    return resolver  # type: ignore[no-any-return]


async def require_user(request: Request) -> AuthenticatedUser:
    """Bearer 토큰을 검증해서 사용자를 돌려줘요. 실패하면 `AuthenticationError`가 401로 바뀌어요."""
    credential = Credential(
        token=extract_bearer_token(request.headers.get("authorization")),
        metadata={"client_host": request.client.host if request.client else ""},
    )
    return await get_resolver(request).resolve(credential)
