"""Bearer 토큰을 사용자 신원과 권한 목록으로 바꾸는 리졸버예요.

세션을 새로 만드는 요청마다 한 번만 호출돼요. 실패는 모두 `AuthenticationError`로
올라가고 재시도하지 않아요.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from typing import Any, Protocol

import httpx
import jwt

from gateway_service.app.auth.models import AuthenticatedUser, Credential
from gateway_service.app.auth.permissions import load_permission_mapping, map_roles_to_permissions
from gateway_service.app.settings import Settings
from libs.common.errors import AuthenticationError, ConfigurationError
from libs.common.logging import get_logger

logger = get_logger("gateway_service.auth.resolver")


class AuthorizationResolver(Protocol):
    async def resolve(self, credential: Credential) -> AuthenticatedUser:
        ...

    async def aclose(self) -> None:
        ...


class DevelopmentResolver:
    """로컬 개발용이에요. 토큰을 보지 않고 고정된 개발자 신원을 돌려줘요."""

    def __init__(self, permissions: list[str]) -> None:
        self._permissions = tuple(permissions)

    async def resolve(self, credential: Credential) -> AuthenticatedUser:
        del credential
        return AuthenticatedUser(
            id="local-developer",
            email="developer@localhost",
            name="Local Developer",
            roles=("developer",),
            permissions=self._permissions,
        )

    async def aclose(self) -> None:
        return None


class JwksProvider:
    """JWKS 문서를 httpx로 받아 일정 시간 캐싱해요. 모르는 ``kid``가 오면 한 번 새로 받아요."""

    def __init__(
        self,
        jwks_uri: str,
        *,
        cache_seconds: float,
        timeout_seconds: float,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._jwks_uri = jwks_uri
        self._cache_seconds = cache_seconds
        self._clock = clock
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)
        self._keys: dict[str, jwt.PyJWK] = {}
        self._fetched_at: float | None = None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_signing_key(self, kid: str) -> jwt.PyJWK:
        if self._is_stale():
            await self._refresh()
        key = self._keys.get(kid)
        if key is None:
            await self._refresh()
            key = self._keys.get(kid)
        if key is None:
            raise AuthenticationError("토큰 서명 키를 찾지 못했어요.")
        return key

    def _is_stale(self) -> bool:
        if self._fetched_at is None:
            return True
        return self._clock() - self._fetched_at >= self._cache_seconds

    async def _refresh(self) -> None:
        try:
            response = await self._client.get(self._jwks_uri)
        except httpx.HTTPError as exc:
            raise AuthenticationError("서명 키 목록을 가져오지 못했어요.") from exc
        if response.status_code >= 400:
            raise AuthenticationError(f"서명 키 목록 요청이 실패했어요. status={response.status_code}")

        try:
            key_set = jwt.PyJWKSet.from_dict(response.json())
        except (ValueError, jwt.PyJWTError) as exc:
            raise AuthenticationError("서명 키 목록 형식이 올바르지 않아요.") from exc

        self._keys = {key.key_id: key for key in key_set.keys if key.key_id}
        self._fetched_at = self._clock()
        logger.info("jwks_refreshed", key_count=len(self._keys))


class EntraTokenResolver:
    """Microsoft Entra ID 액세스 토큰을 검증해요."""

    def __init__(
        self,
        *,
        jwks: JwksProvider,
        audience: str,
        issuer: str,
        tenant_id: str | None,
        permission_mapping: Mapping[str, list[str]],
        role_claim: str = "roles",
        algorithms: tuple[str, ...] = ("RS256",),
        leeway_seconds: float = 0.0,
    ) -> None:
        self._jwks = jwks
        self._audience = audience
        self._issuer = issuer
        self._tenant_id = tenant_id
        self._permission_mapping = permission_mapping
        self._role_claim = role_claim
        self._algorithms = list(algorithms)
        self._leeway_seconds = leeway_seconds

    async def aclose(self) -> None:
        await self._jwks.aclose()

    async def resolve(self, credential: Credential) -> AuthenticatedUser:
        token = credential.token
        if not token:
            raise AuthenticationError("Authorization 헤더에 Bearer 토큰이 없어요.")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as exc:
            raise AuthenticationError("토큰 형식이 올바르지 않아요.") from exc

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise AuthenticationError("토큰에 키 ID(kid)가 없어요.")

        signing_key = await self._jwks.get_signing_key(kid)
        payload = self._decode(token, signing_key)

        if self._tenant_id and payload.get("tid") != self._tenant_id:
            raise AuthenticationError("토큰 테넌트가 올바르지 않아요.")

        return self._to_user(payload)

    def _decode(self, token: str, signing_key: jwt.PyJWK) -> dict[str, Any]:
        options: dict[str, Any] = {"require": ["exp", "aud"]}
        kwargs: dict[str, Any] = {}
        if self._issuer:
            kwargs["issuer"] = self._issuer
            options["require"].append("iss")

        try:
            return jwt.decode(
                token,
                signing_key.key,
                algorithms=self._algorithms,
                audience=self._audience,
                leeway=self._leeway_seconds,
                options=options,
                **kwargs,
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("토큰이 만료됐어요.") from exc
        except jwt.ImmatureSignatureError as exc:
            raise AuthenticationError("토큰이 아직 유효하지 않아요.") from exc
        except jwt.InvalidIssuerError as exc:
            raise AuthenticationError("토큰 발급자(issuer)가 올바르지 않아요.") from exc
        except jwt.InvalidAudienceError as exc:
            raise AuthenticationError("토큰 대상(audience)이 올바르지 않아요.") from exc
        except jwt.PyJWTError as exc:
            raise AuthenticationError(f"토큰 검증에 실패했어요: {exc}") from exc

    def _to_user(self, payload: dict[str, Any]) -> AuthenticatedUser:
        roles = _read_roles(payload, self._role_claim)
        email = _first_str(payload, "email", "preferred_username", "upn")
        given_name = _first_str(payload, "given_name")
        family_name = _first_str(payload, "family_name")
        name = _first_str(payload, "name") or f"{given_name} {family_name}".strip() or email
        groups_value = payload.get("groups")
        groups = tuple(item for item in groups_value if isinstance(item, str)) if isinstance(groups_value, list) else ()
        tenant_value = payload.get("tid")
        return AuthenticatedUser(
            id=_first_str(payload, "sub", "oid"),
            email=email,
            name=name,
            roles=roles,
            permissions=map_roles_to_permissions(roles, self._permission_mapping),
            tenant_id=tenant_value if isinstance(tenant_value, str) else None,
            groups=groups,
        )


def build_resolver(settings: Settings, *, http_client: httpx.AsyncClient | None = None) -> AuthorizationResolver:
    """설정에 맞는 리졸버를 만들어요. 운영 모드에서 필수 값이 빠지면 바로 실패해요."""
    if settings.is_development:
        logger.warning("auth_bypass_enabled", environment=settings.environment, permissions=settings.dev_user_permissions)
        return DevelopmentResolver(settings.dev_user_permissions)

    jwks_uri = settings.resolved_jwks_uri
    if not jwks_uri or not settings.auth_client_id:
        raise ConfigurationError(
            "인증 설정이 비어 있어요. GATEWAY_AUTH_TENANT_ID(또는 GATEWAY_AUTH_JWKS_URI)와 "
            "GATEWAY_AUTH_CLIENT_ID를 설정해야 해요."
        )

    jwks = JwksProvider(
        jwks_uri,
        cache_seconds=settings.auth_jwks_cache_seconds,
        timeout_seconds=settings.request_timeout_seconds,
        http_client=http_client,
    )
    return EntraTokenResolver(
        jwks=jwks,
        audience=settings.auth_client_id,
        issuer=settings.resolved_issuer,
        tenant_id=settings.auth_tenant_id or None,
        permission_mapping=load_permission_mapping(settings.auth_permission_mapping),
        role_claim=settings.auth_role_claim,
    )


def _read_roles(payload: dict[str, Any], claim_path: str) -> tuple[str, ...]:
    current: Any = payload
    for part in claim_path.split("."):
        if not isinstance(current, dict):
            return ()
        current = current.get(part)
    if isinstance(current, str):
        return (current,)
    if isinstance(current, list):
        return tuple(item for item in current if isinstance(item, str))
    return ()


def _first_str(payload: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return ""
