from __future__ import annotations

from pathlib import Path
from typing import Any

import httpx

from gateway_service.app.clients.base import ServiceClient, path_segment
from gateway_service.app.completion_cache import CompletionCache, cache_key
from gateway_service.app.settings import VaultSettings
from libs.common.errors import (
    ConfigurationError,
    NotFoundError,
    OperationTimeoutError,
    UpstreamRequestError,
    UpstreamTransientError,
    ValidationError,
)
from libs.common.logging import get_logger
from libs.common.retry import poll_until

logger = get_logger("gateway_service.clients.vault")

ROLE_PATH_SEPARATOR = "--"

# 인증 방식 타입별 역할 목록 경로예요
_ROLE_SUFFIXES = {
    "approle": "role",
    "aws": "role",
    "azure": "role",
    "gcp": "role",
    "kubernetes": "role",
    "jwt": "role",
    "oidc": "role",
    "ldap": "groups",
    "userpass": "users",
    "cert": "certs",
    "github": "map/teams",
}


def flatten_role_path(mount: str, role: str) -> str:
    """``auth/kubernetes/prod`` 마운트의 ``app`` 역할을 ``kubernetes--prod--app``처럼 URI에 안전한 형태로 바꿔요."""
    return ROLE_PATH_SEPARATOR.join([*mount.strip("/").split("/"), role])


def split_role_path(role_path: str) -> tuple[str, str]:
    segments = [segment for segment in role_path.split(ROLE_PATH_SEPARATOR) if segment]
    if len(segments) < 2:
        raise ValidationError(
            f"역할 경로 형식이 올바르지 않아요: {role_path}. '<mount>{ROLE_PATH_SEPARATOR}<role>' 형식이어야 해요."
        )
    return "/".join(segments[:-1]), segments[-1]


class VaultClient(ServiceClient):
    service_name = "vault"

    def __init__(
        self,
        settings: VaultSettings,
        *,
        cache: CompletionCache,
        timeout_seconds: float,
        http_client: httpx.AsyncClient | None = None,
        poll_attempts: int = 6,
        poll_base_delay_seconds: float = 0.25,
        poll_max_delay_seconds: float = 2.0,
    ) -> None:
        super().__init__(
            base_url=f"{settings.addr.rstrip('/')}/v1",
            cache=cache,
            timeout_seconds=timeout_seconds,
            http_client=http_client,
        )
        self._settings = settings
        self._poll_attempts = poll_attempts
        self._poll_base_delay_seconds = poll_base_delay_seconds
        self._poll_max_delay_seconds = poll_max_delay_seconds

    @property
    def web_url(self) -> str:
        return self._settings.addr.rstrip("/")

    def _token(self) -> str:
        if self._settings.token:
            return self._settings.token
        token_path = Path(self._settings.token_file).expanduser()
        if token_path.is_file():
            token = token_path.read_text(encoding="utf-8").strip()
            if token:
                return token
        raise ConfigurationError("VAULT_TOKEN 환경변수나 ~/.vault-token 파일이 필요해요.")

    async def _auth_headers(self) -> dict[str, str]:
        headers = {"X-Vault-Token": self._token()}
        if self._settings.namespace:
            headers["X-Vault-Namespace"] = self._settings.namespace
        return headers

    # ── 목록 조회 (자동완성 겸용, 예외 없음) ─────────────────────────────────

    async def list_policies(self, partial: str | None = None) -> list[str]:
        async def fetch() -> list[str]:
            body = await self._request("GET", "sys/policies/acl")
            return sorted(_data(body).get("keys", []))

        return await self._cached_listing(cache_key("vault", "policies"), fetch, partial=partial)

    async def list_auth_methods(self, partial: str | None = None) -> list[str]:
        async def fetch() -> list[str]:
            mounts = await self._auth_mounts()
            return sorted(mounts)

        return await self._cached_listing(cache_key("vault", "auth-methods"), fetch, partial=partial)

    async def list_engines(self, partial: str | None = None) -> list[str]:
        async def fetch() -> list[str]:
            body = await self._request("GET", "sys/mounts")
            return sorted(_data(body))

        return await self._cached_listing(cache_key("vault", "engines"), fetch, partial=partial)

    async def list_roles(self, partial: str | None = None) -> list[str]:
        """역할을 지원하는 모든 인증 방식의 역할을 ``mount--role`` 형태로 모아요."""

        async def fetch() -> list[str]:
            roles: list[str] = []
            for mount, config in (await self._auth_mounts()).items():
                suffix = _ROLE_SUFFIXES.get(str(config.get("type", "")))
                if suffix is None:
                    continue
                clean_mount = mount.strip("/")
                try:
                    body = await self._request("LIST", f"auth/{clean_mount}/{suffix}")
                except (NotFoundError, UpstreamRequestError):
                    # 역할이 하나도 없는 마운트는 404를 돌려줘요
                    continue
                roles.extend(flatten_role_path(clean_mount, role) for role in _data(body).get("keys", []))
            return sorted(roles)

        return await self._cached_listing(cache_key("vault", "roles"), fetch, partial=partial)

    async def _auth_mounts(self) -> dict[str, dict[str, Any]]:
        body = await self._request("GET", "sys/auth")
        mounts = _data(body)
        return {path: config for path, config in mounts.items() if isinstance(config, dict)}

    # ── 단건 조회 ─────────────────────────────────────────────────────────

    async def read_policy(self, name: str) -> dict[str, Any]:
        body = await self._request("GET", f"sys/policies/acl/{path_segment(name)}")
        return _data(body)

    async def read_role(self, role_path: str) -> dict[str, Any]:
        mount, role = split_role_path(role_path)
        mount_type = mount.split("/")[0]
        suffix = _ROLE_SUFFIXES.get(mount_type, "role")
        mount_path = "/".join(path_segment(segment) for segment in mount.split("/"))
        body = await self._request("GET", f"auth/{mount_path}/{suffix}/{path_segment(role)}")
        return {"mount": mount, "role": role, **_data(body)}

    async def read_group(self, name: str) -> dict[str, Any]:
        body = await self._request("GET", f"identity/group/name/{path_segment(name)}")
        return _data(body)

    # ── 변경 ─────────────────────────────────────────────────────────────

    async def upsert_policy(self, name: str, policy: str) -> tuple[dict[str, Any], bool]:
        """정책을 쓰고 다시 읽어 돌려줘요. 두 번째 값은 새로 만들었는지 여부예요."""
        try:
            await self.read_policy(name)
            created = False
        except NotFoundError:
            created = True

        await self._request("PUT", f"sys/policies/acl/{path_segment(name)}", json={"policy": policy})
        self._invalidate(cache_key("vault", "policies"))
        return await self.read_policy(name), created

    async def create_group(self, name: str, policies: list[str], *, group_type: str = "external") -> dict[str, Any]:
        body = await self._request(
            "POST",
            "identity/group",
            json={"name": name, "type": group_type, "policies": policies},
        )
        return _data(body)

    async def create_group_alias(self, *, alias_name: str, canonical_id: str, mount_accessor: str) -> dict[str, Any]:
        body = await self._request(
            "POST",
            "identity/group-alias",
            json={"name": alias_name, "canonical_id": canonical_id, "mount_accessor": mount_accessor},
        )
        return _data(body)

    async def create_external_group(
        self,
        *,
        name: str,
        external_group_id: str,
        policies: list[str],
        mount_accessor: str | None = None,
    ) -> dict[str, Any]:
        """외부 그룹을 만들고, 조회 가능해질 때까지 기다린 다음 외부 IdP 그룹에 alias를 걸어요."""
        accessor = mount_accessor or self._settings.oidc_mount_accessor
        if not accessor:
            raise ConfigurationError("mountAccessor 인자나 VAULT_OIDC_MOUNT_ACCESSOR 설정이 필요해요.")

        group = await self.create_group(name, policies)
        group_id = group.get("id")
        if not isinstance(group_id, str) or not group_id:
            raise UpstreamRequestError("Vault가 생성한 그룹의 ID를 돌려주지 않았어요.", status_code=502)

        visible = await poll_until(
            lambda: self.read_group(name),
            predicate=lambda record: record.get("id") == group_id,
            attempts=self._poll_attempts,
            base_delay_seconds=self._poll_base_delay_seconds,
            max_delay_seconds=self._poll_max_delay_seconds,
            retry_filter=lambda exc: isinstance(exc, (NotFoundError, UpstreamTransientError)),
        )
        if visible is None:
            raise OperationTimeoutError(f"Vault 그룹 '{name}'이 제때 조회되지 않았어요.")

        alias = await self.create_group_alias(
            alias_name=external_group_id,
            canonical_id=group_id,
            mount_accessor=accessor,
        )
        logger.info("vault_group_created", group=name, group_id=group_id, external_group_id=external_group_id)
        return {"group": visible, "alias": alias}


def _data(body: Any) -> dict[str, Any]:
    if isinstance(body, dict):
        data = body.get("data")
        if isinstance(data, dict):
            return data
    return {}
