from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import httpx

from gateway_service.app.clients.base import ServiceClient, raise_for_upstream_status
from gateway_service.app.completion_cache import CompletionCache, cache_key
from gateway_service.app.settings import EntraSettings
from libs.common.errors import ConfigurationError, NotFoundError, UpstreamAccessError, UpstreamTransientError

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
GROUP_FIELDS = "id,displayName,description,groupTypes,securityEnabled,mailEnabled,mail,visibility,createdDateTime"
_MAX_PAGES = 20
_TOKEN_EXPIRY_MARGIN_SECONDS = 60


class EntraClient(ServiceClient):
    """Microsoft Graph 클라이언트예요. client-credentials 토큰을 만료 직전까지 재사용해요."""

    service_name = "entra"

    def __init__(
        self,
        settings: EntraSettings,
        *,
        cache: CompletionCache,
        timeout_seconds: float,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(
            base_url=settings.graph_url,
            cache=cache,
            timeout_seconds=timeout_seconds,
            http_client=http_client,
        )
        self._settings = settings
        self._clock = clock
        self._access_token: str | None = None
        self._token_expires_at = 0.0

    async def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {await self._get_access_token()}"}

    async def _get_access_token(self) -> str:
        if self._access_token and self._clock() < self._token_expires_at:
            return self._access_token

        settings = self._settings
        if not (settings.tenant_id and settings.client_id and settings.client_secret):
            raise ConfigurationError("ENTRA_TENANT_ID, ENTRA_CLIENT_ID, ENTRA_CLIENT_SECRET 환경변수가 필요해요.")

        token_url = f"{settings.login_url.rstrip('/')}/{settings.tenant_id}/oauth2/v2.0/token"
        try:
            response = await self._client.post(
                token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": settings.client_id,
                    "client_secret": settings.client_secret,
                    "scope": GRAPH_SCOPE,
                },
            )
        except httpx.HTTPError as exc:
            raise UpstreamTransientError(f"Entra 토큰 발급 요청에 실패했어요: {exc}") from exc

        if response.status_code in (400, 401):
            raise UpstreamAccessError("Entra 클라이언트 자격 증명이 거부됐어요.")
        raise_for_upstream_status(self.service_name, response)

        body = response.json()
        token = body.get("access_token")
        if not isinstance(token, str) or not token:
            raise UpstreamTransientError("Entra 토큰 응답에 access_token이 없어요.")
        expires_in = float(body.get("expires_in", 3600))
        self._access_token = token
        self._token_expires_at = self._clock() + max(expires_in - _TOKEN_EXPIRY_MARGIN_SECONDS, 0.0)
        return token

    async def list_groups(self, partial: str | None = None) -> list[str]:
        async def fetch() -> list[str]:
            names: list[str] = []
            next_url: str | None = "groups"
            params: dict[str, Any] | None = {"$select": "displayName", "$top": "999"}
            for _ in range(_MAX_PAGES):
                if next_url is None:
                    break
                body = await self._request("GET", next_url, params=params)
                names.extend(
                    item["displayName"]
                    for item in body.get("value", [])
                    if isinstance(item, dict) and isinstance(item.get("displayName"), str)
                )
                next_url = body.get("@odata.nextLink")
                # nextLink에는 쿼리가 이미 들어 있어요
                params = None
            return sorted(set(names))

        return await self._cached_listing(cache_key("entra", "groups"), fetch, partial=partial)

    async def read_group(self, display_name: str) -> dict[str, Any]:
        escaped = display_name.replace("'", "''")
        body = await self._request(
            "GET",
            "groups",
            params={"$filter": f"displayName eq '{escaped}'", "$select": GROUP_FIELDS},
        )
        groups = body.get("value") or []
        if not groups:
            raise NotFoundError(f"Entra 그룹 '{display_name}'을 찾지 못했어요.")
        return groups[0]
