from __future__ import annotations

from typing import Any

import httpx

from gateway_service.app.clients.base import ServiceClient, path_segment
from gateway_service.app.completion_cache import CompletionCache, cache_key
from gateway_service.app.settings import ArtifactorySettings
from libs.common.errors import ConfigurationError, NotFoundError


class ArtifactoryClient(ServiceClient):
    service_name = "artifactory"

    def __init__(
        self,
        settings: ArtifactorySettings,
        *,
        cache: CompletionCache,
        timeout_seconds: float,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            base_url=f"{settings.url.rstrip('/')}/api",
            cache=cache,
            timeout_seconds=timeout_seconds,
            http_client=http_client,
        )
        self._settings = settings

    @property
    def web_url(self) -> str:
        return self._settings.url.rstrip("/")

    async def _auth_headers(self) -> dict[str, str]:
        if not self._settings.access_token:
            raise ConfigurationError("ARTIFACTORY_ACCESS_TOKEN 환경변수가 필요해요.")
        return {"Authorization": f"Bearer {self._settings.access_token}"}

    async def list_repositories(self, partial: str | None = None) -> list[str]:
        async def fetch() -> list[str]:
            body = await self._request("GET", "repositories")
            entries = body if isinstance(body, list) else []
            return sorted(entry["key"] for entry in entries if isinstance(entry, dict) and isinstance(entry.get("key"), str))

        return await self._cached_listing(cache_key("artifactory", "repositories"), fetch, partial=partial)

    async def read_repository(self, key: str) -> dict[str, Any]:
        return await self._request("GET", f"repositories/{path_segment(key)}")

    async def upsert_repository(self, key: str, config: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        """있으면 갱신(POST)하고 없으면 생성(PUT)해요. 두 번째 값은 새로 만들었는지 여부예요."""
        try:
            existing: dict[str, Any] | None = await self.read_repository(key)
        except NotFoundError:
            existing = None

        payload = {**config, "key": key}
        if existing is None:
            await self._request("PUT", f"repositories/{path_segment(key)}", json=payload)
        else:
            await self._request("POST", f"repositories/{path_segment(key)}", json=payload)

        self._invalidate(cache_key("artifactory", "repositories"))
        return await self.read_repository(key), existing is None
