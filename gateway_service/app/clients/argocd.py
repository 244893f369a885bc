from __future__ import annotations

from typing import Any

import httpx

from gateway_service.app.clients.base import ServiceClient, item_names, path_segment
from gateway_service.app.completion_cache import CompletionCache, cache_key
from gateway_service.app.settings import ArgoCdSettings
from libs.common.errors import ConfigurationError


class ArgoCdClient(ServiceClient):
    service_name = "argocd"

    def __init__(
        self,
        settings: ArgoCdSettings,
        *,
        cache: CompletionCache,
        timeout_seconds: float,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            base_url=f"{settings.server.rstrip('/')}/api/v1",
            cache=cache,
            timeout_seconds=timeout_seconds,
            http_client=http_client,
        )
        self._settings = settings

    @property
    def web_url(self) -> str:
        return self._settings.server.rstrip("/")

    async def _auth_headers(self) -> dict[str, str]:
        if not self._settings.auth_token:
            raise ConfigurationError("ARGOCD_AUTH_TOKEN 환경변수가 필요해요.")
        return {"Authorization": f"Bearer {self._settings.auth_token}"}

    async def list_applications(self, partial: str | None = None) -> list[str]:
        async def fetch() -> list[str]:
            return item_names(await self._request("GET", "applications"))

        return await self._cached_listing(cache_key("argocd", "applications"), fetch, partial=partial)

    async def list_projects(self, partial: str | None = None) -> list[str]:
        async def fetch() -> list[str]:
            return item_names(await self._request("GET", "projects"))

        return await self._cached_listing(cache_key("argocd", "projects"), fetch, partial=partial)

    async def read_application(self, name: str) -> dict[str, Any]:
        return await self._request("GET", f"applications/{path_segment(name)}")

    async def read_project(self, name: str) -> dict[str, Any]:
        return await self._request("GET", f"projects/{path_segment(name)}")

    async def sync_application(
        self,
        name: str,
        *,
        revision: str | None = None,
        prune: bool = False,
        dry_run: bool = False,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"prune": prune, "dryRun": dry_run}
        if revision:
            payload["revision"] = revision
        return await self._request("POST", f"applications/{path_segment(name)}/sync", json=payload)

