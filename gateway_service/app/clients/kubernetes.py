from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from gateway_service.app.clients.base import ServiceClient, item_names, path_segment
from gateway_service.app.completion_cache import DISCOVERY_TTL_SECONDS, CompletionCache, cache_key
from gateway_service.app.settings import KubernetesSettings
from libs.common.errors import ConfigurationError, DomainError, NotFoundError
from libs.common.logging import get_logger

logger = get_logger("gateway_service.clients.kubernetes")

CLUSTER_SCOPE = "cluster"


@dataclass(slots=True, frozen=True)
class ApiResource:
    plural: str
    kind: str
    group_version: str
    namespaced: bool

    def collection_path(self, namespace: str | None) -> str:
        prefix = "api" if "/" not in self.group_version else "apis"
        base = f"{prefix}/{self.group_version}"
        if self.namespaced and namespace:
            return f"{base}/namespaces/{path_segment(namespace)}/{path_segment(self.plural)}"
        return f"{base}/{path_segment(self.plural)}"


class KubernetesClient(ServiceClient):
    service_name = "kubernetes"

    def __init__(
        self,
        settings: KubernetesSettings,
        *,
        cache: CompletionCache,
        timeout_seconds: float,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        verify: bool | str = settings.verify_tls
        if settings.verify_tls and Path(settings.ca_file).is_file():
            verify = settings.ca_file
        super().__init__(
            base_url=settings.api_url,
            cache=cache,
            timeout_seconds=timeout_seconds,
            http_client=http_client,
            verify=verify,
        )
        self._settings = settings
        self._clock = clock
        self._api_resources: list[ApiResource] | None = None
        self._discovered_at = 0.0

    async def _auth_headers(self) -> dict[str, str]:
        token_path = Path(self._settings.token_file).expanduser()
        if not token_path.is_file():
            raise ConfigurationError(f"쿠버네티스 서비스 어카운트 토큰 파일이 없어요: {token_path}")
        token = token_path.read_text(encoding="utf-8").strip()
        if not token:
            raise ConfigurationError(f"쿠버네티스 서비스 어카운트 토큰 파일이 비어 있어요: {token_path}")
        return {"Authorization": f"Bearer {token}"}

    async def list_namespaces(self, partial: str | None = None) -> list[str]:
        async def fetch() -> list[str]:
            return item_names(await self._request("GET", "api/v1/namespaces"))

        return await self._cached_listing(cache_key("kubernetes", "namespaces"), fetch, partial=partial)

    async def list_resource_types(self, namespace: str | None, partial: str | None = None) -> list[str]:
        """네임스페이스에 실제 인스턴스가 있는 리소스 타입(plural)만 모아요.

        네임스페이스가 없으면 클러스터 범위 리소스 타입을 모아요. 비싼 조회라 짧은 TTL로 캐싱해요.
        """

        async def fetch() -> list[str]:
            candidates = [
                resource for resource in await self.discover_api_resources() if resource.namespaced == bool(namespace)
            ]
            if not namespace:
                return sorted({resource.plural for resource in candidates})
            present = await asyncio.gather(*(self._has_instances(resource, namespace) for resource in candidates))
            return sorted({resource.plural for resource, has_items in zip(candidates, present) if has_items})

        key = cache_key("kubernetes", "resource-types", namespace or CLUSTER_SCOPE)
        return await self._cached_listing(key, fetch, partial=partial, ttl_seconds=DISCOVERY_TTL_SECONDS)

    async def list_resources(self, plural: str, namespace: str | None) -> list[dict[str, Any]]:
        resource = await self._resolve(plural)
        body = await self._request("GET", resource.collection_path(namespace))
        items = body.get("items") if isinstance(body, dict) else None
        return [item for item in items or [] if isinstance(item, dict)]

    async def discover_api_resources(self) -> list[ApiResource]:
        if self._api_resources is not None and self._clock() - self._discovered_at < DISCOVERY_TTL_SECONDS:
            return self._api_resources

        group_versions = ["v1"]
        groups_body = await self._request("GET", "apis")
        for group in groups_body.get("groups", []):
            preferred = group.get("preferredVersion") if isinstance(group, dict) else None
            if isinstance(preferred, dict) and isinstance(preferred.get("groupVersion"), str):
                group_versions.append(preferred["groupVersion"])

        discovered: dict[str, ApiResource] = {}
        for group_version in group_versions:
            path = "api/v1" if group_version == "v1" else f"apis/{group_version}"
            try:
                body = await self._request("GET", path)
            except DomainError as exc:
                # 집계(aggregated) API 일부는 내려가 있을 수 있어요
                logger.warning("kubernetes_discovery_skipped", group_version=group_version, error=exc.message)
                continue
            for entry in body.get("resources", []):
                name = entry.get("name", "")
                if "/" in name or "list" not in entry.get("verbs", []):
                    continue
                # 코어 그룹이 같은 이름을 먼저 차지해요
                discovered.setdefault(
                    name,
                    ApiResource(
                        plural=name,
                        kind=str(entry.get("kind", "")),
                        group_version=group_version,
                        namespaced=bool(entry.get("namespaced")),
                    ),
                )

        self._api_resources = list(discovered.values())
        self._discovered_at = self._clock()
        return self._api_resources

    async def _resolve(self, plural: str) -> ApiResource:
        for resource in await self.discover_api_resources():
            if resource.plural == plural:
                return resource
        raise NotFoundError(f"쿠버네티스 리소스 타입 '{plural}'을 찾지 못했어요.")

    async def _has_instances(self, resource: ApiResource, namespace: str) -> bool:
        try:
            body = await self._request("GET", resource.collection_path(namespace), params={"limit": 1})
        except DomainError:
            return False
        return bool(body.get("items"))

