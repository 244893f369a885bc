"""외부 서비스 REST API를 감싸는 얇은 httpx 클라이언트의 공통 부분이에요.

- 단건 조회와 변경은 실패를 `DomainError` 하위 예외로 올려요.
- 목록 조회(`_cached_listing`)는 자동완성에 쓰이므로 절대 예외를 올리지 않아요.
  실패하면 경고를 남기고 빈 목록을 돌려주며, 실패 결과는 캐싱하지 않아요.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import quote

import httpx

from gateway_service.app.completion_cache import DEFAULT_TTL_SECONDS, CompletionCache
from gateway_service.app.utils import filter_candidates
from libs.common.errors import (
    NotFoundError,
    RateLimitError,
    UpstreamAccessError,
    UpstreamRequestError,
    UpstreamTransientError,
    ValidationError,
)
from libs.common.logging import get_logger

logger = get_logger("gateway_service.clients")

_ERROR_BODY_LIMIT = 300


class ServiceClient:
    service_name = "service"

    def __init__(
        self,
        *,
        base_url: str,
        cache: CompletionCache,
        timeout_seconds: float,
        http_client: httpx.AsyncClient | None = None,
        verify: bool | str = True,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._cache = cache
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds, verify=verify)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _auth_headers(self) -> dict[str, str]:
        return {}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        url = path if path.startswith(("http://", "https://")) else f"{self._base_url}/{path.lstrip('/')}"
        headers = await self._auth_headers()
        try:
            response = await self._client.request(method, url, json=json, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            raise UpstreamTransientError(f"{self.service_name} 요청이 시간 초과됐어요.") from exc
        except httpx.HTTPError as exc:
            raise UpstreamTransientError(f"{self.service_name} 연결에 실패했어요: {exc}") from exc

        raise_for_upstream_status(self.service_name, response)
        if response.status_code == 204 or not response.content:
            return {}
        if "json" not in response.headers.get("content-type", ""):
            # 일부 변경 API는 평문 확인 메시지만 돌려줘요
            return {"message": response.text}
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamTransientError(f"{self.service_name} 응답 형식이 올바르지 않아요.") from exc

    async def _cached_listing(
        self,
        key: str,
        fetch: Callable[[], Awaitable[list[str]]],
        *,
        partial: str | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
    ) -> list[str]:
        values = self._cache.get(key)
        if values is None:
            try:
                fetched = await fetch()
            except Exception as exc:
                logger.warning("collaborator_list_failed", service=self.service_name, key=key, error=str(exc))
                return []
            values = self._cache.set(key, fetched, ttl_seconds)
        return filter_candidates(values, partial)

    def _invalidate(self, prefix: str) -> None:
        removed = self._cache.invalidate(prefix)
        if removed:
            logger.debug("completion_cache_invalidated", service=self.service_name, prefix=prefix, removed=removed)


def raise_for_upstream_status(service_name: str, response: httpx.Response) -> None:
    status_code = response.status_code
    if status_code < 400:
        return

    detail = response.text[:_ERROR_BODY_LIMIT]
    if status_code == 404:
        raise NotFoundError(f"{service_name}에서 대상을 찾지 못했어요. ({detail})")
    if status_code in (401, 403):
        raise UpstreamAccessError(f"{service_name} 접근 권한이 없어요. status={status_code} ({detail})")
    if status_code == 429:
        raise RateLimitError(f"{service_name} 요청 제한을 초과했어요.")
    if status_code >= 500:
        raise UpstreamTransientError(f"{service_name} 서버 오류가 발생했어요. status={status_code} ({detail})")
    raise UpstreamRequestError(f"{service_name} API 오류 ({status_code}): {detail}", status_code=status_code)


def path_segment(value: str) -> str:
    """값 하나를 URL 경로 조각으로 인코딩해요. ``/``도 인코딩하고 ``.``/``..``는 거부해요."""
    if value in ("", ".", ".."):
        raise ValidationError(f"경로에 쓸 수 없는 값이에요: {value!r}")
    return quote(value, safe="")


def item_names(body: Any) -> list[str]:
    """``{"items": [{"metadata": {"name": ...}}]}`` 형태 응답에서 이름만 정렬해서 꺼내요."""
    items = body.get("items") if isinstance(body, dict) else None
    names: list[str] = []
    for item in items or []:
        metadata = item.get("metadata") if isinstance(item, dict) else None
        name = metadata.get("name") if isinstance(metadata, dict) else None
        if isinstance(name, str):
            names.append(name)
    return sorted(names)
