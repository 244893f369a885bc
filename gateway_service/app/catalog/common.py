"""카탈로그 모듈들이 같이 쓰는 입력 모델 기반 클래스와 응답 헬퍼예요."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ConfigDict

from gateway_service.app.capabilities import CapabilityLink, CapabilityResponse, CompletionContext, build_response

ListFunction = Callable[[str | None], Awaitable[list[str]]]

# 외부 API 경로에 들어가는 이름이에요. 경로 구분자를 쓸 수 없고 점으로 시작할 수 없어요.
PATH_NAME_PATTERN = r"^[^/?#\\.][^/?#\\]*$"


class ToolInput(BaseModel):
    """도구 입력 모델의 기반이에요. 와이어에서는 camelCase 별칭을, 코드에서는 필드 이름을 써요."""

    model_config = ConfigDict(populate_by_name=True)


def listing_response(
    noun: str,
    values: list[str],
    *,
    links: tuple[CapabilityLink, ...] = (),
    troubleshooting: tuple[str, ...] = (),
) -> CapabilityResponse:
    """목록 리소스 응답이에요. 목록 조회는 실패해도 빈 목록이라서 안내 문구를 같이 실어요."""
    if values:
        return build_response(f"{noun} {len(values)}개를 찾았어요.", data=values, links=links, metadata={"count": len(values)})
    return build_response(
        f"{noun}을(를) 찾지 못했어요. 권한이나 연결 설정을 확인해 주세요.",
        data=[],
        links=links,
        metadata={"count": 0},
        troubleshooting=troubleshooting,
    )


def complete_with(list_function: ListFunction) -> Callable[[str, CompletionContext], Awaitable[list[str]]]:
    """``list_x(partial)`` 형태의 클라이언트 메서드를 자동완성 함수로 감싸요."""

    async def complete(partial: str, context: CompletionContext) -> list[str]:
        return await list_function(partial)

    return complete


def web_link(label: str, base_url: str, *path: str) -> CapabilityLink:
    suffix = "/".join(part.strip("/") for part in path if part)
    return CapabilityLink(label=label, url=f"{base_url.rstrip('/')}/{suffix}" if suffix else base_url)


def drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}
