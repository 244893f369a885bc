"""도구와 리소스 콜백이 돌려주는 공통 응답 봉투예요.

모든 콜백은 `build_response`로만 응답을 만들어요. 성공과 실패는 ``is_error``로 구분하고,
실패에는 ``metadata.troubleshooting`` 힌트 목록을 실어요.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class CapabilityLink:
    label: str
    url: str

    def to_dict(self) -> dict[str, str]:
        return {"label": self.label, "url": self.url}


@dataclass(slots=True, frozen=True)
class CapabilityResponse:
    message: str
    data: Any = None
    links: tuple[CapabilityLink, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    is_error: bool = False

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        payload["links"] = [link.to_dict() for link in self.links]
        payload["metadata"] = dict(self.metadata)
        return payload

    def to_text(self) -> str:
        return json.dumps(self.to_payload(), ensure_ascii=False, indent=2, default=str)

    def to_tool_result(self) -> dict[str, Any]:
        """``tools/call`` 결과 형식으로 바꿔요."""
        return {
            "content": [{"type": "text", "text": self.to_text()}],
            "structuredContent": self.to_payload(),
            "isError": self.is_error,
        }

    def to_resource_result(self, uri: str, mime_type: str = "application/json") -> dict[str, Any]:
        """``resources/read`` 결과 형식으로 바꿔요."""
        return {"contents": [{"uri": uri, "mimeType": mime_type, "text": self.to_text()}]}


def build_response(
    message: str,
    *,
    data: Any = None,
    links: Iterable[CapabilityLink | tuple[str, str]] = (),
    metadata: Mapping[str, Any] | None = None,
    is_error: bool = False,
    troubleshooting: Iterable[str] | None = None,
) -> CapabilityResponse:
    normalized_links = tuple(
        link if isinstance(link, CapabilityLink) else CapabilityLink(label=link[0], url=link[1]) for link in links
    )
    merged_metadata: dict[str, Any] = dict(metadata or {})
    if troubleshooting is not None:
        merged_metadata["troubleshooting"] = list(troubleshooting)
    return CapabilityResponse(
        message=message,
        data=data,
        links=normalized_links,
        metadata=merged_metadata,
        is_error=is_error,
    )


def build_error_response(
    message: str,
    *,
    error_code: str | None = None,
    troubleshooting: Iterable[str] = (),
    data: Any = None,
) -> CapabilityResponse:
    metadata: dict[str, Any] = {}
    if error_code:
        metadata["error_code"] = error_code
    return build_response(
        message,
        data=data,
        metadata=metadata,
        is_error=True,
        troubleshooting=troubleshooting,
    )
