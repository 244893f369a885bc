from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from gateway_service.app.auth.models import AuthenticatedUser
from gateway_service.app.mcp_protocol import JsonRpcId


class ClientRequester(Protocol):
    """세션 트랜스포트가 구현하는 서버 -> 클라이언트 요청 채널이에요."""

    async def request(
        self,
        method: str,
        params: dict[str, Any] | None,
        *,
        timeout_seconds: float | None = None,
    ) -> dict[str, Any]:
        ...


@dataclass(slots=True, frozen=True)
class RequestContext:
    """콜백마다 전달되는 요청 컨텍스트예요.

    호출자 신원과 세션에 묶인 권한을 읽을 수 있고, 같은 세션으로 클라이언트에게
    중첩 요청(sampling, elicitation)을 보낼 수 있어요.
    """

    session_id: str
    user: AuthenticatedUser
    requester: ClientRequester
    request_id: JsonRpcId = None
    bound_counts: dict[str, int] = field(default_factory=dict)

    @property
    def permissions(self) -> tuple[str, ...]:
        return self.user.permissions

    async def send_request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout_seconds: float | None = None,
    ) -> dict[str, Any]:
        return await self.requester.request(method, params, timeout_seconds=timeout_seconds)

    async def create_message(
        self,
        prompt: str,
        *,
        max_tokens: int = 1024,
        system_prompt: str | None = None,
        timeout_seconds: float | None = None,
    ) -> str:
        """호출한 에이전트에게 모델 응답(sampling)을 요청하고 텍스트만 꺼내요."""
        params: dict[str, Any] = {
            "messages": [{"role": "user", "content": {"type": "text", "text": prompt}}],
            "maxTokens": max_tokens,
        }
        if system_prompt:
            params["systemPrompt"] = system_prompt
        result = await self.send_request("sampling/createMessage", params, timeout_seconds=timeout_seconds)
        content = result.get("content")
        if isinstance(content, dict) and content.get("type") == "text":
            return str(content.get("text", ""))
        if isinstance(content, list):
            return "\n".join(
                str(item.get("text", ""))
                for item in content
                if isinstance(item, dict) and item.get("type") == "text"
            )
        return ""

    async def elicit(
        self,
        message: str,
        requested_schema: dict[str, Any],
        *,
        timeout_seconds: float | None = None,
    ) -> dict[str, Any]:
        """사용자에게 구조화된 입력을 요청해요. ``{"action": ..., "content": ...}``를 그대로 돌려줘요."""
        return await self.send_request(
            "elicitation/create",
            {"message": message, "requestedSchema": requested_schema},
            timeout_seconds=timeout_seconds,
        )


@dataclass(slots=True, frozen=True)
class CompletionContext:
    """자동완성 함수에 전달돼요. ``arguments``에는 이미 채워진 다른 변수 값이 들어 있어요."""

    arguments: dict[str, str]
    request: RequestContext
