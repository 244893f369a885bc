from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest
from pydantic import BaseModel

from gateway_service.app.auth.models import AuthenticatedUser, Credential
from gateway_service.app.capabilities import (
    CapabilityRegistry,
    CapabilityResponse,
    PromptArgument,
    PromptDefinition,
    RequestContext,
    ResourceDefinition,
    ResourceTemplateDefinition,
    ToolDefinition,
    build_response,
)
from gateway_service.app.completion_cache import CompletionCache
from gateway_service.app.uri_template import UriTemplate
from libs.common.errors import AuthenticationError


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StaticResolver:
    """토큰 문자열 -> 사용자 매핑으로 동작하는 테스트용 리졸버예요. 매핑은 테스트 중에 바꿀 수 있어요."""

    def __init__(self, users: dict[str, AuthenticatedUser]) -> None:
        self.users = users
        self.calls = 0
        self.closed = False

    async def resolve(self, credential: Credential) -> AuthenticatedUser:
        self.calls += 1
        user = self.users.get(credential.token or "")
        if user is None:
            raise AuthenticationError("알 수 없는 토큰이에요.")
        return user

    async def aclose(self) -> None:
        self.closed = True


@dataclass
class RecordingRequester:
    """중첩 요청을 기록하고 미리 정한 결과를 돌려줘요."""

    result: dict[str, Any] = field(default_factory=dict)
    calls: list[tuple[str, dict[str, Any] | None]] = field(default_factory=list)

    async def request(
        self,
        method: str,
        params: dict[str, Any] | None,
        *,
        timeout_seconds: float | None = None,
    ) -> dict[str, Any]:
        self.calls.append((method, params))
        return self.result


class EmptyInput(BaseModel):
    pass


class EchoInput(BaseModel):
    text: str


def make_user(*permissions: str, user_id: str = "user-1") -> AuthenticatedUser:
    return AuthenticatedUser(
        id=user_id,
        email=f"{user_id}@example.com",
        name=user_id,
        permissions=tuple(permissions),
    )


def make_context(user: AuthenticatedUser | None = None, requester: Any = None) -> RequestContext:
    return RequestContext(
        session_id="session-1",
        user=user or make_user("admin"),
        requester=requester or RecordingRequester(),
    )


def mock_http_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _echo(arguments: EchoInput, ctx: RequestContext) -> CapabilityResponse:
    return build_response("echo", data={"text": arguments.text, "user": ctx.user.id})


async def _write_policy(arguments: EmptyInput, ctx: RequestContext) -> CapabilityResponse:
    return build_response("정책을 썼어요.")


async def _read_policies(uri: str, ctx: RequestContext) -> CapabilityResponse:
    return build_response("정책 목록", data=["default", "root"])


async def _read_policy(uri: str, variables: dict[str, str], ctx: RequestContext) -> CapabilityResponse:
    return build_response("정책", data={"name": variables["policyName"]})


async def _complete_policy(partial: str, context: Any) -> list[str]:
    return [name for name in ("default", "deploy", "root") if name.startswith(partial)]


def build_sample_registry() -> CapabilityRegistry:
    registry = CapabilityRegistry()
    registry.register_tool(
        ToolDefinition(
            title="Echo Text",
            description="입력을 그대로 돌려줘요.",
            input_model=EchoInput,
            callback=_echo,
        )
    )
    registry.register_tool(
        ToolDefinition(
            title="Upsert Vault Policy",
            description="정책을 써요.",
            input_model=EmptyInput,
            callback=_write_policy,
            required_permissions=("vault:admin", "admin"),
        )
    )
    registry.register_resource(
        ResourceDefinition(
            uri="vault://policies",
            title="Vault Policies",
            description="정책 목록이에요.",
            callback=_read_policies,
            required_permissions=("vault:read", "admin"),
        )
    )
    registry.register_resource_template(
        ResourceTemplateDefinition(
            title="Vault Policy",
            uri_template=UriTemplate("vault://policies/{policyName}"),
            description="정책 하나예요.",
            callback=_read_policy,
            completions={"policyName": _complete_policy},
            required_permissions=("vault:read", "admin"),
        )
    )
    registry.register_prompt(
        PromptDefinition(
            title="Greeting",
            description="인사말이에요.",
            body="안녕하세요, ${name}님.",
            arguments=(PromptArgument(name="name", required=True),),
        )
    )
    return registry


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> CompletionCache:
    return CompletionCache(clock=clock)


@pytest.fixture
def sample_registry() -> CapabilityRegistry:
    """각 테스트용으로 새로 만든 샘플 레지스트리예요."""
    return build_sample_registry()
