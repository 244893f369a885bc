"""특정 외부 서비스에 속하지 않는 게이트웨이 자체 도구예요."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import Field

from gateway_service.app.capabilities import (
    CapabilityKind,
    CapabilityRegistry,
    CapabilityResponse,
    RequestContext,
    ResourceDefinition,
    ResourceTemplateDefinition,
    ToolAnnotations,
    ToolDefinition,
    build_response,
)
from gateway_service.app.catalog.common import ToolInput
from libs.common.errors import NotFoundError

SUMMARY_MAX_SOURCE_CHARS = 12_000

_STYLE_INSTRUCTIONS = {
    "concise": "핵심만 세 줄 이내로 요약해 주세요.",
    "detailed": "주요 항목과 눈에 띄는 이상 징후를 빠짐없이 정리해 주세요.",
}


class SummarizeResourceInput(ToolInput):
    uri: str = Field(min_length=1, description="요약할 리소스 URI예요. 예: vault://policies")
    style: Literal["concise", "detailed"] = Field(default="concise", description="요약 스타일이에요.")
    max_tokens: int = Field(default=512, alias="maxTokens", ge=16, le=4096, description="요약 최대 토큰 수예요.")


class GatewayHealthCheckInput(ToolInput):
    pass


async def read_resource_for(
    registry: CapabilityRegistry,
    uri: str,
    ctx: RequestContext,
) -> CapabilityResponse:
    """호출자 권한으로 볼 수 있는 리소스만 읽어요. 안 보이는 리소스는 없는 것과 같아요."""
    for resource in registry.get_authorized(CapabilityKind.RESOURCE, ctx.permissions):
        if isinstance(resource, ResourceDefinition) and resource.uri == uri:
            return await resource.callback(uri, ctx)
    for template in registry.get_authorized(CapabilityKind.RESOURCE_TEMPLATE, ctx.permissions):
        if not isinstance(template, ResourceTemplateDefinition):
            continue
        variables = template.match(uri)
        if variables is not None:
            return await template.callback(uri, variables, ctx)
    raise NotFoundError(f"리소스 '{uri}'을 찾지 못했어요.")


def register_platform_capabilities(
    registry: CapabilityRegistry,
    *,
    service_name: str,
    service_version: str,
) -> None:
    async def summarize_resource(arguments: SummarizeResourceInput, ctx: RequestContext) -> CapabilityResponse:
        source = await read_resource_for(registry, arguments.uri, ctx)
        if source.is_error:
            return source

        text = source.to_text()
        truncated = len(text) > SUMMARY_MAX_SOURCE_CHARS
        prompt = (
            f"다음은 MCP 리소스 {arguments.uri}의 내용이에요. {_STYLE_INSTRUCTIONS[arguments.style]}\n\n"
            f"{text[:SUMMARY_MAX_SOURCE_CHARS]}"
        )
        summary = await ctx.create_message(
            prompt,
            max_tokens=arguments.max_tokens,
            system_prompt="당신은 플랫폼 운영 데이터를 정리하는 어시스턴트예요.",
        )
        return build_response(
            f"리소스 '{arguments.uri}'을 요약했어요.",
            data={"uri": arguments.uri, "style": arguments.style, "summary": summary},
            metadata={"source_truncated": truncated, "source_chars": len(text)},
        )

    async def health_check(arguments: GatewayHealthCheckInput, ctx: RequestContext) -> CapabilityResponse:
        return build_response(
            "게이트웨이가 정상 동작 중이에요.",
            data={
                "service": service_name,
                "version": service_version,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "session_id": ctx.session_id,
                "user": ctx.user.to_dict(),
                "bound_capabilities": dict(ctx.bound_counts),
                "registered_capabilities": registry.counts(),
            },
            metadata={"healthy": True},
        )

    registry.register_tool(
        ToolDefinition(
            title="Summarize Resource",
            description="볼 수 있는 리소스 하나를 읽어서, 호출한 에이전트의 모델에게 요약을 요청해요(sampling).",
            input_model=SummarizeResourceInput,
            callback=summarize_resource,
            annotations=ToolAnnotations(read_only_hint=True, open_world_hint=False),
            troubleshooting=(
                "클라이언트가 sampling 기능을 지원하고 GET /mcp 스트림을 열어 두었는지 확인해 주세요.",
                "요약할 리소스를 읽을 권한이 있는지 확인해 주세요.",
            ),
        )
    )
    registry.register_tool(
        ToolDefinition(
            title="Gateway Health Check",
            description="게이트웨이 상태와, 현재 세션에 묶인 capability 수와 호출자 신원을 보여줘요.",
            input_model=GatewayHealthCheckInput,
            callback=health_check,
            annotations=ToolAnnotations(read_only_hint=True, idempotent_hint=True, open_world_hint=False),
        )
    )
