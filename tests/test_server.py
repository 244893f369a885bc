from __future__ import annotations

import json
from typing import Any

import pytest
from gateway_service.app.capabilities import (
    CapabilityRegistry,
    CapabilityResponse,
    RequestContext,
    ResourceDefinition,
    ResourceTemplateDefinition,
    ToolDefinition,
)
from gateway_service.app.dispatcher import Dispatcher
from gateway_service.app.mcp_protocol import INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, RESOURCE_NOT_FOUND
from gateway_service.app.server import McpServerInstance
from gateway_service.app.sessions import McpTransport
from gateway_service.app.uri_template import UriTemplate

from libs.common.errors import UpstreamTransientError
from tests.conftest import EmptyInput, make_user


def _server(registry: CapabilityRegistry, *permissions: str) -> tuple[McpServerInstance, McpTransport]:
    dispatcher = Dispatcher(registry, server_name="test-gateway", server_version="9.9.9", instructions="안내문이에요.")
    server = dispatcher.create_server(make_user(*permissions))
    transport = McpTransport()
    transport.bind(server)
    return server, transport


async def _call(transport: McpTransport, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": "2.0", "id": 1, "method": method}
    if params is not None:
        message["params"] = params
    response = await transport.handle_message(message)
    assert response is not None
    return response


def _payload(result: dict[str, Any]) -> dict[str, Any]:
    return json.loads(result["contents"][0]["text"])


@pytest.mark.asyncio
async def test_initialize_negotiates_version_and_rejects_second_call(sample_registry: CapabilityRegistry) -> None:
    _, transport = _server(sample_registry, "vault:read")

    first = await _call(transport, "initialize", {"protocolVersion": "2025-06-18", "capabilities": {}})
    second = await _call(transport, "initialize", {"protocolVersion": "2025-06-18"})

    assert first["result"]["protocolVersion"] == "2025-06-18"
    assert first["result"]["serverInfo"] == {"name": "test-gateway", "version": "9.9.9"}
    assert first["result"]["instructions"] == "안내문이에요."
    assert "completions" in first["result"]["capabilities"]
    assert second["error"]["code"] == INVALID_REQUEST


@pytest.mark.asyncio
async def test_session_exposes_only_authorized_capabilities(sample_registry: CapabilityRegistry) -> None:
    _, reader = _server(sample_registry, "vault:read")
    _, admin = _server(sample_registry, "admin")

    reader_tools = [tool["name"] for tool in (await _call(reader, "tools/list"))["result"]["tools"]]
    admin_tools = [tool["name"] for tool in (await _call(admin, "tools/list"))["result"]["tools"]]
    reader_resources = (await _call(reader, "resources/list"))["result"]["resources"]

    assert reader_tools == ["echo-text"]
    assert admin_tools == ["echo-text", "upsert-vault-policy"]
    assert [resource["uri"] for resource in reader_resources] == ["vault://policies"]


@pytest.mark.asyncio
async def test_unbound_tool_is_not_found(sample_registry: CapabilityRegistry) -> None:
    _, transport = _server(sample_registry, "vault:read")

    response = await _call(transport, "tools/call", {"name": "upsert-vault-policy", "arguments": {}})

    assert response["error"]["code"] == INVALID_PARAMS
    assert "upsert-vault-policy" in response["error"]["message"]


@pytest.mark.asyncio
async def test_tool_call_validates_arguments(sample_registry: CapabilityRegistry) -> None:
    _, transport = _server(sample_registry)

    ok = await _call(transport, "tools/call", {"name": "echo-text", "arguments": {"text": "안녕"}})
    invalid = await _call(transport, "tools/call", {"name": "echo-text", "arguments": {"text": 3}})

    assert ok["result"]["isError"] is False
    assert ok["result"]["structuredContent"]["data"] == {"text": "안녕", "user": "user-1"}
    assert invalid["error"]["code"] == INVALID_PARAMS
    assert invalid["error"]["data"][0]["loc"] == ["text"]


@pytest.mark.asyncio
async def test_read_resource_literal_then_template(sample_registry: CapabilityRegistry) -> None:
    _, transport = _server(sample_registry, "vault:read")

    literal = await _call(transport, "resources/read", {"uri": "vault://policies"})
    templated = await _call(transport, "resources/read", {"uri": "vault://policies/deploy"})
    missing = await _call(transport, "resources/read", {"uri": "vault://unknown"})

    assert _payload(literal["result"])["data"] == ["default", "root"]
    assert _payload(templated["result"])["data"] == {"name": "deploy"}
    assert missing["error"]["code"] == RESOURCE_NOT_FOUND


@pytest.mark.asyncio
async def test_callback_failure_becomes_error_envelope() -> None:
    async def broken_resource(uri: str, ctx: RequestContext) -> CapabilityResponse:
        raise UpstreamTransientError("vault 서버 오류가 발생했어요.")

    async def crashing_tool(arguments: EmptyInput, ctx: RequestContext) -> CapabilityResponse:
        raise RuntimeError("boom")

    registry = CapabilityRegistry()
    registry.register_resource(
        ResourceDefinition(
            uri="vault://engines",
            title="Vault Engines",
            description="엔진 목록이에요.",
            callback=broken_resource,
            troubleshooting=("VAULT_ADDR를 확인해 주세요.",),
        )
    )
    registry.register_tool(
        ToolDefinition(title="Crash", description="항상 실패해요.", input_model=EmptyInput, callback=crashing_tool)
    )
    _, transport = _server(registry)

    resource = await _call(transport, "resources/read", {"uri": "vault://engines"})
    tool = await _call(transport, "tools/call", {"name": "crash", "arguments": {}})
    still_alive = await _call(transport, "ping")

    payload = _payload(resource["result"])
    assert payload["message"] == "vault 서버 오류가 발생했어요."
    assert payload["metadata"] == {"error_code": "UPSTREAM_TRANSIENT", "troubleshooting": ["VAULT_ADDR를 확인해 주세요."]}
    assert tool["result"]["isError"] is True
    assert tool["result"]["structuredContent"]["metadata"]["error_code"] == "INTERNAL_ERROR"
    assert still_alive["result"] == {}


@pytest.mark.asyncio
async def test_completion_uses_template_function_and_limits_values(sample_registry: CapabilityRegistry) -> None:
    async def many(partial: str, context: Any) -> list[str]:
        return [f"{partial}{index}" for index in range(150)]

    async def broken(partial: str, context: Any) -> list[str]:
        raise RuntimeError("upstream down")

    sample_registry.register_resource_template(
        ResourceTemplateDefinition(
            title="Many",
            uri_template=UriTemplate("many://{item}/{other}"),
            description="후보가 많아요.",
            callback=None,  # type: ignore[arg-type]
            completions={"item": many, "other": broken},
        )
    )
    _, transport = _server(sample_registry, "vault:read")

    policy = await _call(
        transport,
        "completion/complete",
        {"ref": {"type": "ref/resource", "uri": "vault://policies/{policyName}"}, "argument": {"name": "policyName", "value": "de"}},
    )
    limited = await _call(
        transport,
        "completion/complete",
        {"ref": {"type": "ref/resource", "uri": "many://{item}/{other}"}, "argument": {"name": "item", "value": "x"}},
    )
    failed = await _call(
        transport,
        "completion/complete",
        {"ref": {"type": "ref/resource", "uri": "many://{item}/{other}"}, "argument": {"name": "other", "value": ""}},
    )

    assert policy["result"]["completion"] == {"values": ["default", "deploy"], "total": 2, "hasMore": False}
    assert len(limited["result"]["completion"]["values"]) == 100
    assert limited["result"]["completion"]["total"] == 150
    assert limited["result"]["completion"]["hasMore"] is True
    assert failed["result"]["completion"]["values"] == []


@pytest.mark.asyncio
async def test_prompts_render_arguments(sample_registry: CapabilityRegistry) -> None:
    _, transport = _server(sample_registry)

    listed = await _call(transport, "prompts/list")
    rendered = await _call(transport, "prompts/get", {"name": "greeting", "arguments": {"name": "지수"}})
    missing = await _call(transport, "prompts/get", {"name": "greeting", "arguments": {}})

    assert listed["result"]["prompts"][0]["arguments"] == [{"name": "name", "required": True}]
    assert rendered["result"]["messages"][0]["content"]["text"] == "안녕하세요, 지수님."
    assert missing["error"]["code"] == INVALID_PARAMS


@pytest.mark.asyncio
async def test_unknown_method_and_malformed_request(sample_registry: CapabilityRegistry) -> None:
    _, transport = _server(sample_registry)

    unknown = await _call(transport, "resources/subscribe", {"uri": "vault://policies"})
    malformed = await transport.handle_message({"jsonrpc": "1.0", "id": 2, "method": "ping"})

    assert unknown["error"]["code"] == METHOD_NOT_FOUND
    assert malformed is not None
    assert malformed["error"]["code"] == INVALID_REQUEST


@pytest.mark.asyncio
async def test_bound_capabilities_do_not_change_after_registry_update(sample_registry: CapabilityRegistry) -> None:
    server, transport = _server(sample_registry, "vault:read")
    sample_registry.register_tool(
        ToolDefinition(title="Late Tool", description="나중에 등록돼요.", input_model=EmptyInput, callback=None)  # type: ignore[arg-type]
    )

    tools = [tool["name"] for tool in (await _call(transport, "tools/list"))["result"]["tools"]]

    assert tools == ["echo-text"]
    assert server.bound_counts() == {"tools": 1, "resources": 1, "resource_templates": 1, "prompts": 1}
