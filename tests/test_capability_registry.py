from __future__ import annotations

import pytest
from gateway_service.app.capabilities import (
    CapabilityKind,
    CapabilityRegistry,
    ResourceDefinition,
    ToolDefinition,
    build_error_response,
    build_response,
    is_authorized,
)
from gateway_service.app.utils import normalize_name

from tests.conftest import EmptyInput, _read_policies, _write_policy


@pytest.mark.parametrize(
    ("required", "granted", "expected"),
    [
        ((), set(), True),
        ((), {"vault:read"}, True),
        (("vault:admin", "admin"), {"vault:read"}, False),
        (("vault:admin", "admin"), {"admin"}, True),
        (("vault:read", "admin"), {"vault:read"}, True),
        (("vault:*",), {"vault:read"}, False),
    ],
)
def test_is_authorized_is_any_of_required(required: tuple[str, ...], granted: set[str], expected: bool) -> None:
    assert is_authorized(required, granted) is expected


def test_get_authorized_filters_by_permissions(sample_registry: CapabilityRegistry) -> None:
    tools = sample_registry.get_authorized(CapabilityKind.TOOL, {"vault:read"})
    resources = sample_registry.get_authorized(CapabilityKind.RESOURCE, {"vault:read"})

    assert [tool.name for tool in tools] == ["echo-text"]
    assert [resource.uri for resource in resources] == ["vault://policies"]


def test_get_authorized_without_permissions_only_returns_public(sample_registry: CapabilityRegistry) -> None:
    assert [tool.name for tool in sample_registry.get_authorized(CapabilityKind.TOOL, set())] == ["echo-text"]
    assert sample_registry.get_authorized(CapabilityKind.RESOURCE_TEMPLATE, set()) == []
    assert len(sample_registry.get_authorized(CapabilityKind.PROMPT, set())) == 1


def test_registering_same_name_keeps_last_definition() -> None:
    registry = CapabilityRegistry()
    first = ToolDefinition(title="Upsert Vault Policy", description="first", input_model=EmptyInput, callback=_write_policy)
    second = ToolDefinition(title="upsert vault-policy", description="second", input_model=EmptyInput, callback=_write_policy)

    registry.register_tool(first)
    registry.register_tool(second)

    tools = registry.list_all(CapabilityKind.TOOL)
    assert len(tools) == 1
    assert tools[0].description == "second"


def test_resources_are_keyed_by_uri() -> None:
    registry = CapabilityRegistry()
    registry.register_resource(
        ResourceDefinition(uri="vault://policies", title="Policies", description="a", callback=_read_policies)
    )
    registry.register_resource(
        ResourceDefinition(uri="vault://engines", title="Policies", description="b", callback=_read_policies)
    )

    assert registry.counts()["resource"] == 2
    assert registry.get(CapabilityKind.RESOURCE, "vault://engines") is not None


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Upsert Vault Policy", "upsert-vault-policy"),
        ("Sync ArgoCD Application", "sync-argocd-application"),
        ("  Gateway -- Health  Check! ", "gateway-health-check"),
    ],
)
def test_normalize_name(title: str, expected: str) -> None:
    assert normalize_name(title) == expected
    assert normalize_name(normalize_name(title)) == expected


def test_tool_describe_uses_model_schema(sample_registry: CapabilityRegistry) -> None:
    tool = sample_registry.get(CapabilityKind.TOOL, "echo-text")
    assert isinstance(tool, ToolDefinition)

    wire = tool.describe().to_wire()
    assert wire["name"] == "echo-text"
    assert wire["inputSchema"]["properties"]["text"]["type"] == "string"
    assert wire["inputSchema"]["required"] == ["text"]


def test_response_envelopes() -> None:
    ok = build_response("완료", data={"a": 1}, links=[("문서", "https://docs.example.com")])
    error = build_error_response("실패", error_code="NOT_FOUND", troubleshooting=["토큰을 확인해 주세요."])

    assert ok.to_payload() == {
        "message": "완료",
        "data": {"a": 1},
        "links": [{"label": "문서", "url": "https://docs.example.com"}],
        "metadata": {},
    }
    tool_result = error.to_tool_result()
    assert tool_result["isError"] is True
    assert tool_result["structuredContent"]["metadata"] == {
        "error_code": "NOT_FOUND",
        "troubleshooting": ["토큰을 확인해 주세요."],
    }
    assert "실패" in tool_result["content"][0]["text"]
