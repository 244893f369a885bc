from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

JSONRPC_VERSION = "2.0"
MCP_PROTOCOL_VERSION = "2025-11-25"
SUPPORTED_PROTOCOL_VERSIONS = ("2025-11-25", "2025-06-18", "2025-03-26", "2024-11-05")
SESSION_ID_HEADER = "mcp-session-id"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SESSION_ERROR = -32000
RESOURCE_NOT_FOUND = -32002

JsonRpcId = str | int | None


@dataclass(slots=True)
class McpTool:
    name: str
    title: str | None
    description: str | None
    input_schema: dict[str, Any]
    output_schema: dict[str, Any] | None = None
    annotations: dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "inputSchema": self.input_schema,
        }
        if self.title:
            payload["title"] = self.title
        if self.description:
            payload["description"] = self.description
        if self.output_schema is not None:
            payload["outputSchema"] = self.output_schema
        if self.annotations:
            payload["annotations"] = self.annotations
        return payload


@dataclass(slots=True)
class McpPromptArgument:
    name: str
    description: str | None
    required: bool

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "required": self.required}
        if self.description:
            payload["description"] = self.description
        return payload


@dataclass(slots=True)
class McpPrompt:
    name: str
    title: str | None
    description: str | None
    arguments: list[McpPromptArgument]

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "arguments": [argument.to_wire() for argument in self.arguments],
        }
        if self.title:
            payload["title"] = self.title
        if self.description:
            payload["description"] = self.description
        return payload


@dataclass(slots=True)
class McpResource:
    uri: str
    name: str
    title: str | None
    description: str | None
    mime_type: str | None

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"uri": self.uri, "name": self.name}
        if self.title:
            payload["title"] = self.title
        if self.description:
            payload["description"] = self.description
        if self.mime_type:
            payload["mimeType"] = self.mime_type
        return payload


@dataclass(slots=True)
class McpResourceTemplate:
    uri_template: str
    name: str
    title: str | None
    description: str | None
    mime_type: str | None

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"uriTemplate": self.uri_template, "name": self.name}
        if self.title:
            payload["title"] = self.title
        if self.description:
            payload["description"] = self.description
        if self.mime_type:
            payload["mimeType"] = self.mime_type
        return payload


@dataclass(slots=True)
class McpInitializeResult:
    server_name: str
    server_version: str
    protocol_version: str
    server_capabilities: dict[str, Any]
    instructions: str | None

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "protocolVersion": self.protocol_version,
            "capabilities": self.server_capabilities,
            "serverInfo": {"name": self.server_name, "version": self.server_version},
        }
        if self.instructions:
            payload["instructions"] = self.instructions
        return payload


def is_initialize_request(body: object) -> bool:
    if not isinstance(body, dict):
        return False
    return (
        body.get("jsonrpc") == JSONRPC_VERSION
        and body.get("method") == "initialize"
        and "id" in body
        and isinstance(body.get("params", {}), dict)
    )


def is_jsonrpc_response(body: object) -> bool:
    """클라이언트가 서버 발신 요청에 답한 메시지인지 확인해요."""
    if not isinstance(body, dict):
        return False
    return "method" not in body and "id" in body and ("result" in body or "error" in body)


def is_notification(body: dict[str, Any]) -> bool:
    return "method" in body and "id" not in body


def negotiate_protocol_version(requested: object) -> str:
    if isinstance(requested, str) and requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    return MCP_PROTOCOL_VERSION


def jsonrpc_result(request_id: JsonRpcId, result: dict[str, Any]) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def jsonrpc_error(
    request_id: JsonRpcId,
    code: int,
    message: str,
    data: Any = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}


class JsonRpcError(Exception):
    """JSON-RPC 오류 응답으로 그대로 변환되는 예외예요."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data
