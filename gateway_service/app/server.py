"""세션 하나에 바인딩된 MCP 서버 인스턴스예요.

세션을 만들 때 권한으로 걸러낸 capability 목록을 받아 고정해요. 이후 호출은 이 목록만
보고 처리하고 권한을 다시 검사하지 않아요. 콜백 실패는 여기서 잡아 오류 응답 봉투로 바꿔요.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from gateway_service.app.auth.models import AuthenticatedUser
from gateway_service.app.capabilities.context import CompletionContext, RequestContext
from gateway_service.app.capabilities.definitions import (
    PromptDefinition,
    ResourceDefinition,
    ResourceTemplateDefinition,
    ToolDefinition,
)
from gateway_service.app.capabilities.response import CapabilityResponse, build_error_response
from gateway_service.app.mcp_protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    JSONRPC_VERSION,
    METHOD_NOT_FOUND,
    RESOURCE_NOT_FOUND,
    JsonRpcError,
    McpInitializeResult,
    jsonrpc_error,
    jsonrpc_result,
    negotiate_protocol_version,
)
from libs.common.errors import DomainError
from libs.common.logging import get_logger

if TYPE_CHECKING:
    from gateway_service.app.sessions.transport import McpTransport

logger = get_logger("gateway_service.server")

MAX_COMPLETION_VALUES = 100

MethodHandler = Callable[[dict[str, Any], RequestContext], Awaitable[dict[str, Any]]]


class McpServerInstance:
    def __init__(
        self,
        *,
        user: AuthenticatedUser,
        tools: list[ToolDefinition],
        resources: list[ResourceDefinition],
        resource_templates: list[ResourceTemplateDefinition],
        prompts: list[PromptDefinition],
        server_name: str,
        server_version: str,
        instructions: str | None = None,
    ) -> None:
        self.user = user
        self._tools = {tool.name: tool for tool in tools}
        self._resources = {resource.uri: resource for resource in resources}
        self._templates = list(resource_templates)
        self._prompts = {prompt.name: prompt for prompt in prompts}
        self._server_name = server_name
        self._server_version = server_version
        self._instructions = instructions
        self.protocol_version: str | None = None
        self.client_info: dict[str, Any] = {}
        self.client_capabilities: dict[str, Any] = {}
        self.initialized = False
        self._handlers: dict[str, MethodHandler] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "resources/list": self._list_resources,
            "resources/read": self._read_resource,
            "resources/templates/list": self._list_resource_templates,
            "prompts/list": self._list_prompts,
            "prompts/get": self._get_prompt,
            "completion/complete": self._complete,
            "logging/setLevel": self._set_level,
        }

    def bound_counts(self) -> dict[str, int]:
        return {
            "tools": len(self._tools),
            "resources": len(self._resources),
            "resource_templates": len(self._templates),
            "prompts": len(self._prompts),
        }

    def tool_names(self) -> list[str]:
        return list(self._tools)

    def resource_uris(self) -> list[str]:
        return list(self._resources)

    async def handle_notification(self, message: dict[str, Any]) -> None:
        method = message.get("method")
        if method == "notifications/initialized":
            self.initialized = True
            logger.info("client_initialized", user_id=self.user.id, protocol_version=self.protocol_version)
            return
        logger.debug("notification_ignored", method=method)

    async def handle_request(self, message: dict[str, Any], transport: McpTransport) -> dict[str, Any]:
        request_id = message.get("id")
        method = message.get("method")
        if message.get("jsonrpc") != JSONRPC_VERSION or not isinstance(method, str):
            return jsonrpc_error(request_id, INVALID_REQUEST, "Invalid Request")

        params = message.get("params") or {}
        if not isinstance(params, dict):
            return jsonrpc_error(request_id, INVALID_PARAMS, "Invalid params: params must be an object")

        handler = self._handlers.get(method)
        if handler is None:
            return jsonrpc_error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

        ctx = RequestContext(
            session_id=transport.session_id or "",
            user=self.user,
            requester=transport,
            request_id=request_id,
            bound_counts=self.bound_counts(),
        )
        try:
            result = await handler(params, ctx)
        except JsonRpcError as exc:
            return jsonrpc_error(request_id, exc.code, exc.message, exc.data)
        except Exception as exc:
            logger.exception("request_failed", method=method, session_id=ctx.session_id, error=str(exc))
            return jsonrpc_error(request_id, INTERNAL_ERROR, "Internal error")
        return jsonrpc_result(request_id, result)

    async def _initialize(self, params: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
        if self.protocol_version is not None:
            raise JsonRpcError(INVALID_REQUEST, "Invalid Request: Server already initialized")

        self.protocol_version = negotiate_protocol_version(params.get("protocolVersion"))
        client_info = params.get("clientInfo")
        self.client_info = client_info if isinstance(client_info, dict) else {}
        capabilities = params.get("capabilities")
        self.client_capabilities = capabilities if isinstance(capabilities, dict) else {}

        return McpInitializeResult(
            server_name=self._server_name,
            server_version=self._server_version,
            protocol_version=self.protocol_version,
            server_capabilities={
                "tools": {"listChanged": False},
                "resources": {"subscribe": False, "listChanged": False},
                "prompts": {"listChanged": False},
                "completions": {},
                "logging": {},
            },
            instructions=self._instructions,
        ).to_wire()

    async def _ping(self, params: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
        return {}

    async def _set_level(self, params: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
        logger.debug("client_log_level_requested", level=params.get("level"), session_id=ctx.session_id)
        return {}

    async def _list_tools(self, params: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
        return {"tools": [tool.describe().to_wire() for tool in self._tools.values()]}

    async def _call_tool(self, params: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
        name = params.get("name")
        tool = self._tools.get(name) if isinstance(name, str) else None
        if tool is None:
            raise JsonRpcError(INVALID_PARAMS, f"Tool {name} not found")

        arguments = params.get("arguments") or {}
        try:
            parsed = tool.input_model.model_validate(arguments)
        except PydanticValidationError as exc:
            raise JsonRpcError(
                INVALID_PARAMS,
                f"Invalid arguments for tool {tool.name}",
                data=json.loads(exc.json(include_url=False)),
            ) from exc

        response = await self._run_callback(
            "tool",
            tool.name,
            tool.troubleshooting,
            ctx,
            lambda: tool.callback(parsed, ctx),
        )
        return response.to_tool_result()

    async def _list_resources(self, params: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
        return {"resources": [resource.describe().to_wire() for resource in self._resources.values()]}

    async def _list_resource_templates(self, params: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
        return {"resourceTemplates": [template.describe().to_wire() for template in self._templates]}

    async def _read_resource(self, params: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise JsonRpcError(INVALID_PARAMS, "Invalid params: uri is required")

        resource = self._resources.get(uri)
        if resource is not None:
            response = await self._run_callback(
                "resource",
                uri,
                resource.troubleshooting,
                ctx,
                lambda: resource.callback(uri, ctx),
            )
            return response.to_resource_result(uri, resource.mime_type)

        for template in self._templates:
            variables = template.match(uri)
            if variables is None:
                continue
            response = await self._run_callback(
                "resource_template",
                template.name,
                template.troubleshooting,
                ctx,
                lambda: template.callback(uri, variables, ctx),
            )
            return response.to_resource_result(uri, template.mime_type)

        raise JsonRpcError(RESOURCE_NOT_FOUND, f"Resource {uri} not found", data={"uri": uri})

    async def _list_prompts(self, params: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
        return {"prompts": [prompt.describe().to_wire() for prompt in self._prompts.values()]}

    async def _get_prompt(self, params: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
        name = params.get("name")
        prompt = self._prompts.get(name) if isinstance(name, str) else None
        if prompt is None:
            raise JsonRpcError(INVALID_PARAMS, f"Prompt {name} not found")

        raw_arguments = params.get("arguments") or {}
        arguments = {str(key): str(value) for key, value in raw_arguments.items()} if isinstance(raw_arguments, dict) else {}
        try:
            text = prompt.render(arguments)
        except ValueError as exc:
            raise JsonRpcError(INVALID_PARAMS, str(exc)) from exc

        return {
            "description": prompt.description,
            "messages": [{"role": "user", "content": {"type": "text", "text": text}}],
        }

    async def _complete(self, params: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
        ref = params.get("ref")
        argument = params.get("argument")
        if not isinstance(ref, dict) or not isinstance(argument, dict):
            raise JsonRpcError(INVALID_PARAMS, "Invalid params: ref and argument are required")

        ref_type = ref.get("type")
        if ref_type == "ref/prompt":
            return _completion_result([])
        if ref_type != "ref/resource":
            raise JsonRpcError(INVALID_PARAMS, f"Invalid params: unsupported ref type {ref_type}")

        template = next((item for item in self._templates if item.uri_template.template == ref.get("uri")), None)
        variable = argument.get("name")
        completion = template.completions.get(variable) if template is not None and isinstance(variable, str) else None
        if completion is None:
            return _completion_result([])

        context = params.get("context")
        bound_arguments = context.get("arguments") if isinstance(context, dict) else None
        completion_context = CompletionContext(
            arguments={str(key): str(value) for key, value in (bound_arguments or {}).items()},
            request=ctx,
        )
        partial = argument.get("value")
        try:
            values = await completion(partial if isinstance(partial, str) else "", completion_context)
        except Exception as exc:
            logger.warning(
                "completion_failed",
                template=template.name if template is not None else None,
                variable=variable,
                session_id=ctx.session_id,
                error=str(exc),
            )
            values = []
        return _completion_result(values)

    async def _run_callback(
        self,
        kind: str,
        key: str,
        troubleshooting: tuple[str, ...],
        ctx: RequestContext,
        call: Callable[[], Awaitable[CapabilityResponse]],
    ) -> CapabilityResponse:
        """콜백 하나의 실패가 세션이나 프로세스로 번지지 않게 응답 봉투로 바꿔요."""
        try:
            return await call()
        except DomainError as exc:
            logger.warning(
                "callback_failed",
                kind=kind,
                key=key,
                session_id=ctx.session_id,
                error_code=exc.error_code,
                message=exc.message,
            )
            return build_error_response(exc.message, error_code=exc.error_code, troubleshooting=troubleshooting)
        except Exception as exc:
            logger.exception("callback_failed", kind=kind, key=key, session_id=ctx.session_id, error=str(exc))
            return build_error_response(
                f"처리 중 예상하지 못한 오류가 발생했어요: {exc}",
                error_code="INTERNAL_ERROR",
                troubleshooting=troubleshooting,
            )


def _completion_result(values: list[str]) -> dict[str, Any]:
    return {
        "completion": {
            "values": values[:MAX_COMPLETION_VALUES],
            "total": len(values),
            "hasMore": len(values) > MAX_COMPLETION_VALUES,
        }
    }
