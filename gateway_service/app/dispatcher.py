from __future__ import annotations

from gateway_service.app.auth.models import AuthenticatedUser
from gateway_service.app.capabilities.definitions import (
    PromptDefinition,
    ResourceDefinition,
    ResourceTemplateDefinition,
    ToolDefinition,
)
from gateway_service.app.capabilities.registry import CapabilityKind, CapabilityRegistry
from gateway_service.app.server import McpServerInstance
from libs.common.logging import get_logger

logger = get_logger("gateway_service.dispatcher")


class Dispatcher:
    """세션을 만들 때 한 번, 권한으로 걸러낸 capability 스냅샷을 서버 인스턴스에 묶어요."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        *,
        server_name: str,
        server_version: str,
        instructions: str | None = None,
    ) -> None:
        self._registry = registry
        self._server_name = server_name
        self._server_version = server_version
        self._instructions = instructions

    def create_server(self, user: AuthenticatedUser) -> McpServerInstance:
        permissions = user.permissions
        tools: list[ToolDefinition] = self._registry.get_authorized(CapabilityKind.TOOL, permissions)  # type: ignore[assignment]
        resources: list[ResourceDefinition] = self._registry.get_authorized(  # type: ignore[assignment]
            CapabilityKind.RESOURCE, permissions
        )
        templates: list[ResourceTemplateDefinition] = self._registry.get_authorized(  # type: ignore[assignment]
            CapabilityKind.RESOURCE_TEMPLATE, permissions
        )
        prompts: list[PromptDefinition] = self._registry.get_authorized(  # type: ignore[assignment]
            CapabilityKind.PROMPT, permissions
        )

        logger.info(
            "capabilities_bound",
            user_id=user.id,
            email=user.email,
            permissions=list(permissions),
            tools=len(tools),
            resources=len(resources),
            resource_templates=len(templates),
            prompts=len(prompts),
        )
        return McpServerInstance(
            user=user,
            tools=tools,
            resources=resources,
            resource_templates=templates,
            prompts=prompts,
            server_name=self._server_name,
            server_version=self._server_version,
            instructions=self._instructions,
        )
