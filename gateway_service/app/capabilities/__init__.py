from gateway_service.app.capabilities.context import CompletionContext, RequestContext
from gateway_service.app.capabilities.definitions import (
    PromptArgument,
    PromptDefinition,
    ResourceDefinition,
    ResourceTemplateDefinition,
    ToolAnnotations,
    ToolDefinition,
)
from gateway_service.app.capabilities.registry import CapabilityKind, CapabilityRegistry, is_authorized
from gateway_service.app.capabilities.response import (
    CapabilityLink,
    CapabilityResponse,
    build_error_response,
    build_response,
)

__all__ = [
    "CapabilityKind",
    "CapabilityLink",
    "CapabilityRegistry",
    "CapabilityResponse",
    "CompletionContext",
    "PromptArgument",
    "PromptDefinition",
    "RequestContext",
    "ResourceDefinition",
    "ResourceTemplateDefinition",
    "ToolAnnotations",
    "ToolDefinition",
    "build_error_response",
    "build_response",
    "is_authorized",
]
