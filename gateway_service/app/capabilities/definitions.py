"""레지스트리에 들어가는 capability 정의예요.

정의는 프로세스 시작 시 한 번 만들어지고 이후 바뀌지 않아요. 와이어 이름은 항상
`normalize_name(title)`으로 만들어서 등록 시점과 세션 바인딩 시점의 이름이 같아요.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from string import Template
from typing import Any

from pydantic import BaseModel

from gateway_service.app.capabilities.context import CompletionContext, RequestContext
from gateway_service.app.capabilities.response import CapabilityResponse
from gateway_service.app.mcp_protocol import (
    McpPrompt,
    McpPromptArgument,
    McpResource,
    McpResourceTemplate,
    McpTool,
)
from gateway_service.app.uri_template import UriTemplate
from gateway_service.app.utils import normalize_name

ToolCallback = Callable[[Any, RequestContext], Awaitable[CapabilityResponse]]
ResourceCallback = Callable[[str, RequestContext], Awaitable[CapabilityResponse]]
TemplateCallback = Callable[[str, dict[str, str], RequestContext], Awaitable[CapabilityResponse]]
CompletionFunction = Callable[[str, CompletionContext], Awaitable[list[str]]]


@dataclass(slots=True, frozen=True)
class ToolAnnotations:
    read_only_hint: bool = False
    destructive_hint: bool = False
    idempotent_hint: bool = False
    open_world_hint: bool = True

    def to_wire(self) -> dict[str, bool]:
        return {
            "readOnlyHint": self.read_only_hint,
            "destructiveHint": self.destructive_hint,
            "idempotentHint": self.idempotent_hint,
            "openWorldHint": self.open_world_hint,
        }


@dataclass(slots=True, frozen=True)
class ToolDefinition:
    title: str
    description: str
    input_model: type[BaseModel]
    callback: ToolCallback
    output_schema: dict[str, Any] | None = None
    annotations: ToolAnnotations = field(default_factory=ToolAnnotations)
    required_permissions: tuple[str, ...] = ()
    troubleshooting: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return normalize_name(self.title)

    @property
    def input_schema(self) -> dict[str, Any]:
        return self.input_model.model_json_schema()

    def describe(self) -> McpTool:
        return McpTool(
            name=self.name,
            title=self.title,
            description=self.description,
            input_schema=self.input_schema,
            output_schema=self.output_schema,
            annotations=self.annotations.to_wire(),
        )


@dataclass(slots=True, frozen=True)
class ResourceDefinition:
    uri: str
    title: str
    description: str
    callback: ResourceCallback
    mime_type: str = "application/json"
    required_permissions: tuple[str, ...] = ()
    troubleshooting: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return normalize_name(self.title)

    def describe(self) -> McpResource:
        return McpResource(
            uri=self.uri,
            name=self.name,
            title=self.title,
            description=self.description,
            mime_type=self.mime_type,
        )


@dataclass(slots=True, frozen=True)
class ResourceTemplateDefinition:
    title: str
    uri_template: UriTemplate
    description: str
    callback: TemplateCallback
    completions: dict[str, CompletionFunction] = field(default_factory=dict)
    mime_type: str = "application/json"
    required_permissions: tuple[str, ...] = ()
    troubleshooting: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return normalize_name(self.title)

    def match(self, uri: str) -> dict[str, str] | None:
        return self.uri_template.match(uri)

    def describe(self) -> McpResourceTemplate:
        return McpResourceTemplate(
            uri_template=self.uri_template.template,
            name=self.name,
            title=self.title,
            description=self.description,
            mime_type=self.mime_type,
        )


@dataclass(slots=True, frozen=True)
class PromptArgument:
    name: str
    description: str = ""
    required: bool = False


@dataclass(slots=True, frozen=True)
class PromptDefinition:
    title: str
    description: str
    body: str
    arguments: tuple[PromptArgument, ...] = ()
    required_permissions: tuple[str, ...] = ()
    source_path: str | None = None

    @property
    def name(self) -> str:
        return normalize_name(self.title)

    def render(self, values: dict[str, str]) -> str:
        """``$name`` / ``${name}`` 자리표시자를 인자 값으로 채워요.

        선언된 선택 인자가 빠지면 빈 문자열로 채우고, 선언되지 않은 자리표시자는 그대로 남겨요.
        """
        missing = [argument.name for argument in self.arguments if argument.required and not values.get(argument.name)]
        if missing:
            raise ValueError(f"필수 프롬프트 인자가 빠졌어요: {', '.join(missing)}")
        filled = {argument.name: "" for argument in self.arguments}
        filled.update(values)
        return Template(self.body).safe_substitute(filled)

    def describe(self) -> McpPrompt:
        return McpPrompt(
            name=self.name,
            title=self.title,
            description=self.description,
            arguments=[
                McpPromptArgument(name=argument.name, description=argument.description, required=argument.required)
                for argument in self.arguments
            ],
        )
