"""프로세스 전체가 공유하는 capability 레지스트리예요.

시작 시 `build_default_registry`가 한 번 채우고, 이후에는 모든 세션 생성 요청이 읽기만 해요.
이벤트 루프 하나에서 돌기 때문에 별도 락은 두지 않아요.

사용법::

    registry = CapabilityRegistry()
    registry.register_tool(upsert_policy_tool)
    tools = registry.get_authorized(CapabilityKind.TOOL, {"vault:admin"})
"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from enum import Enum
from typing import Union

from gateway_service.app.capabilities.definitions import (
    PromptDefinition,
    ResourceDefinition,
    ResourceTemplateDefinition,
    ToolDefinition,
)
from libs.common.logging import get_logger

logger = get_logger("gateway_service.capabilities.registry")

CapabilityDefinition = Union[ToolDefinition, ResourceDefinition, ResourceTemplateDefinition, PromptDefinition]


class CapabilityKind(str, Enum):
    TOOL = "tool"
    RESOURCE = "resource"
    RESOURCE_TEMPLATE = "resource_template"
    PROMPT = "prompt"


def is_authorized(required_permissions: Iterable[str], permissions: Collection[str]) -> bool:
    """필요 권한이 없거나, 필요 권한 중 하나라도 가지고 있으면 허용해요 (OR 조건)."""
    required = tuple(required_permissions)
    if not required:
        return True
    return any(permission in permissions for permission in required)


class CapabilityRegistry:
    def __init__(self) -> None:
        self._entries: dict[CapabilityKind, dict[str, CapabilityDefinition]] = {kind: {} for kind in CapabilityKind}

    def register_tool(self, definition: ToolDefinition) -> None:
        self._put(CapabilityKind.TOOL, definition.name, definition)

    def register_resource(self, definition: ResourceDefinition) -> None:
        self._put(CapabilityKind.RESOURCE, definition.uri, definition)

    def register_resource_template(self, definition: ResourceTemplateDefinition) -> None:
        self._put(CapabilityKind.RESOURCE_TEMPLATE, definition.name, definition)

    def register_prompt(self, definition: PromptDefinition) -> None:
        self._put(CapabilityKind.PROMPT, definition.name, definition)

    def _put(self, kind: CapabilityKind, key: str, definition: CapabilityDefinition) -> None:
        """같은 키가 있으면 덮어써요. 조용한 이름 충돌을 찾을 수 있게 경고만 남겨요."""
        entries = self._entries[kind]
        if key in entries:
            logger.warning("capability_overwritten", kind=kind.value, key=key)
        entries[key] = definition

    def get(self, kind: CapabilityKind, key: str) -> CapabilityDefinition | None:
        return self._entries[kind].get(key)

    def list_all(self, kind: CapabilityKind) -> list[CapabilityDefinition]:
        return list(self._entries[kind].values())

    def get_authorized(self, kind: CapabilityKind, permissions: Collection[str]) -> list[CapabilityDefinition]:
        """권한으로 걸러낸 정의 목록을 등록 순서대로 돌려줘요. 권한이 부족한 항목은 빠지기만 해요."""
        granted = frozenset(permissions)
        return [
            definition
            for definition in self._entries[kind].values()
            if is_authorized(definition.required_permissions, granted)
        ]

    def counts(self) -> dict[str, int]:
        return {kind.value: len(entries) for kind, entries in self._entries.items()}

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())
