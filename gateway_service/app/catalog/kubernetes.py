from __future__ import annotations

from typing import Any

from gateway_service.app.capabilities import (
    CapabilityRegistry,
    CapabilityResponse,
    CompletionContext,
    RequestContext,
    ResourceTemplateDefinition,
    build_response,
)
from gateway_service.app.clients.kubernetes import KubernetesClient
from gateway_service.app.uri_template import UriTemplate
from gateway_service.app.utils import filter_candidates

READ_PERMISSIONS = ("kubernetes:read", "admin")

# 빈 템플릿 변수를 다루지 못하는 클라이언트가 있어서 클러스터 범위는 "none"으로 받아요
CLUSTER_SCOPE_PLACEHOLDER = "none"

TROUBLESHOOTING = (
    "서비스 어카운트 토큰(KUBERNETES_TOKEN_FILE)이 마운트됐는지 확인해 주세요.",
    "서비스 어카운트에 해당 리소스의 list 권한(RBAC)이 있는지 확인해 주세요.",
    "클러스터 범위 리소스는 namespace 자리에 'none'을 넣어 주세요.",
)

DOC_LINKS = (
    ("Kubernetes API 레퍼런스", "https://kubernetes.io/docs/reference/kubernetes-api/"),
    ("kubectl 레퍼런스", "https://kubernetes.io/docs/reference/kubectl/"),
)


def resolve_namespace(value: str | None) -> str | None:
    if not value or value == CLUSTER_SCOPE_PLACEHOLDER:
        return None
    return value


def summarize_item(item: dict[str, Any]) -> dict[str, Any]:
    metadata = item.get("metadata") if isinstance(item.get("metadata"), dict) else {}
    summary: dict[str, Any] = {
        "name": metadata.get("name"),
        "namespace": metadata.get("namespace"),
        "created": metadata.get("creationTimestamp"),
    }
    labels = metadata.get("labels")
    if isinstance(labels, dict) and labels:
        summary["labels"] = labels
    status = item.get("status")
    if isinstance(status, dict) and isinstance(status.get("phase"), str):
        summary["phase"] = status["phase"]
    return summary


def register_kubernetes_capabilities(registry: CapabilityRegistry, kubernetes: KubernetesClient) -> None:
    async def read_resources(uri: str, variables: dict[str, str], ctx: RequestContext) -> CapabilityResponse:
        plural = variables["plural"]
        namespace = resolve_namespace(variables.get("namespace"))
        items = await kubernetes.list_resources(plural, namespace)
        scope = f"네임스페이스 '{namespace}'" if namespace else "클러스터 범위"
        return build_response(
            f"{scope}에서 {plural} {len(items)}개를 찾았어요.",
            data=[summarize_item(item) for item in items],
            links=DOC_LINKS,
            metadata={"plural": plural, "namespace": namespace, "count": len(items)},
        )

    async def complete_namespace(partial: str, context: CompletionContext) -> list[str]:
        namespaces = await kubernetes.list_namespaces(partial)
        return [*filter_candidates([CLUSTER_SCOPE_PLACEHOLDER], partial), *namespaces]

    async def complete_plural(partial: str, context: CompletionContext) -> list[str]:
        namespace = resolve_namespace(context.arguments.get("namespace"))
        return await kubernetes.list_resource_types(namespace, partial)

    registry.register_resource_template(
        ResourceTemplateDefinition(
            title="Kubernetes Resources",
            uri_template=UriTemplate("kubernetes://resources/{namespace}/{plural}"),
            description=(
                "타입(plural)과 네임스페이스로 쿠버네티스 리소스를 나열해요. "
                "커스텀 리소스도 plural 이름으로 조회할 수 있고, 클러스터 범위 리소스는 namespace에 'none'을 넣어요."
            ),
            callback=read_resources,
            completions={"namespace": complete_namespace, "plural": complete_plural},
            required_permissions=READ_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING,
        )
    )
