from __future__ import annotations

from pydantic import Field

from gateway_service.app.capabilities import (
    CapabilityRegistry,
    CapabilityResponse,
    RequestContext,
    ResourceDefinition,
    ResourceTemplateDefinition,
    ToolAnnotations,
    ToolDefinition,
    build_response,
)
from gateway_service.app.catalog.common import (
    PATH_NAME_PATTERN,
    ToolInput,
    complete_with,
    listing_response,
    web_link,
)
from gateway_service.app.clients.argocd import ArgoCdClient
from gateway_service.app.uri_template import UriTemplate

READ_PERMISSIONS = ("argocd:read", "admin")
SYNC_PERMISSIONS = ("argocd:sync", "argocd:admin", "admin")

TROUBLESHOOTING = (
    "ARGOCD_SERVER가 API 서버 주소를 가리키는지 확인해 주세요.",
    "ARGOCD_AUTH_TOKEN이 만료되지 않았는지 확인해 주세요.",
)


class SyncArgoCdApplicationInput(ToolInput):
    application_name: str = Field(alias="applicationName", pattern=PATH_NAME_PATTERN, description="동기화할 애플리케이션 이름이에요.")
    revision: str | None = Field(default=None, description="동기화할 Git 리비전이에요. 생략하면 대상 리비전을 써요.")
    prune: bool = Field(default=False, description="Git에 없는 리소스를 지울지 여부예요.")
    dry_run: bool = Field(default=False, alias="dryRun", description="실제로 적용하지 않고 결과만 확인해요.")


def _summarize_application(record: dict) -> dict:
    status = record.get("status") if isinstance(record.get("status"), dict) else {}
    spec = record.get("spec") if isinstance(record.get("spec"), dict) else {}
    return {
        "name": (record.get("metadata") or {}).get("name"),
        "project": spec.get("project"),
        "source": spec.get("source"),
        "destination": spec.get("destination"),
        "sync": (status.get("sync") or {}).get("status"),
        "health": (status.get("health") or {}).get("status"),
    }


def register_argocd_capabilities(registry: CapabilityRegistry, argocd: ArgoCdClient) -> None:
    async def read_applications(uri: str, ctx: RequestContext) -> CapabilityResponse:
        return listing_response(
            "ArgoCD 애플리케이션",
            await argocd.list_applications(),
            links=(web_link("ArgoCD 애플리케이션 화면", argocd.web_url, "applications"),),
            troubleshooting=TROUBLESHOOTING,
        )

    async def read_projects(uri: str, ctx: RequestContext) -> CapabilityResponse:
        return listing_response(
            "ArgoCD 프로젝트",
            await argocd.list_projects(),
            links=(web_link("ArgoCD 프로젝트 화면", argocd.web_url, "settings/projects"),),
            troubleshooting=TROUBLESHOOTING,
        )

    async def read_application(uri: str, variables: dict[str, str], ctx: RequestContext) -> CapabilityResponse:
        name = variables["applicationName"]
        record = await argocd.read_application(name)
        return build_response(
            f"ArgoCD 애플리케이션 '{name}'을 읽었어요.",
            data=record,
            links=(web_link("애플리케이션 보기", argocd.web_url, "applications", name),),
            metadata={"summary": _summarize_application(record)},
        )

    async def sync_application(arguments: SyncArgoCdApplicationInput, ctx: RequestContext) -> CapabilityResponse:
        record = await argocd.sync_application(
            arguments.application_name,
            revision=arguments.revision,
            prune=arguments.prune,
            dry_run=arguments.dry_run,
        )
        prefix = "(dry-run) " if arguments.dry_run else ""
        return build_response(
            f"{prefix}ArgoCD 애플리케이션 '{arguments.application_name}' 동기화를 요청했어요.",
            data=_summarize_application(record),
            links=(web_link("애플리케이션 보기", argocd.web_url, "applications", arguments.application_name),),
            metadata={"dry_run": arguments.dry_run, "prune": arguments.prune, "requested_by": ctx.user.email},
        )

    registry.register_resource(
        ResourceDefinition(
            uri="argocd://applications",
            title="ArgoCD Applications",
            description="ArgoCD 애플리케이션 이름 목록이에요.",
            callback=read_applications,
            required_permissions=READ_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING,
        )
    )
    registry.register_resource(
        ResourceDefinition(
            uri="argocd://projects",
            title="ArgoCD Projects",
            description="ArgoCD 프로젝트 이름 목록이에요.",
            callback=read_projects,
            required_permissions=READ_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING,
        )
    )
    registry.register_resource_template(
        ResourceTemplateDefinition(
            title="ArgoCD Application",
            uri_template=UriTemplate("argocd://applications/{applicationName}"),
            description="ArgoCD 애플리케이션 하나의 스펙과 동기화/헬스 상태예요.",
            callback=read_application,
            completions={"applicationName": complete_with(argocd.list_applications)},
            required_permissions=READ_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING,
        )
    )
    registry.register_tool(
        ToolDefinition(
            title="Sync ArgoCD Application",
            description="ArgoCD 애플리케이션을 Git 상태로 동기화해요.",
            input_model=SyncArgoCdApplicationInput,
            callback=sync_application,
            annotations=ToolAnnotations(destructive_hint=True),
            required_permissions=SYNC_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING + ("이미 진행 중인 동기화가 있으면 요청이 거부될 수 있어요.",),
        )
    )
