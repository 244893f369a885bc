from __future__ import annotations

from typing import Any, Literal

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
    drop_none,
    listing_response,
    web_link,
)
from gateway_service.app.clients.artifactory import ArtifactoryClient
from gateway_service.app.uri_template import UriTemplate

READ_PERMISSIONS = ("artifactory:read", "admin")
ADMIN_PERMISSIONS = ("artifactory:admin", "admin")

TROUBLESHOOTING = (
    "ARTIFACTORY_URL이 ``https://<host>/artifactory`` 형식인지 확인해 주세요.",
    "ARTIFACTORY_ACCESS_TOKEN에 저장소 관리 권한이 있는지 확인해 주세요.",
)


class UpsertArtifactoryRepositoryInput(ToolInput):
    repository_key: str = Field(alias="repositoryKey", pattern=PATH_NAME_PATTERN, description="저장소 키예요.")
    rclass: Literal["local", "remote", "virtual"] = Field(default="local", description="저장소 종류예요.")
    package_type: str = Field(alias="packageType", default="generic", description="패키지 타입(maven, npm, docker 등)이에요.")
    description: str | None = Field(default=None, description="저장소 설명이에요.")
    url: str | None = Field(default=None, description="remote 저장소가 프록시할 원격 URL이에요.")
    repositories: list[str] | None = Field(default=None, description="virtual 저장소가 묶을 저장소 키 목록이에요.")

    def to_config(self) -> dict[str, Any]:
        return drop_none(
            {
                "rclass": self.rclass,
                "packageType": self.package_type,
                "description": self.description,
                "url": self.url,
                "repositories": self.repositories,
            }
        )


def register_artifactory_capabilities(registry: CapabilityRegistry, artifactory: ArtifactoryClient) -> None:
    async def read_repositories(uri: str, ctx: RequestContext) -> CapabilityResponse:
        return listing_response(
            "Artifactory 저장소",
            await artifactory.list_repositories(),
            links=(web_link("Artifactory 저장소 화면", artifactory.web_url, "webapp/#/admin/repositories"),),
            troubleshooting=TROUBLESHOOTING,
        )

    async def read_repository(uri: str, variables: dict[str, str], ctx: RequestContext) -> CapabilityResponse:
        key = variables["repositoryKey"]
        return build_response(
            f"Artifactory 저장소 '{key}'의 설정을 읽었어요.",
            data=await artifactory.read_repository(key),
            links=(web_link("저장소 보기", artifactory.web_url, "webapp/#/artifacts/browse/tree/General", key),),
        )

    async def upsert_repository(arguments: UpsertArtifactoryRepositoryInput, ctx: RequestContext) -> CapabilityResponse:
        record, created = await artifactory.upsert_repository(arguments.repository_key, arguments.to_config())
        verb = "만들었어요" if created else "갱신했어요"
        return build_response(
            f"Artifactory 저장소 '{arguments.repository_key}'을 {verb}.",
            data=record,
            links=(web_link("저장소 보기", artifactory.web_url, "webapp/#/artifacts/browse/tree/General", arguments.repository_key),),
            metadata={"created": created, "requested_by": ctx.user.email},
        )

    registry.register_resource(
        ResourceDefinition(
            uri="artifactory://repositories",
            title="Artifactory Repositories",
            description="Artifactory 저장소 키 목록이에요.",
            callback=read_repositories,
            required_permissions=READ_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING,
        )
    )
    registry.register_resource_template(
        ResourceTemplateDefinition(
            title="Artifactory Repository",
            uri_template=UriTemplate("artifactory://repositories/{repositoryKey}"),
            description="Artifactory 저장소 하나의 설정이에요.",
            callback=read_repository,
            completions={"repositoryKey": complete_with(artifactory.list_repositories)},
            required_permissions=READ_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING,
        )
    )
    registry.register_tool(
        ToolDefinition(
            title="Upsert Artifactory Repository",
            description="Artifactory 저장소가 있으면 설정을 갱신하고 없으면 새로 만들어요.",
            input_model=UpsertArtifactoryRepositoryInput,
            callback=upsert_repository,
            annotations=ToolAnnotations(idempotent_hint=True),
            required_permissions=ADMIN_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING + ("저장소 종류(rclass)는 생성 후 바꿀 수 없어요.",),
        )
    )
