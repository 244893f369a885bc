from __future__ import annotations

from gateway_service.app.capabilities import (
    CapabilityRegistry,
    CapabilityResponse,
    RequestContext,
    ResourceDefinition,
    ResourceTemplateDefinition,
    build_response,
)
from gateway_service.app.catalog.common import complete_with, listing_response
from gateway_service.app.clients.entra import EntraClient
from gateway_service.app.uri_template import UriTemplate

READ_PERMISSIONS = ("entra:read", "admin")

TROUBLESHOOTING = (
    "ENTRA_TENANT_ID, ENTRA_CLIENT_ID, ENTRA_CLIENT_SECRET이 설정됐는지 확인해 주세요.",
    "앱 등록에 Microsoft Graph ``Group.Read.All`` 애플리케이션 권한이 승인됐는지 확인해 주세요.",
)


def register_entra_capabilities(registry: CapabilityRegistry, entra: EntraClient) -> None:
    async def read_groups(uri: str, ctx: RequestContext) -> CapabilityResponse:
        return listing_response("Entra 그룹", await entra.list_groups(), troubleshooting=TROUBLESHOOTING)

    async def read_group(uri: str, variables: dict[str, str], ctx: RequestContext) -> CapabilityResponse:
        name = variables["groupName"]
        record = await entra.read_group(name)
        return build_response(
            f"Entra 그룹 '{name}'을 읽었어요.",
            data=record,
            links=(("Entra 포털에서 보기", f"https://entra.microsoft.com/#view/Microsoft_AAD_IAM/GroupDetailsMenuBlade/~/Overview/groupId/{record.get('id', '')}"),),
        )

    registry.register_resource(
        ResourceDefinition(
            uri="entra://groups",
            title="Entra Groups",
            description="Entra ID 그룹 표시 이름 목록이에요.",
            callback=read_groups,
            required_permissions=READ_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING,
        )
    )
    registry.register_resource_template(
        ResourceTemplateDefinition(
            title="Entra Group",
            uri_template=UriTemplate("entra://groups/{groupName}"),
            description="표시 이름으로 찾은 Entra ID 그룹 하나의 속성이에요.",
            callback=read_group,
            completions={"groupName": complete_with(entra.list_groups)},
            required_permissions=READ_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING,
        )
    )
