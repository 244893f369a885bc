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
from gateway_service.app.clients.vault import VaultClient
from gateway_service.app.uri_template import UriTemplate

READ_PERMISSIONS = ("vault:read", "admin")
ADMIN_PERMISSIONS = ("vault:admin", "admin")

TROUBLESHOOTING = (
    "VAULT_ADDR가 올바른 Vault 주소를 가리키는지 확인해 주세요.",
    "VAULT_TOKEN 또는 VAULT_TOKEN_FILE의 토큰이 만료되지 않았는지 확인해 주세요.",
    "Enterprise 네임스페이스를 쓴다면 VAULT_NAMESPACE를 설정해 주세요.",
)


class UpsertVaultPolicyInput(ToolInput):
    policy_name: str = Field(alias="policyName", pattern=PATH_NAME_PATTERN, description="만들거나 갱신할 ACL 정책 이름이에요.")
    policy: str = Field(min_length=1, description="HCL 형식의 정책 본문이에요.")


class CreateVaultGroupInput(ToolInput):
    group_name: str = Field(alias="groupName", pattern=PATH_NAME_PATTERN, description="만들 Vault 외부 그룹 이름이에요.")
    external_group_id: str = Field(
        alias="externalGroupId",
        min_length=1,
        description="alias로 연결할 IdP 그룹의 ID(Entra 그룹 object id)예요.",
    )
    policies: list[str] = Field(default_factory=list, description="그룹에 붙일 정책 이름 목록이에요.")
    mount_accessor: str | None = Field(
        default=None,
        alias="mountAccessor",
        description="OIDC auth mount accessor예요. 생략하면 VAULT_OIDC_MOUNT_ACCESSOR를 써요.",
    )


def register_vault_capabilities(registry: CapabilityRegistry, vault: VaultClient) -> None:
    async def read_policies(uri: str, ctx: RequestContext) -> CapabilityResponse:
        return listing_response(
            "Vault 정책",
            await vault.list_policies(),
            links=(web_link("Vault 정책 화면", vault.web_url, "ui/vault/policies/acl"),),
            troubleshooting=TROUBLESHOOTING,
        )

    async def read_auth_methods(uri: str, ctx: RequestContext) -> CapabilityResponse:
        return listing_response(
            "Vault 인증 방식",
            await vault.list_auth_methods(),
            links=(web_link("Vault 인증 방식 화면", vault.web_url, "ui/vault/access"),),
            troubleshooting=TROUBLESHOOTING,
        )

    async def read_engines(uri: str, ctx: RequestContext) -> CapabilityResponse:
        return listing_response(
            "Vault 시크릿 엔진",
            await vault.list_engines(),
            links=(web_link("Vault 시크릿 엔진 화면", vault.web_url, "ui/vault/secrets"),),
            troubleshooting=TROUBLESHOOTING,
        )

    async def read_policy(uri: str, variables: dict[str, str], ctx: RequestContext) -> CapabilityResponse:
        name = variables["policyName"]
        record = await vault.read_policy(name)
        return build_response(
            f"Vault 정책 '{name}'을 읽었어요.",
            data=record,
            links=(web_link("정책 보기", vault.web_url, "ui/vault/policy/acl", name),),
        )

    async def read_role(uri: str, variables: dict[str, str], ctx: RequestContext) -> CapabilityResponse:
        role_path = variables["rolePath"]
        record = await vault.read_role(role_path)
        return build_response(
            f"Vault 역할 '{role_path}'을 읽었어요.",
            data=record,
            links=(web_link("인증 방식 보기", vault.web_url, "ui/vault/access", str(record.get("mount", ""))),),
        )

    async def upsert_policy(arguments: UpsertVaultPolicyInput, ctx: RequestContext) -> CapabilityResponse:
        record, created = await vault.upsert_policy(arguments.policy_name, arguments.policy)
        verb = "만들었어요" if created else "갱신했어요"
        return build_response(
            f"Vault 정책 '{arguments.policy_name}'을 {verb}.",
            data=record,
            links=(web_link("정책 보기", vault.web_url, "ui/vault/policy/acl", arguments.policy_name),),
            metadata={"created": created, "requested_by": ctx.user.email},
        )

    async def create_group(arguments: CreateVaultGroupInput, ctx: RequestContext) -> CapabilityResponse:
        result = await vault.create_external_group(
            name=arguments.group_name,
            external_group_id=arguments.external_group_id,
            policies=arguments.policies,
            mount_accessor=arguments.mount_accessor,
        )
        return build_response(
            f"Vault 외부 그룹 '{arguments.group_name}'을 만들고 IdP 그룹에 연결했어요.",
            data=result,
            links=(web_link("그룹 보기", vault.web_url, "ui/vault/access/identity/groups"),),
            metadata={"requested_by": ctx.user.email},
        )

    registry.register_resource(
        ResourceDefinition(
            uri="vault://policies",
            title="Vault Policies",
            description="Vault ACL 정책 이름 목록이에요.",
            callback=read_policies,
            required_permissions=READ_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING,
        )
    )
    registry.register_resource(
        ResourceDefinition(
            uri="vault://auth-methods",
            title="Vault Auth Methods",
            description="활성화된 Vault 인증 방식 mount 목록이에요.",
            callback=read_auth_methods,
            required_permissions=READ_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING,
        )
    )
    registry.register_resource(
        ResourceDefinition(
            uri="vault://engines",
            title="Vault Secret Engines",
            description="활성화된 Vault 시크릿 엔진 mount 목록이에요.",
            callback=read_engines,
            required_permissions=READ_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING,
        )
    )
    registry.register_resource_template(
        ResourceTemplateDefinition(
            title="Vault Policy",
            uri_template=UriTemplate("vault://policies/{policyName}"),
            description="Vault ACL 정책 하나의 HCL 본문이에요.",
            callback=read_policy,
            completions={"policyName": complete_with(vault.list_policies)},
            required_permissions=READ_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING,
        )
    )
    registry.register_resource_template(
        ResourceTemplateDefinition(
            title="Vault Role",
            uri_template=UriTemplate("vault://roles/{rolePath}"),
            description="인증 mount의 역할 설정이에요. rolePath는 ``<mount>--<role>`` 형식이에요.",
            callback=read_role,
            completions={"rolePath": complete_with(vault.list_roles)},
            required_permissions=READ_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING,
        )
    )
    registry.register_tool(
        ToolDefinition(
            title="Upsert Vault Policy",
            description="Vault ACL 정책을 만들거나 덮어쓰고, 저장된 결과를 다시 읽어 돌려줘요.",
            input_model=UpsertVaultPolicyInput,
            callback=upsert_policy,
            annotations=ToolAnnotations(destructive_hint=True, idempotent_hint=True),
            required_permissions=ADMIN_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING + ("정책 본문이 올바른 HCL인지 확인해 주세요.",),
        )
    )
    registry.register_tool(
        ToolDefinition(
            title="Create Vault Group",
            description="Vault 외부 identity 그룹을 만들고 IdP 그룹에 alias로 연결해요.",
            input_model=CreateVaultGroupInput,
            callback=create_group,
            required_permissions=ADMIN_PERMISSIONS,
            troubleshooting=TROUBLESHOOTING
            + ("같은 이름의 그룹이 이미 있으면 생성이 거부돼요.", "OIDC mount accessor가 맞는지 확인해 주세요."),
        )
    )
