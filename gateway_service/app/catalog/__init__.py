"""게이트웨이가 노출하는 모든 capability를 레지스트리에 한 번에 등록해요."""

from __future__ import annotations

from collections.abc import Iterable

from gateway_service.app.capabilities import CapabilityRegistry, PromptDefinition
from gateway_service.app.catalog.argocd import register_argocd_capabilities
from gateway_service.app.catalog.artifactory import register_artifactory_capabilities
from gateway_service.app.catalog.entra import register_entra_capabilities
from gateway_service.app.catalog.kubernetes import register_kubernetes_capabilities
from gateway_service.app.catalog.platform import register_platform_capabilities
from gateway_service.app.catalog.vault import register_vault_capabilities
from gateway_service.app.clients import ArgoCdClient, ArtifactoryClient, EntraClient, KubernetesClient, VaultClient
from libs.common.logging import get_logger

logger = get_logger("gateway_service.catalog")


def build_default_registry(
    *,
    vault: VaultClient,
    argocd: ArgoCdClient,
    artifactory: ArtifactoryClient,
    entra: EntraClient,
    kubernetes: KubernetesClient,
    prompts: Iterable[PromptDefinition] = (),
    service_name: str = "platform-mcp-gateway",
    service_version: str = "0.1.0",
) -> CapabilityRegistry:
    """기본 카탈로그가 모두 등록된 `CapabilityRegistry`를 만들어요.

    프로세스 시작 시 한 번만 불러요. 테스트는 매번 새 레지스트리를 만들어 써요.

    Args:
        vault: Vault 리소스와 도구가 쓰는 클라이언트예요.
        argocd: ArgoCD 리소스와 도구가 쓰는 클라이언트예요.
        artifactory: Artifactory 리소스와 도구가 쓰는 클라이언트예요.
        entra: Entra 그룹 리소스가 쓰는 클라이언트예요.
        kubernetes: 쿠버네티스 리소스 템플릿이 쓰는 클라이언트예요.
        prompts: 등록할 프롬프트 정의예요. 보통 `discover_prompts` 결과예요.
        service_name: 헬스 체크 도구가 보여줄 서비스 이름이에요.
        service_version: 헬스 체크 도구가 보여줄 버전이에요.
    """
    registry = CapabilityRegistry()
    register_vault_capabilities(registry, vault)
    register_argocd_capabilities(registry, argocd)
    register_artifactory_capabilities(registry, artifactory)
    register_entra_capabilities(registry, entra)
    register_kubernetes_capabilities(registry, kubernetes)
    register_platform_capabilities(registry, service_name=service_name, service_version=service_version)
    for prompt in prompts:
        registry.register_prompt(prompt)

    logger.info("capability_registry_built", **registry.counts())
    return registry


__all__ = ["build_default_registry"]
