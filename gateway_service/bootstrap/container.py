from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from gateway_service.app.auth.resolver import AuthorizationResolver, build_resolver
from gateway_service.app.capabilities import CapabilityRegistry
from gateway_service.app.catalog import build_default_registry
from gateway_service.app.clients import ArgoCdClient, ArtifactoryClient, EntraClient, KubernetesClient, VaultClient
from gateway_service.app.completion_cache import CompletionCache
from gateway_service.app.dispatcher import Dispatcher
from gateway_service.app.gateway import McpGateway
from gateway_service.app.prompt_loader import discover_prompts
from gateway_service.app.sessions import SessionRegistry
from gateway_service.app.settings import (
    ArgoCdSettings,
    ArtifactorySettings,
    EntraSettings,
    KubernetesSettings,
    Settings,
    VaultSettings,
)

SERVER_INSTRUCTIONS = (
    "플랫폼 서비스(Vault, ArgoCD, Artifactory, Entra ID, Kubernetes)를 다루는 게이트웨이예요. "
    "보이는 도구와 리소스는 로그인한 사용자의 권한에 따라 달라요."
)


@dataclass(slots=True)
class RuntimeComponents:
    settings: Settings
    cache: CompletionCache
    vault: VaultClient
    argocd: ArgoCdClient
    artifactory: ArtifactoryClient
    entra: EntraClient
    kubernetes: KubernetesClient
    registry: CapabilityRegistry
    resolver: AuthorizationResolver
    gateway: McpGateway

    async def aclose(self) -> None:
        for client in (self.vault, self.argocd, self.artifactory, self.entra, self.kubernetes):
            await client.aclose()
        await self.resolver.aclose()


def build_gateway(settings: Settings, *, registry: CapabilityRegistry, resolver: AuthorizationResolver) -> McpGateway:
    dispatcher = Dispatcher(
        registry,
        server_name=settings.service_name,
        server_version=settings.service_version,
        instructions=SERVER_INSTRUCTIONS,
    )
    return McpGateway(
        resolver=resolver,
        dispatcher=dispatcher,
        sessions=SessionRegistry("streamable-http"),
        legacy_sessions=SessionRegistry("legacy-sse"),
        keepalive_seconds=settings.sse_keepalive_seconds,
    )


async def build_runtime_components(
    settings: Settings,
    *,
    resolver: AuthorizationResolver | None = None,
) -> RuntimeComponents:
    cache = CompletionCache()
    timeout_seconds = settings.request_timeout_seconds

    vault = VaultClient(VaultSettings(), cache=cache, timeout_seconds=timeout_seconds)
    argocd = ArgoCdClient(ArgoCdSettings(), cache=cache, timeout_seconds=timeout_seconds)
    artifactory = ArtifactoryClient(ArtifactorySettings(), cache=cache, timeout_seconds=timeout_seconds)
    entra = EntraClient(EntraSettings(), cache=cache, timeout_seconds=timeout_seconds)
    kubernetes = KubernetesClient(KubernetesSettings(), cache=cache, timeout_seconds=timeout_seconds)

    registry = build_default_registry(
        vault=vault,
        argocd=argocd,
        artifactory=artifactory,
        entra=entra,
        kubernetes=kubernetes,
        prompts=discover_prompts(Path(settings.prompts_dir)),
        service_name=settings.service_name,
        service_version=settings.service_version,
    )
    if resolver is None:
        resolver = build_resolver(settings)

    return RuntimeComponents(
        settings=settings,
        cache=cache,
        vault=vault,
        argocd=argocd,
        artifactory=artifactory,
        entra=entra,
        kubernetes=kubernetes,
        registry=registry,
        resolver=resolver,
        gateway=build_gateway(settings, registry=registry, resolver=resolver),
    )
