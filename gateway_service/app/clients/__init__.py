from gateway_service.app.clients.argocd import ArgoCdClient
from gateway_service.app.clients.artifactory import ArtifactoryClient
from gateway_service.app.clients.base import ServiceClient
from gateway_service.app.clients.entra import EntraClient
from gateway_service.app.clients.kubernetes import KubernetesClient
from gateway_service.app.clients.vault import VaultClient

__all__ = [
    "ArgoCdClient",
    "ArtifactoryClient",
    "EntraClient",
    "KubernetesClient",
    "ServiceClient",
    "VaultClient",
]
