from __future__ import annotations

from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from gateway_service.app.utils import normalize_str_list

_DEFAULT_PROMPTS_DIR = str(Path(__file__).resolve().parents[1] / "prompts")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    service_name: str = "platform-mcp-gateway"
    service_version: str = "0.1.0"
    environment: str = "production"
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    request_timeout_seconds: float = 15.0
    # CSV 문자열 또는 리스트 모두 허용해요
    dev_user_permissions: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["admin"])
    auth_tenant_id: str = ""
    auth_client_id: str = ""
    auth_issuer: str = ""
    auth_jwks_uri: str = ""
    auth_role_claim: str = "roles"
    auth_permission_mapping: str = ""
    auth_jwks_cache_seconds: float = 600.0
    legacy_sse_enabled: bool = True
    sse_keepalive_seconds: float = 15.0
    prompts_dir: str = _DEFAULT_PROMPTS_DIR

    @field_validator("dev_user_permissions", mode="before")
    @classmethod
    def _parse_permissions(cls, value: object) -> list[str]:
        """환경변수에서 CSV 문자열로 들어온 경우 리스트로 변환해요."""
        if isinstance(value, str):
            return normalize_str_list(value)
        return value  # type: ignore[return-value]

    @property
    def is_development(self) -> bool:
        return self.environment.strip().lower() == "development"

    @property
    def resolved_issuer(self) -> str:
        if self.auth_issuer:
            return self.auth_issuer
        if self.auth_tenant_id:
            return f"https://login.microsoftonline.com/{self.auth_tenant_id}/v2.0"
        return ""

    @property
    def resolved_jwks_uri(self) -> str:
        if self.auth_jwks_uri:
            return self.auth_jwks_uri
        if self.auth_tenant_id:
            return f"https://login.microsoftonline.com/{self.auth_tenant_id}/discovery/v2.0/keys"
        return ""


class VaultSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="VAULT_", extra="ignore", env_file=".env", env_file_encoding="utf-8")

    addr: str = "http://127.0.0.1:8200"
    token: str = ""
    token_file: str = "~/.vault-token"
    namespace: str = ""
    oidc_mount_accessor: str = ""


class ArgoCdSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ARGOCD_", extra="ignore", env_file=".env", env_file_encoding="utf-8")

    server: str = "https://argocd.local"
    auth_token: str = ""


class ArtifactorySettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ARTIFACTORY_", extra="ignore", env_file=".env", env_file_encoding="utf-8"
    )

    url: str = "https://artifactory.local/artifactory"
    access_token: str = ""


class EntraSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ENTRA_", extra="ignore", env_file=".env", env_file_encoding="utf-8")

    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    graph_url: str = "https://graph.microsoft.com/v1.0"
    login_url: str = "https://login.microsoftonline.com"


class KubernetesSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="KUBERNETES_", extra="ignore", env_file=".env", env_file_encoding="utf-8"
    )

    api_url: str = "https://kubernetes.default.svc"
    token_file: str = "/var/run/secrets/kubernetes.io/serviceaccount/token"
    ca_file: str = "/var/run/secrets/kubernetes.io/serviceaccount/ca.crt"
    verify_tls: bool = True


settings = Settings()
