from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class AuthenticatedUser:
    id: str
    email: str
    name: str
    roles: tuple[str, ...] = ()
    permissions: tuple[str, ...] = ()
    tenant_id: str | None = None
    groups: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "roles": list(self.roles),
            "permissions": list(self.permissions),
            "tenant_id": self.tenant_id,
            "groups": list(self.groups),
        }


@dataclass(slots=True, frozen=True)
class Credential:
    """인바운드 요청에서 뽑아낸 자격 증명이에요. 토큰이 없으면 ``token``이 ``None``이에요."""

    token: str | None
    metadata: dict[str, str] = field(default_factory=dict)


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
