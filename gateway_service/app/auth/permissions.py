"""역할(role)을 권한 문자열로 바꾸는 매핑이에요.

권한 문자열은 ``<service>:<verb>`` 형식이고, ``admin``은 모든 capability가
대체 권한으로 함께 요구하는 우산 권한이에요. 와일드카드는 해석하지 않아요.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping

from gateway_service.app.utils import normalize_str_list
from libs.common.logging import get_logger

logger = get_logger("gateway_service.auth.permissions")

DEFAULT_PERMISSION_MAPPING: dict[str, list[str]] = {
    "admin": ["admin"],
    "platform-admin": [
        "vault:admin",
        "vault:read",
        "argocd:admin",
        "argocd:read",
        "artifactory:admin",
        "artifactory:read",
        "entra:read",
        "kubernetes:read",
    ],
    "developer": ["vault:read", "argocd:read", "argocd:sync", "artifactory:read", "kubernetes:read"],
    "viewer": ["vault:read", "argocd:read", "artifactory:read", "entra:read", "kubernetes:read"],
}


def load_permission_mapping(raw: str | None) -> dict[str, list[str]]:
    """JSON 문자열로 들어온 사용자 정의 매핑을 기본 매핑 위에 덮어써요.

    파싱에 실패하면 경고를 남기고 기본 매핑을 그대로 써요.
    """
    mapping = {role: list(permissions) for role, permissions in DEFAULT_PERMISSION_MAPPING.items()}
    if not raw or not raw.strip():
        return mapping

    try:
        custom = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("permission_mapping_invalid", reason="json_decode_error")
        return mapping

    if not isinstance(custom, dict):
        logger.warning("permission_mapping_invalid", reason="not_an_object")
        return mapping

    for role, permissions in custom.items():
        if isinstance(role, str):
            mapping[role] = normalize_str_list(permissions)
    return mapping


def map_roles_to_permissions(roles: Iterable[str], mapping: Mapping[str, list[str]]) -> tuple[str, ...]:
    """역할 순서를 유지하면서 중복 없는 권한 목록을 만들어요."""
    permissions: dict[str, None] = {}
    for role in roles:
        for permission in mapping.get(role, []):
            permissions[permission] = None
    return tuple(permissions)
