from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Request

from gateway_service.app.auth.models import AuthenticatedUser
from gateway_service.modules.common.deps import get_settings, require_user

router = APIRouter()
public_router = APIRouter()


def _status_payload(request: Request) -> dict[str, Any]:
    app_settings = get_settings(request)
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": app_settings.service_version,
        "environment": app_settings.environment,
    }


@public_router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    return _status_payload(request)


@router.get("/health")
async def authenticated_health(
    request: Request,
    user: AuthenticatedUser = Depends(require_user),
) -> dict[str, Any]:
    return {**_status_payload(request), "user": user.to_dict()}
