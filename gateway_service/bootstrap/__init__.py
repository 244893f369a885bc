from __future__ import annotations

from gateway_service.bootstrap.container import RuntimeComponents, build_gateway, build_runtime_components
from gateway_service.bootstrap.lifespan import create_lifespan

__all__ = [
    "RuntimeComponents",
    "build_gateway",
    "build_runtime_components",
    "create_lifespan",
]
