"""MCP 트랜스포트 엔드포인트예요. 실제 라우팅은 `McpGateway`가 맡아요."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from gateway_service.app.gateway import McpGateway
from gateway_service.modules.common.deps import get_gateway

router = APIRouter()
legacy_router = APIRouter()


@router.post("/mcp")
async def post_message(request: Request, gateway: McpGateway = Depends(get_gateway)) -> Response:
    return await gateway.handle_post(request)


@router.get("/mcp")
async def open_stream(request: Request, gateway: McpGateway = Depends(get_gateway)) -> Response:
    return await gateway.open_stream(request)


@router.delete("/mcp")
async def terminate_session(request: Request, gateway: McpGateway = Depends(get_gateway)) -> Response:
    return await gateway.terminate(request)


@legacy_router.get("/sse")
async def open_legacy_stream(request: Request, gateway: McpGateway = Depends(get_gateway)) -> Response:
    return await gateway.open_legacy_stream(request)


@legacy_router.post("/messages")
async def post_legacy_message(request: Request, gateway: McpGateway = Depends(get_gateway)) -> Response:
    return await gateway.handle_legacy_message(request)
