"""HTTP 요청을 세션 트랜스포트로 라우팅하는 멀티플렉서예요.

- 세션 ID 없이 들어온 initialize 요청만 새 세션을 만들어요. 인증은 이때 한 번만 해요.
- 세션 ID가 있는 요청은 해당 트랜스포트로 그대로 넘기고 권한을 다시 확인하지 않아요.
- Streamable HTTP(``/mcp``)와 레거시 SSE(``/sse`` + ``/messages``)는 키 공간이 달라요.
"""

from __future__ import annotations

from typing import Any

from fastapi import BackgroundTasks, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse

from gateway_service.app.auth.models import AuthenticatedUser, Credential, extract_bearer_token
from gateway_service.app.auth.resolver import AuthorizationResolver
from gateway_service.app.dispatcher import Dispatcher
from gateway_service.app.mcp_protocol import (
    INVALID_REQUEST,
    PARSE_ERROR,
    SESSION_ID_HEADER,
    is_initialize_request,
    jsonrpc_error,
)
from gateway_service.app.sessions.registry import SessionRegistry
from gateway_service.app.sessions.transport import McpTransport, format_sse_event
from libs.common.errors import SessionProtocolError
from libs.common.logging import get_logger

logger = get_logger("gateway_service.gateway")

INVALID_SESSION_TEXT = "Invalid or missing session ID"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class McpGateway:
    def __init__(
        self,
        *,
        resolver: AuthorizationResolver,
        dispatcher: Dispatcher,
        sessions: SessionRegistry,
        legacy_sessions: SessionRegistry,
        keepalive_seconds: float,
        messages_path: str = "/messages",
    ) -> None:
        self._resolver = resolver
        self._dispatcher = dispatcher
        self.sessions = sessions
        self.legacy_sessions = legacy_sessions
        self._keepalive_seconds = keepalive_seconds
        self._messages_path = messages_path

    async def handle_post(self, request: Request) -> Response:
        body = await _read_json(request)
        if body is None:
            return JSONResponse(status_code=400, content=jsonrpc_error(None, PARSE_ERROR, "Parse error: Invalid JSON"))

        session_id = request.headers.get(SESSION_ID_HEADER)
        if session_id:
            transport = self.sessions.get(session_id)
            if transport is None:
                raise SessionProtocolError(f"Bad Request: {INVALID_SESSION_TEXT}")
            if not isinstance(body, dict):
                return JSONResponse(status_code=400, content=jsonrpc_error(None, INVALID_REQUEST, "Invalid Request"))
            return await self._deliver(transport, body)

        if not is_initialize_request(body):
            raise SessionProtocolError()
        return await self._start_session(request, body)

    async def open_stream(self, request: Request) -> Response:
        transport = self.sessions.get(request.headers.get(SESSION_ID_HEADER))
        if transport is None:
            return PlainTextResponse(INVALID_SESSION_TEXT, status_code=400)
        if transport.stream_attached:
            return PlainTextResponse("Conflict: Only one SSE stream is allowed per session", status_code=409)
        return StreamingResponse(
            transport.open_stream(),
            media_type="text/event-stream",
            headers={**SSE_HEADERS, SESSION_ID_HEADER: transport.session_id or ""},
            background=_detach_after_response(transport),
        )

    async def terminate(self, request: Request) -> Response:
        transport = self.sessions.get(request.headers.get(SESSION_ID_HEADER))
        if transport is None:
            return PlainTextResponse(INVALID_SESSION_TEXT, status_code=400)
        transport.close(reason="client_terminated")
        return Response(status_code=200)

    async def open_legacy_stream(self, request: Request) -> Response:
        user = await self._authenticate(request)
        transport = self.create_transport(user, close_on_stream_end=True)
        session_id = self.legacy_sessions.create(transport)
        log_session_created(session_id, user, transport_kind="sse")

        endpoint = f"{self._messages_path}?sessionId={session_id}"
        stream = transport.open_stream(preamble=[format_sse_event("endpoint", endpoint)])
        return StreamingResponse(
            stream,
            media_type="text/event-stream",
            headers=SSE_HEADERS,
            background=_detach_after_response(transport),
        )

    async def handle_legacy_message(self, request: Request) -> Response:
        transport = self.legacy_sessions.get(request.query_params.get("sessionId"))
        if transport is None:
            return PlainTextResponse(INVALID_SESSION_TEXT, status_code=400)

        body = await _read_json(request)
        if not isinstance(body, dict):
            return PlainTextResponse("Invalid message", status_code=400)

        response = await transport.handle_message(body)
        if response is not None:
            transport.send(response)
        return PlainTextResponse("Accepted", status_code=202)

    def close_all(self) -> int:
        return self.sessions.close_all() + self.legacy_sessions.close_all()

    def create_transport(self, user: AuthenticatedUser, *, close_on_stream_end: bool = False) -> McpTransport:
        """사용자 권한으로 필터링한 서버 인스턴스를 묶은 새 트랜스포트를 만들어요."""
        transport = McpTransport(keepalive_seconds=self._keepalive_seconds, close_on_stream_end=close_on_stream_end)
        transport.bind(self._dispatcher.create_server(user))
        return transport

    async def _start_session(self, request: Request, body: dict[str, Any]) -> Response:
        user = await self._authenticate(request)
        transport = self.create_transport(user)

        response = await transport.handle_message(body)
        if response is None or "error" in response:
            transport.close(reason="initialize_failed")
            return JSONResponse(status_code=400, content=response)

        session_id = self.sessions.create(transport)
        log_session_created(session_id, user, transport_kind="streamable_http")
        return JSONResponse(content=response, headers={SESSION_ID_HEADER: session_id})

    async def _deliver(self, transport: McpTransport, body: dict[str, Any]) -> Response:
        response = await transport.handle_message(body)
        if response is None:
            # 처리 중 세션이 닫혀 응답을 버린 경우예요
            if transport.closed:
                return Response(status_code=204)
            return Response(status_code=202)
        return JSONResponse(content=response, headers={SESSION_ID_HEADER: transport.session_id or ""})

    async def _authenticate(self, request: Request) -> AuthenticatedUser:
        credential = Credential(
            token=extract_bearer_token(request.headers.get("authorization")),
            metadata={"client_host": request.client.host if request.client else ""},
        )
        return await self._resolver.resolve(credential)


def _detach_after_response(transport: McpTransport) -> BackgroundTasks:
    """응답이 끝나면 스트림을 떼어내요. 첫 바이트 전에 연결이 끊겨 제너레이터가 시작되지 않은 경우도 포함해요."""
    generation = transport.stream_generation

    async def detach() -> None:
        transport.detach_stream(generation)

    tasks = BackgroundTasks()
    tasks.add_task(detach)
    return tasks


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


def log_session_created(session_id: str, user: AuthenticatedUser, *, transport_kind: str) -> None:
    logger.info(
        "session_created",
        session_id=session_id,
        transport=transport_kind,
        user_id=user.id,
        email=user.email,
        permissions=list(user.permissions),
    )
