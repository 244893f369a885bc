"""세션 하나에 묶인 양방향 트랜스포트예요.

클라이언트 -> 서버 요청은 도착 순서대로 하나씩 처리해요. 서버 -> 클라이언트 메시지
(중첩 요청, 레거시 SSE 응답)는 outbound 큐에 쌓였다가 SSE 스트림으로 흘러가요.
클라이언트가 중첩 요청에 답한 JSON-RPC 응답은 요청 락을 거치지 않고 바로 전달돼요.
"""

from __future__ import annotations

import asyncio
import itertools
import json
from collections.abc import AsyncIterator, Callable, Iterable
from typing import TYPE_CHECKING, Any

from gateway_service.app.mcp_protocol import JSONRPC_VERSION, is_jsonrpc_response, is_notification
from libs.common.errors import NestedRequestError, OperationTimeoutError, SessionProtocolError
from libs.common.logging import get_logger, log_context

if TYPE_CHECKING:
    from gateway_service.app.server import McpServerInstance

logger = get_logger("gateway_service.sessions.transport")

CloseHook = Callable[["McpTransport"], None]


def format_sse_event(event: str, data: object) -> str:
    payload = data if isinstance(data, str) else json.dumps(data, ensure_ascii=False)
    return f"event: {event}\ndata: {payload}\n\n"


class McpTransport:
    def __init__(self, *, keepalive_seconds: float = 15.0, close_on_stream_end: bool = False) -> None:
        self.session_id: str | None = None
        self._keepalive_seconds = keepalive_seconds
        self._close_on_stream_end = close_on_stream_end
        self._server: McpServerInstance | None = None
        self._request_lock = asyncio.Lock()
        self._outbound: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._request_ids = itertools.count(1)
        self._close_hooks: list[CloseHook] = []
        self._stream_attached = False
        self._stream_generation = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def stream_attached(self) -> bool:
        return self._stream_attached

    @property
    def stream_generation(self) -> int:
        return self._stream_generation

    @property
    def server(self) -> McpServerInstance:
        if self._server is None:
            raise SessionProtocolError("세션에 서버 인스턴스가 아직 연결되지 않았어요.")
        return self._server

    def bind(self, server: McpServerInstance) -> None:
        """세션을 만들 때 한 번만 호출돼요. 바인딩된 capability 목록은 이후 바뀌지 않아요."""
        if self._server is not None:
            raise SessionProtocolError("이미 서버 인스턴스가 연결된 세션이에요.")
        self._server = server

    def on_close(self, hook: CloseHook) -> None:
        self._close_hooks.append(hook)

    async def handle_message(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """인바운드 메시지 하나를 처리해요.

        요청이면 JSON-RPC 응답을 돌려주고, 알림이나 클라이언트 응답이면 ``None``을 돌려줘요.
        처리 도중 세션이 닫히면 응답을 버리고 ``None``을 돌려줘요.
        """
        if is_jsonrpc_response(message):
            self.deliver_response(message)
            return None

        server = self.server
        if is_notification(message):
            await server.handle_notification(message)
            return None

        async with self._request_lock:
            with log_context(session_id=self.session_id, method=message.get("method")):
                response = await server.handle_request(message, self)

        if self._closed:
            logger.info(
                "response_discarded",
                session_id=self.session_id,
                method=message.get("method"),
                request_id=message.get("id"),
            )
            return None
        return response

    async def request(
        self,
        method: str,
        params: dict[str, Any] | None,
        *,
        timeout_seconds: float | None = None,
    ) -> dict[str, Any]:
        """클라이언트에게 JSON-RPC 요청을 보내고 응답 결과를 기다려요."""
        if self._closed:
            raise NestedRequestError("세션이 이미 닫혀서 클라이언트에 요청을 보낼 수 없어요.")
        if not self._stream_attached:
            raise NestedRequestError("클라이언트로 가는 스트림이 열려 있지 않아요. GET 스트림을 먼저 열어야 해요.")

        request_id = f"srv-{next(self._request_ids)}"
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        outbound: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method}
        if params is not None:
            outbound["params"] = params
        self.send(outbound)

        try:
            if timeout_seconds is None:
                response = await future
            else:
                response = await asyncio.wait_for(future, timeout=timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise OperationTimeoutError(f"클라이언트가 {method} 요청에 제때 답하지 않았어요.") from exc
        finally:
            self._pending.pop(request_id, None)

        error = response.get("error")
        if isinstance(error, dict):
            raise NestedRequestError(
                str(error.get("message") or "클라이언트가 요청을 거부했어요."),
                code=error.get("code") if isinstance(error.get("code"), int) else None,
            )
        result = response.get("result")
        return result if isinstance(result, dict) else {}

    def deliver_response(self, message: dict[str, Any]) -> None:
        request_id = message.get("id")
        future = self._pending.get(str(request_id))
        if future is None or future.done():
            logger.warning("unexpected_client_response", session_id=self.session_id, request_id=request_id)
            return
        future.set_result(message)

    def send(self, message: dict[str, Any]) -> bool:
        """서버 -> 클라이언트 메시지를 큐에 넣어요. 닫힌 세션이면 버리고 ``False``를 돌려줘요."""
        if self._closed:
            logger.info("response_discarded", session_id=self.session_id, request_id=message.get("id"))
            return False
        self._outbound.put_nowait(message)
        return True

    def open_stream(self, preamble: Iterable[str] = ()) -> AsyncIterator[str]:
        """SSE 프레임을 내보내는 이터레이터를 만들어요. 세션마다 스트림은 하나만 열 수 있어요."""
        self._attach_stream()
        return self._iterate_stream(list(preamble), self._stream_generation)

    def open_channel(self) -> AsyncIterator[dict[str, Any]]:
        """SSE 프레임 없이 outbound 메시지를 그대로 내보내요. STDIO처럼 줄 단위로 쓰는 쪽에서 써요."""
        self._attach_stream()
        return self._iterate_channel(self._stream_generation)

    def _attach_stream(self) -> None:
        if self._closed:
            raise SessionProtocolError("이미 닫힌 세션이에요.")
        if self._stream_attached:
            raise SessionProtocolError("이 세션에는 이미 열린 스트림이 있어요.")
        self._stream_attached = True
        self._stream_generation += 1

    async def _iterate_channel(self, generation: int) -> AsyncIterator[dict[str, Any]]:
        try:
            while True:
                message = await self._outbound.get()
                if message is None:
                    break
                yield message
        finally:
            self.detach_stream(generation)

    async def _iterate_stream(self, preamble: list[str], generation: int) -> AsyncIterator[str]:
        try:
            for frame in preamble:
                yield frame
            while True:
                try:
                    message = await asyncio.wait_for(self._outbound.get(), timeout=self._keepalive_seconds)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                if message is None:
                    break
                yield format_sse_event("message", message)
        finally:
            self.detach_stream(generation)

    def detach_stream(self, generation: int | None = None) -> None:
        """스트림이 끊겼을 때 불려요. 이미 프레임을 내보낸 중첩 요청은 답을 받을 수 없으니 실패시켜요.

        ``generation``이 지금 열린 스트림과 다르면 아무것도 하지 않아요.
        """
        if generation is not None and generation != self._stream_generation:
            return
        if not self._stream_attached:
            return
        self._stream_attached = False
        failed = self._fail_pending("클라이언트 스트림이 끊겨서 요청에 대한 응답을 받을 수 없어요.")
        if failed:
            logger.warning("stream_detached_with_pending_requests", session_id=self.session_id, pending=failed)
        if self._close_on_stream_end:
            self.close(reason="stream_closed")

    def close(self, reason: str = "closed") -> None:
        """세션을 닫아요. 대기 중인 중첩 요청은 실패시키고 close 훅을 한 번씩 실행해요."""
        if self._closed:
            return
        self._closed = True

        self._fail_pending("세션이 닫혀서 클라이언트 요청이 취소됐어요.")
        self._outbound.put_nowait(None)

        hooks, self._close_hooks = self._close_hooks, []
        for hook in hooks:
            hook(self)
        logger.info("session_closed", session_id=self.session_id, reason=reason)

    def _fail_pending(self, message: str) -> int:
        failed = 0
        for future in self._pending.values():
            if not future.done():
                future.set_exception(NestedRequestError(message))
                failed += 1
        self._pending.clear()
        return failed
