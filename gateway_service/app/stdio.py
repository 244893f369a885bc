"""로컬 실행용 STDIO 트랜스포트예요.

stdin에서 줄마다 JSON-RPC 메시지 하나를 읽고, 응답과 서버 -> 클라이언트 요청을 stdout에 한 줄씩 써요.
프로세스 하나가 세션 하나예요. stdout은 프로토콜 전용이라 로그는 stderr로 보내야 해요.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any, TextIO

from gateway_service.app.auth.models import AuthenticatedUser
from gateway_service.app.gateway import McpGateway, log_session_created
from gateway_service.app.mcp_protocol import INVALID_REQUEST, PARSE_ERROR, jsonrpc_error
from gateway_service.app.sessions import McpTransport, SessionRegistry
from libs.common.logging import get_logger

logger = get_logger("gateway_service.stdio")


class StdioSession:
    def __init__(self, transport: McpTransport, *, stdin: TextIO, stdout: TextIO) -> None:
        self._transport = transport
        self._stdin = stdin
        self._stdout = stdout
        self._in_flight: set[asyncio.Task[None]] = set()

    async def run(self) -> None:
        """stdin이 닫힐 때까지 메시지를 처리하고, 진행 중인 요청을 마친 뒤 세션을 닫아요."""
        writer = asyncio.create_task(self._write_outbound(self._transport.open_channel()))
        try:
            while True:
                line = await asyncio.to_thread(self._stdin.readline)
                if not line:
                    break
                if line.strip():
                    self._accept(line)
            if self._in_flight:
                await asyncio.gather(*self._in_flight)
        finally:
            self._transport.close(reason="stdin_closed")
            await writer

    def _accept(self, line: str) -> None:
        try:
            message = json.loads(line)
        except ValueError:
            self._transport.send(jsonrpc_error(None, PARSE_ERROR, "Parse error: Invalid JSON"))
            return
        if not isinstance(message, dict):
            self._transport.send(jsonrpc_error(None, INVALID_REQUEST, "Invalid Request"))
            return

        # 중첩 요청에 대한 클라이언트 응답은 진행 중인 요청을 풀어줘야 하므로 따로 태스크로 돌려요
        task = asyncio.create_task(self._handle(message))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _handle(self, message: dict[str, Any]) -> None:
        response = await self._transport.handle_message(message)
        if response is not None:
            self._transport.send(response)

    async def _write_outbound(self, channel: AsyncIterator[dict[str, Any]]) -> None:
        async for message in channel:
            self._stdout.write(json.dumps(message, ensure_ascii=False) + "\n")
            self._stdout.flush()


async def serve_stdio(gateway: McpGateway, user: AuthenticatedUser, *, stdin: TextIO, stdout: TextIO) -> None:
    transport = gateway.create_transport(user)
    session_id = SessionRegistry("stdio").create(transport)
    log_session_created(session_id, user, transport_kind="stdio")
    await StdioSession(transport, stdin=stdin, stdout=stdout).run()
