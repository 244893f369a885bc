from __future__ import annotations

import uuid

from gateway_service.app.sessions.transport import McpTransport
from libs.common.logging import get_logger

logger = get_logger("gateway_service.sessions.registry")


class SessionRegistry:
    """세션 ID -> 트랜스포트 매핑을 소유해요. 다른 컴포넌트는 이 맵을 직접 바꾸지 않아요.

    Streamable HTTP와 레거시 SSE는 서로 다른 인스턴스(키 공간)를 써요.
    """

    def __init__(self, keyspace: str) -> None:
        self.keyspace = keyspace
        self._sessions: dict[str, McpTransport] = {}

    def create(self, transport: McpTransport) -> str:
        """세션 생성이 끝난 트랜스포트를 등록하고 새 세션 ID를 발급해요."""
        if transport.closed:
            raise ValueError("닫힌 트랜스포트는 등록할 수 없어요.")
        session_id = str(uuid.uuid4())
        transport.session_id = session_id
        self._sessions[session_id] = transport
        transport.on_close(lambda closed: self.remove(session_id))
        return session_id

    def get(self, session_id: str | None) -> McpTransport | None:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> bool:
        removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.info("session_removed", keyspace=self.keyspace, session_id=session_id)
        return removed

    def close_all(self) -> int:
        transports = list(self._sessions.values())
        for transport in transports:
            transport.close(reason="shutdown")
        return len(transports)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
