from gateway_service.app.sessions.registry import SessionRegistry
from gateway_service.app.sessions.transport import McpTransport, format_sse_event

__all__ = [
    "McpTransport",
    "SessionRegistry",
    "format_sse_event",
]
