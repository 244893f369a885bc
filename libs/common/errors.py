from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass(slots=True)
class ErrorEnvelope:
    error_code: str
    message: str
    trace_id: str
    retryable: bool


class DomainError(Exception):
    def __init__(self, error_code: str, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.retryable = retryable


class AuthenticationError(DomainError):
    def __init__(self, message: str = "인증에 실패했어요.") -> None:
        super().__init__("AUTH_FAILED", message, retryable=False)


class ValidationError(DomainError):
    def __init__(self, message: str = "검증에 실패했어요.") -> None:
        super().__init__("VALIDATION_FAILED", message, retryable=False)


class UpstreamTransientError(DomainError):
    def __init__(self, message: str = "외부 시스템에 일시적인 문제가 발생했어요.") -> None:
        super().__init__("UPSTREAM_TRANSIENT", message, retryable=True)


class UpstreamRequestError(DomainError):
    """외부 시스템이 요청을 거부했어요 (5xx를 제외한 4xx)."""

    def __init__(self, message: str = "외부 시스템이 요청을 거부했어요.", status_code: int = 400) -> None:
        super().__init__("UPSTREAM_REJECTED", message, retryable=False)
        self.status_code = status_code


class UpstreamAccessError(DomainError):
    def __init__(self, message: str = "외부 시스템 접근 권한이 없어요.") -> None:
        super().__init__("UPSTREAM_FORBIDDEN", message, retryable=False)


class RateLimitError(DomainError):
    def __init__(self, message: str = "요청 제한을 초과했어요.") -> None:
        super().__init__("RATE_LIMITED", message, retryable=True)


class OperationTimeoutError(DomainError):
    def __init__(self, message: str = "작업 시간이 초과됐어요.") -> None:
        super().__init__("TIMEOUT", message, retryable=True)


class NotFoundError(DomainError):
    def __init__(self, message: str = "대상을 찾지 못했어요.") -> None:
        super().__init__("NOT_FOUND", message, retryable=False)


class ConfigurationError(DomainError):
    def __init__(self, message: str = "설정이 올바르지 않아요.") -> None:
        super().__init__("CONFIGURATION_ERROR", message, retryable=False)


class SessionProtocolError(DomainError):
    """세션 식별자나 초기화 규칙을 어긴 요청이에요. 응답에는 세션 ID를 싣지 않아요."""

    def __init__(self, message: str = "Bad Request: No valid session ID provided") -> None:
        super().__init__("SESSION_PROTOCOL", message, retryable=False)


class NestedRequestError(DomainError):
    def __init__(self, message: str = "클라이언트에 보낸 요청이 실패했어요.", code: int | None = None) -> None:
        super().__init__("NESTED_REQUEST_FAILED", message, retryable=False)
        self.code = code


def build_error_envelope(error_code: str, message: str, retryable: bool) -> ErrorEnvelope:
    return ErrorEnvelope(
        error_code=error_code,
        message=message,
        trace_id=str(uuid.uuid4()),
        retryable=retryable,
    )
