"""Errors raised by the Hindsight backend client."""

from enum import StrEnum
from typing import Any, Optional

import httpx


class ErrorCode(StrEnum):
    BACKEND_UNAVAILABLE = "backend_unavailable"
    BANK_NOT_FOUND = "bank_not_found"
    VALIDATION_ERROR = "validation_error"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CONNECTION_TIMEOUT = "connection_timeout"
    UNKNOWN_ERROR = "unknown_error"


class BackendError(Exception):
    """Base backend error. ``is_retryable`` drives the default retry policy."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        is_retryable: bool = False,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.code = code
        self.is_retryable = is_retryable
        self.status_code = status_code

    @property
    def is_unavailable(self) -> bool:
        return self.code == ErrorCode.BACKEND_UNAVAILABLE

    @property
    def is_timeout(self) -> bool:
        return self.code == ErrorCode.CONNECTION_TIMEOUT

    @property
    def is_bank_not_found(self) -> bool:
        return self.code == ErrorCode.BANK_NOT_FOUND

    @property
    def is_validation_error(self) -> bool:
        return self.code == ErrorCode.VALIDATION_ERROR


def extract_error_message(body: Any) -> Optional[str]:
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if isinstance(body.get(key), str):
                return body[key]
    return None


def error_from_response(status: int, body: Any, path: str, reason: str = "") -> BackendError:
    """Map an HTTP error response onto a BackendError."""
    message = extract_error_message(body) or reason or "Request failed"

    if status in (400, 401, 403):
        prefix = "Bad request" if status == 400 else "Authentication failed"
        return BackendError(f"{prefix}: {message}", ErrorCode.VALIDATION_ERROR, status_code=status)
    if status == 404:
        if "/banks/" in path:
            return BackendError(f"Bank not found: {message}", ErrorCode.BANK_NOT_FOUND, status_code=404)
        return BackendError(f"Not found: {message}", ErrorCode.VALIDATION_ERROR, status_code=404)
    if status == 422:
        return BackendError(f"Validation failed: {message}", ErrorCode.VALIDATION_ERROR, status_code=422)
    if status == 429:
        return BackendError(
            f"Rate limited: {message}", ErrorCode.RATE_LIMITED, is_retryable=True, status_code=429
        )
    if status >= 500:
        return BackendError(
            f"Server error ({status}): {message}",
            ErrorCode.SERVER_ERROR,
            is_retryable=True,
            status_code=status,
        )
    return BackendError(f"HTTP error ({status}): {message}", ErrorCode.UNKNOWN_ERROR, status_code=status)


def error_from_network_failure(exc: Exception) -> BackendError:
    """Map a transport-level failure onto a retryable BackendError."""
    if isinstance(exc, httpx.TimeoutException):
        return BackendError("Request timed out", ErrorCode.CONNECTION_TIMEOUT, is_retryable=True)
    if isinstance(exc, httpx.TransportError):
        return BackendError(
            "Cannot connect to Hindsight server", ErrorCode.BACKEND_UNAVAILABLE, is_retryable=True
        )
    return BackendError(f"Network error: {exc}", ErrorCode.BACKEND_UNAVAILABLE, is_retryable=True)
