from __future__ import annotations

from enum import Enum


class ApiErrorCode(str, Enum):
    """Classification codes carried by ApiError.

    This is a string enum where each member is both an Enum and a str, so
    ``err.code == "NOT_FOUND"`` holds for the matching member.
    """

    VALIDATION_ERROR = "VALIDATION_ERROR"  # 400 - request rejected by the service
    NOT_FOUND = "NOT_FOUND"  # 404 - unknown or disabled job key
    RATE_LIMITED = "RATE_LIMITED"  # 429 - too many requests
    SERVER_ERROR = "SERVER_ERROR"  # 5xx - service failure
    NETWORK_ERROR = "NETWORK_ERROR"  # no HTTP response (timeout, connect, protocol)
    UNKNOWN_ERROR = "UNKNOWN_ERROR"  # any other non-2xx status


class ValidationError(ValueError):
    """Raised before any network activity when a caller argument is invalid."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ApiError(Exception):
    """A request that could not be completed successfully.

    Attributes:
        code: Classification of the failure
        message: Human-readable message (server supplied when available)
        http_status: HTTP status code, None when no response was received
        retryable: Whether re-issuing the same request may succeed
        raw: Decoded response body, or the underlying exception for network failures
    """

    def __init__(
        self,
        code: ApiErrorCode,
        message: str,
        *,
        http_status: int | None = None,
        retryable: bool = False,
        raw: object = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status
        self.retryable = retryable
        self.raw = raw

    def __repr__(self) -> str:
        return (
            f"ApiError(code={self.code.value!r}, http_status={self.http_status!r}, "
            f"retryable={self.retryable!r}, message={self.message!r})"
        )


def classify_status(status: int) -> tuple[ApiErrorCode, bool]:
    """Map a non-2xx HTTP status to (code, retryable)."""
    if status == 400:
        return ApiErrorCode.VALIDATION_ERROR, False
    if status == 404:
        return ApiErrorCode.NOT_FOUND, False
    if status == 429:
        return ApiErrorCode.RATE_LIMITED, True
    if status >= 500:
        return ApiErrorCode.SERVER_ERROR, True
    return ApiErrorCode.UNKNOWN_ERROR, False


__all__ = [
    "ApiError",
    "ApiErrorCode",
    "ValidationError",
    "classify_status",
]
