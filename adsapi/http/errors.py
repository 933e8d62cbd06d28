"""
Error taxonomy for the advertising API client.

Every failure a caller can observe is one of the exceptions below, all
rooted at ``AdsApiError``. Raw httpx exceptions never leak past the client.

Error Classification Strategy:
    Transport failure (connect/timeout) → TransportError → retried
    HTTP 429/500/502/503/504            → RetryableStatusError → retried
    Retries used up                     → RetryExhaustedError (wraps last)
    Error body with a platform code     → ApiError → never retried here
    Error status without a usable body  → HttpStatusError
    Caller cancel / deadline            → RequestCancelledError → never retried
    Body does not match expected shape  → DecodeError → contract mismatch

Kinds (see ``classify``):
    RATE_LIMIT        429 or RATE_LIMIT_EXCEEDED (also retryable)
    AUTHENTICATION    401/403 or credential codes
    VALIDATION        400 or parameter codes
    RETRYABLE_SERVER  5xx gateway/server statuses or transient codes
    NOT_FOUND         404 or RESOURCE_NOT_FOUND
    API               any other platform error
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode:
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INVALID_ACCESS_TOKEN = "INVALID_ACCESS_TOKEN"
    ACCESS_TOKEN_EXPIRED = "ACCESS_TOKEN_EXPIRED"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"

    INVALID_PARAMETER = "INVALID_PARAMETER"
    MISSING_PARAMETER = "MISSING_PARAMETER"
    PARAMETER_VALUE_NOT_SUPPORTED = "PARAMETER_VALUE_NOT_SUPPORTED"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    RESOURCE_LIMIT_EXCEEDED = "RESOURCE_LIMIT_EXCEEDED"

    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    CAMPAIGN_NOT_ACTIVE = "CAMPAIGN_NOT_ACTIVE"
    ADGROUP_NOT_ACTIVE = "ADGROUP_NOT_ACTIVE"
    CREATIVE_NOT_APPROVED = "CREATIVE_NOT_APPROVED"


RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
RETRYABLE_CODES = frozenset(
    {ErrorCode.RATE_LIMIT_EXCEEDED, ErrorCode.INTERNAL_ERROR, ErrorCode.SERVICE_UNAVAILABLE, ErrorCode.TIMEOUT}
)
AUTH_STATUSES = frozenset({401, 403})
AUTH_CODES = frozenset(
    {
        ErrorCode.UNAUTHORIZED,
        ErrorCode.FORBIDDEN,
        ErrorCode.INVALID_ACCESS_TOKEN,
        ErrorCode.ACCESS_TOKEN_EXPIRED,
        ErrorCode.INSUFFICIENT_PERMISSIONS,
    }
)
VALIDATION_CODES = frozenset(
    {
        ErrorCode.INVALID_PARAMETER,
        ErrorCode.MISSING_PARAMETER,
        ErrorCode.PARAMETER_VALUE_NOT_SUPPORTED,
        ErrorCode.VALIDATION_ERROR,
    }
)


class ErrorKind(str, Enum):
    TRANSPORT = "transport"
    RETRYABLE_SERVER = "retryable_server"
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    CANCELLED = "cancelled"
    DECODE = "decode"
    NOT_FOUND = "not_found"
    API = "api"


def is_rate_limit_error(http_status: int | None, code: str | None) -> bool:
    return http_status == 429 or code == ErrorCode.RATE_LIMIT_EXCEEDED


def is_retryable_error(http_status: int | None, code: str | None) -> bool:
    return http_status in RETRYABLE_STATUSES or code in RETRYABLE_CODES


def is_authentication_error(http_status: int | None, code: str | None) -> bool:
    return http_status in AUTH_STATUSES or code in AUTH_CODES


def is_validation_error(http_status: int | None, code: str | None) -> bool:
    return http_status == 400 or code in VALIDATION_CODES


def classify(http_status: int | None, code: str | None = None) -> ErrorKind:
    """Map an (HTTP status, platform code) pair onto a single error kind."""
    if is_rate_limit_error(http_status, code):
        return ErrorKind.RATE_LIMIT
    if is_authentication_error(http_status, code):
        return ErrorKind.AUTHENTICATION
    if is_validation_error(http_status, code):
        return ErrorKind.VALIDATION
    if is_retryable_error(http_status, code):
        return ErrorKind.RETRYABLE_SERVER
    if http_status == 404 or code == ErrorCode.RESOURCE_NOT_FOUND:
        return ErrorKind.NOT_FOUND
    return ErrorKind.API


@dataclass(eq=False)
class AdsApiError(Exception):
    """
    Base exception for every error surfaced by the client.

    Attributes:
        message: Human-readable error description.
    """
    message: str

    def __str__(self) -> str:
        return self.message


class TransportError(AdsApiError):
    """
    Connection could not be established or timed out before a response.

    The underlying httpx exception is chained as ``__cause__``.
    """
    pass


@dataclass(eq=False)
class RetryableStatusError(AdsApiError):
    """Synthetic per-attempt record of a response with a retryable status."""
    status_code: int = 0

    def __str__(self) -> str:
        return f"{self.message} | status={self.status_code}"


@dataclass(eq=False)
class RetryExhaustedError(AdsApiError):
    """
    Every physical attempt of a logical call failed.

    Attributes:
        attempts: Number of physical sends performed.
        last_error: The failure recorded on the final attempt.
    """
    attempts: int = 0
    last_error: AdsApiError | None = None

    def __str__(self) -> str:
        text = f"{self.message} after {self.attempts} attempts"
        if self.last_error is not None:
            text += f": {self.last_error}"
        return text


@dataclass(eq=False)
class ApiError(AdsApiError):
    """
    Structured error reported by the platform.

    Built from ``{"code", "message", "request_id", "data"}`` bodies, either
    on an HTTP error status or inside an HTTP 200 envelope with a non-zero
    code. Predicates below consult both the HTTP status and the code.
    """
    code: str = ""
    request_id: str = ""
    http_status: int = 0
    data: Any = None

    def __str__(self) -> str:
        text = f"API error [{self.code}]: {self.message}"
        if self.request_id:
            text += f" (request_id: {self.request_id})"
        return text

    @classmethod
    def from_payload(cls, payload: Any, http_status: int) -> "ApiError | None":
        if not isinstance(payload, dict):
            return None
        code = payload.get("code")
        if code in (None, "", 0, "0") or isinstance(code, bool):
            return None
        if not isinstance(code, (str, int)):
            return None
        return cls(
            message=str(payload.get("message") or ""),
            code=str(code),
            request_id=str(payload.get("request_id") or ""),
            http_status=http_status,
            data=payload.get("data"),
        )

    @property
    def kind(self) -> ErrorKind:
        return classify(self.http_status, self.code)

    @property
    def is_retryable(self) -> bool:
        return is_retryable_error(self.http_status, self.code)

    @property
    def is_authentication_error(self) -> bool:
        return is_authentication_error(self.http_status, self.code)

    @property
    def is_validation_error(self) -> bool:
        return is_validation_error(self.http_status, self.code)

    @property
    def is_rate_limit_error(self) -> bool:
        return is_rate_limit_error(self.http_status, self.code)


@dataclass(eq=False)
class HttpStatusError(AdsApiError):
    """Error status whose body carried no structured platform error."""
    status_code: int = 0
    response_text: str = ""

    def __str__(self) -> str:
        parts = [self.message, f"status={self.status_code}"]
        if self.response_text:
            parts.append(f"response={self.response_text}")
        return " | ".join(parts)

    @property
    def kind(self) -> ErrorKind:
        return classify(self.status_code)


class RequestCancelledError(AdsApiError):
    """The caller cancelled the call or its deadline passed."""
    pass


@dataclass(eq=False)
class DecodeError(AdsApiError):
    """Response body did not decode into the expected shape."""
    response_text: str = ""


def classify_exception(exc: BaseException) -> ErrorKind:
    if isinstance(exc, RequestCancelledError):
        return ErrorKind.CANCELLED
    if isinstance(exc, DecodeError):
        return ErrorKind.DECODE
    if isinstance(exc, ApiError):
        return exc.kind
    if isinstance(exc, HttpStatusError):
        return exc.kind
    if isinstance(exc, RetryableStatusError):
        return classify(exc.status_code)
    if isinstance(exc, RetryExhaustedError):
        if exc.last_error is not None:
            return classify_exception(exc.last_error)
        return ErrorKind.TRANSPORT
    return ErrorKind.TRANSPORT
