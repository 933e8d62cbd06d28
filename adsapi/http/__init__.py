from adsapi.http.client import ApiClient, HttpMetrics
from adsapi.http.context import CallContext
from adsapi.http.errors import (
    AdsApiError,
    ApiError,
    DecodeError,
    ErrorCode,
    ErrorKind,
    HttpStatusError,
    RequestCancelledError,
    RetryableStatusError,
    RetryExhaustedError,
    TransportError,
    classify,
    classify_exception,
)
from adsapi.http.ratelimit import NoopLimiter, TokenBucket

__all__ = [
    "AdsApiError",
    "ApiClient",
    "ApiError",
    "CallContext",
    "DecodeError",
    "ErrorCode",
    "ErrorKind",
    "HttpMetrics",
    "HttpStatusError",
    "NoopLimiter",
    "RequestCancelledError",
    "RetryExhaustedError",
    "RetryableStatusError",
    "TokenBucket",
    "TransportError",
    "classify",
    "classify_exception",
]
