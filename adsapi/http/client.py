from __future__ import annotations

import json
import logging
import ssl
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Mapping, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from adsapi.config import ClientConfig, create_config
from adsapi.http.context import CallContext
from adsapi.http.errors import (
    AdsApiError,
    ApiError,
    DecodeError,
    HttpStatusError,
    RequestCancelledError,
    RetryableStatusError,
    RetryExhaustedError,
    TransportError,
)
from adsapi.http.ratelimit import NoopLimiter, TokenBucket, build_rate_limiter
from adsapi.http.retry import AttemptOutcome, AttemptState, compute_delay, next_state
from adsapi.obs.logging import log_event
from adsapi.services.account import AccountService
from adsapi.services.campaign import CampaignService

ModelT = TypeVar("ModelT", bound=BaseModel)

JSON_CONTENT_TYPE = "application/json"


LATENCY_BUCKETS_MS = (25, 50, 100, 250, 500, 1000, 2000, 5000)


@dataclass
class LatencySummary:
    """Running latency aggregate; ``buckets[i]`` counts samples <= ``LATENCY_BUCKETS_MS[i]``."""

    count: int = 0
    min_ms: float | None = None
    max_ms: float | None = None
    buckets: list[int] = field(default_factory=lambda: [0] * len(LATENCY_BUCKETS_MS))

    def observe(self, latency_ms: float) -> None:
        self.count += 1
        self.min_ms = latency_ms if self.min_ms is None else min(self.min_ms, latency_ms)
        self.max_ms = latency_ms if self.max_ms is None else max(self.max_ms, latency_ms)
        for index, bound in enumerate(LATENCY_BUCKETS_MS):
            if latency_ms <= bound:
                self.buckets[index] += 1

    def merge(self, other: LatencySummary) -> None:
        self.count += other.count
        for value in (other.min_ms, other.max_ms):
            if value is not None:
                self.min_ms = value if self.min_ms is None else min(self.min_ms, value)
                self.max_ms = value if self.max_ms is None else max(self.max_ms, value)
        self.buckets = [mine + theirs for mine, theirs in zip(self.buckets, other.buckets)]


@dataclass
class HttpMetrics:
    http_requests_total: dict[tuple[str, str], int] = field(default_factory=lambda: defaultdict(int))
    http_retries_total: dict[tuple[str, str], int] = field(default_factory=lambda: defaultdict(int))
    http_latency_ms: dict[str, LatencySummary] = field(default_factory=lambda: defaultdict(LatencySummary))
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_request(self, endpoint: str, status: str, latency_ms: float) -> None:
        with self._lock:
            self.http_requests_total[(endpoint, status)] += 1
            self.http_latency_ms[endpoint].observe(latency_ms)

    def record_retry(self, endpoint: str, reason: str) -> None:
        with self._lock:
            self.http_retries_total[(endpoint, reason)] += 1

    def snapshot(self) -> tuple[dict[tuple[str, str], int], dict[tuple[str, str], int], LatencySummary]:
        with self._lock:
            latency = LatencySummary()
            for summary in self.http_latency_ms.values():
                latency.merge(summary)
            return dict(self.http_requests_total), dict(self.http_retries_total), latency

    def requests_for(self, endpoint: str) -> int:
        with self._lock:
            return sum(count for (name, _status), count in self.http_requests_total.items() if name == endpoint)


def format_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        items = sorted(value) if isinstance(value, (set, frozenset)) else value
        return json.dumps(items, ensure_ascii=False, separators=(",", ":"))
    return str(value)


def encode_params(params: Mapping[str, Any] | None) -> dict[str, str]:
    if not params:
        return {}
    return {key: format_param(value) for key, value in params.items() if value is not None}


def _encode_body(body: Any) -> bytes | None:
    if body is None:
        return None
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    if isinstance(body, BaseModel):
        return body.model_dump_json(exclude_none=True).encode("utf-8")
    try:
        return json.dumps(body, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise AdsApiError(f"failed to encode request body: {exc}") from exc


def _build_ssl_context() -> ssl.SSLContext:
    context = httpx.create_ssl_context()
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    return context


def _transport_timeout(timeout_s: float, handshake_s: float) -> httpx.Timeout:
    return httpx.Timeout(timeout_s, connect=min(timeout_s, handshake_s))


def _mask(secret: str) -> str:
    if len(secret) <= 8:
        return "***"
    return f"{secret[:4]}***{secret[-2:]}"


class ApiClient:
    """
    Client for the advertising platform's business API.

    Every service façade funnels through ``execute`` (rate-limited, retrying
    dispatch) and ``parse_into`` (body decode plus error classification).
    One instance owns one connection pool and one token bucket; both are
    shared by all threads calling into it.

    Example:
        >>> config = create_config(access_token="...")
        >>> with ApiClient(config) as client:
        ...     payload = client.request("GET", "/open_api/v1.3/advertiser/info/",
        ...                              params={"advertiser_ids": ["123"]})
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        logger: logging.Logger | None = None,
        session_id: str | None = None,
        transport: httpx.BaseTransport | None = None,
        rate_limiter: TokenBucket | NoopLimiter | None = None,
        sleep: Any = None,
    ) -> None:
        # create_config() raises ConfigError when no credentials are available
        self._config = config if config is not None else create_config()
        self._logger = logger or logging.getLogger(__name__)
        self._session_id = session_id or "n/a"
        self._metrics = HttpMetrics()
        self._sleep = sleep or time.sleep
        pool = self._config.pool
        self._timeout = _transport_timeout(self._config.timeout_s, pool.tls_handshake_timeout_s)
        limits = httpx.Limits(
            max_connections=pool.max_connections,
            max_keepalive_connections=pool.max_keepalive_connections,
            keepalive_expiry=pool.keepalive_expiry_s,
        )
        self._client = httpx.Client(
            base_url=self._config.base_url,
            timeout=self._timeout,
            limits=limits,
            transport=transport,
            verify=_build_ssl_context() if transport is None else True,
        )
        self._rate_limiter = rate_limiter if rate_limiter is not None else build_rate_limiter(self._config.rate_limit)

        self.account = AccountService(self)
        self.campaign = CampaignService(self)

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def metrics(self) -> HttpMetrics:
        return self._metrics

    @property
    def rate_limiter(self) -> TokenBucket | NoopLimiter:
        return self._rate_limiter

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def build_url(self, path: str, params: Mapping[str, Any] | None = None) -> str:
        url = self._resolve(path)
        encoded = encode_params(params)
        if encoded:
            url = url.copy_merge_params(encoded)
        return str(url)

    def request(
        self,
        method: str,
        path: str,
        target: type[ModelT] | None = None,
        *,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        context: CallContext | None = None,
        check_envelope: bool = True,
    ) -> Any:
        response = self.execute(method, path, body=body, headers=headers, params=params, context=context)
        return self.parse_into(response, target, check_envelope=check_envelope)

    def execute(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        context: CallContext | None = None,
    ) -> httpx.Response:
        """
        Perform one logical call and return the raw, still unread response.

        Retries transport failures and retryable statuses up to
        ``max_retries`` times; every physical attempt takes one rate-limit
        token. Non-retryable statuses (any 4xx/5xx outside the retryable
        set) are returned as-is for ``parse_into`` to classify.

        Raises:
            RequestCancelledError: context cancelled or deadline passed.
            RetryExhaustedError: every attempt failed at the transport level.
            AdsApiError: the request could not be built.
        """
        method = method.upper()
        url = self._resolve(path)
        endpoint = url.path
        content = _encode_body(body)
        request_headers = self._build_headers(headers, has_body=content is not None)
        query = encode_params(params)
        max_retries = self._config.max_retries
        retryable = self._config.retryable_status_codes
        last_error: AdsApiError | None = None

        for attempt in range(max_retries + 1):
            if attempt > 0:
                self._backoff(endpoint, attempt, context)
            self._acquire(endpoint, context)

            attempt_timeout, deadline_bound = self._attempt_timeout(context)
            start = time.monotonic()
            try:
                request = self._client.build_request(
                    method,
                    url,
                    content=content,
                    headers=request_headers,
                    params=query or None,
                    timeout=attempt_timeout,
                )
                response = self._client.send(request, stream=True)
            except httpx.TimeoutException as exc:
                failure = "timeout"
                # a connect timeout shorter than the deadline is still a plain transport failure
                deadline_hit = deadline_bound and (
                    not isinstance(exc, httpx.ConnectTimeout) or attempt_timeout.connect == attempt_timeout.read
                )
                last_error = self._transport_failure(
                    method, endpoint, attempt, start, failure, exc, context, deadline_hit=deadline_hit
                )
            except httpx.RequestError as exc:
                failure = "connection_error"
                last_error = self._transport_failure(method, endpoint, attempt, start, failure, exc, context)
            else:
                latency_ms = (time.monotonic() - start) * 1000
                status = response.status_code
                self._metrics.record_request(endpoint, str(status), latency_ms)
                log_event(
                    self._logger,
                    logging.INFO,
                    "http_request",
                    f"{method} {endpoint}",
                    endpoint=endpoint,
                    status=status,
                    attempt=attempt + 1,
                    latency_ms=round(latency_ms, 2),
                    session_id=self._session_id,
                )

                if context is not None and context.done:
                    response.close()
                    self._cancelled(endpoint, context, attempt)

                outcome = AttemptOutcome.RETRYABLE_STATUS if status in retryable else AttemptOutcome.RESPONSE
                if next_state(outcome, attempt, max_retries) is AttemptState.SUCCEEDED:
                    return response

                response.close()
                reason = "rate_limited" if status == 429 else "server_error"
                log_event(
                    self._logger,
                    logging.WARNING,
                    "api_rate_limited" if status == 429 else "api_server_error",
                    "Retryable status received; retrying",
                    endpoint=endpoint,
                    status=status,
                    attempt=attempt + 1,
                    session_id=self._session_id,
                )
                self._metrics.record_retry(endpoint, reason)
                last_error = RetryableStatusError(f"HTTP {status} {response.reason_phrase}".strip(), status_code=status)
                continue

            state = next_state(AttemptOutcome.TRANSPORT_FAILURE, attempt, max_retries)
            if state is AttemptState.ATTEMPTING:
                self._metrics.record_retry(endpoint, failure)
                continue
            break

        attempts = max_retries + 1
        self._log_fail(endpoint, type(last_error).__name__ if last_error else "unknown", attempts)
        raise RetryExhaustedError("request failed", attempts=attempts, last_error=last_error) from last_error

    def parse_into(
        self,
        response: httpx.Response,
        target: type[ModelT] | None = None,
        *,
        check_envelope: bool = True,
    ) -> Any:
        """
        Decode ``response`` into ``target`` or raise a classified error.

        The response is closed before returning on every path.

        Args:
            response: Response returned by ``execute``.
            target: Pydantic model class to validate into; None returns the
                decoded JSON as-is.
            check_envelope: Treat a success-status body whose ``code`` is
                non-zero as an ``ApiError``.

        Raises:
            ApiError: structured platform error.
            HttpStatusError: error status without a structured body.
            DecodeError: body is not JSON or does not match ``target``.
            TransportError: body could not be read.
        """
        try:
            try:
                raw = response.read()
            except httpx.HTTPError as exc:
                raise TransportError(f"failed to read response body: {exc}") from exc
            status = response.status_code
            text = response.text

            if status >= 400:
                api_error = ApiError.from_payload(_loads_or_none(raw), status)
                if api_error is not None:
                    raise api_error
                raise HttpStatusError(f"HTTP {status}", status_code=status, response_text=text)

            try:
                payload = json.loads(raw) if raw else None
            except ValueError as exc:
                raise DecodeError(f"failed to parse response: {exc}", response_text=text) from exc

            if check_envelope:
                api_error = ApiError.from_payload(payload, status)
                if api_error is not None:
                    raise api_error

            if target is None:
                return payload
            try:
                return target.model_validate(payload)
            except ValidationError as exc:
                raise DecodeError(
                    f"response does not match {target.__name__}: {exc.error_count()} validation errors",
                    response_text=text,
                ) from exc
        finally:
            response.close()

    def _resolve(self, path: str) -> httpx.URL:
        if path.startswith(("http://", "https://")):
            return httpx.URL(path)
        return httpx.URL(f"{self._config.base_url}/{path.lstrip('/')}")

    def _build_headers(self, extra: Mapping[str, str] | None, *, has_body: bool) -> httpx.Headers:
        headers = httpx.Headers(extra or {})
        if has_body and "content-type" not in headers:
            headers["Content-Type"] = JSON_CONTENT_TYPE
        if "accept" not in headers:
            headers["Accept"] = JSON_CONTENT_TYPE
        # Standard headers go last so caller headers can't replace them.
        headers["User-Agent"] = self._config.user_agent
        if self._config.access_token:
            headers[self._config.auth_header] = self._config.access_token
        if self._config.debug:
            log_event(
                self._logger,
                logging.DEBUG,
                "http_headers",
                "Outgoing request headers",
                headers={
                    key: _mask(value) if key.lower() == self._config.auth_header.lower() else value
                    for key, value in headers.items()
                },
            )
        return headers

    def _attempt_timeout(self, context: CallContext | None) -> tuple[httpx.Timeout, bool]:
        """Return the attempt timeout and whether the call deadline shortened it."""
        remaining = context.remaining() if context is not None else None
        if remaining is None or remaining >= self._config.timeout_s:
            return self._timeout, False
        return _transport_timeout(max(remaining, 0.001), self._config.pool.tls_handshake_timeout_s), True

    def _acquire(self, endpoint: str, context: CallContext | None) -> None:
        try:
            self._rate_limiter.acquire(context)
        except RequestCancelledError:
            log_event(
                self._logger,
                logging.WARNING,
                "request_cancelled",
                "Cancelled while waiting for rate limiter",
                endpoint=endpoint,
                session_id=self._session_id,
            )
            raise

    def _backoff(self, endpoint: str, retry_number: int, context: CallContext | None) -> None:
        policy = self._config.retry
        delay = compute_delay(policy, retry_number) if policy is not None else 0.0
        log_event(
            self._logger,
            logging.INFO,
            "http_retry",
            f"Retrying {endpoint}",
            endpoint=endpoint,
            retry=retry_number,
            delay_s=round(delay, 3),
            session_id=self._session_id,
        )
        if delay <= 0:
            if context is not None and context.done:
                self._cancelled(endpoint, context, retry_number)
            return
        if context is None:
            self._sleep(delay)
        elif context.wait(delay):
            self._cancelled(endpoint, context, retry_number)

    def _transport_failure(
        self,
        method: str,
        endpoint: str,
        attempt: int,
        start: float,
        status_label: str,
        exc: httpx.RequestError,
        context: CallContext | None,
        *,
        deadline_hit: bool = False,
    ) -> TransportError:
        latency_ms = (time.monotonic() - start) * 1000
        self._metrics.record_request(endpoint, status_label, latency_ms)
        log_event(
            self._logger,
            logging.WARNING,
            "http_request",
            f"{method} {endpoint}",
            endpoint=endpoint,
            status=None,
            error=status_label,
            attempt=attempt + 1,
            latency_ms=round(latency_ms, 2),
            session_id=self._session_id,
        )
        if context is not None and (context.done or deadline_hit):
            # the attempt timeout was the call deadline, so the deadline is what fired
            self._cancelled(endpoint, context, attempt, cause=exc)
        message = "Request timed out" if status_label == "timeout" else "Request failed"
        error = TransportError(f"{message}: {exc}")
        error.__cause__ = exc
        return error

    def _cancelled(
        self,
        endpoint: str,
        context: CallContext,
        attempt: int,
        cause: BaseException | None = None,
    ) -> None:
        reason = context.reason or "deadline exceeded"
        log_event(
            self._logger,
            logging.WARNING,
            "request_cancelled",
            f"Request to {endpoint} cancelled",
            endpoint=endpoint,
            attempt=attempt + 1,
            reason=reason,
            session_id=self._session_id,
        )
        raise RequestCancelledError(f"request cancelled: {reason}") from cause

    def _log_fail(self, endpoint: str, error_type: str, attempts: int) -> None:
        log_event(
            self._logger,
            logging.ERROR,
            "http_fail",
            f"Request failed for {endpoint}",
            endpoint=endpoint,
            error_type=error_type,
            attempts=attempts,
            session_id=self._session_id,
        )


def _loads_or_none(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None
