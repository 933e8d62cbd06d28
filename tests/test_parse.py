from typing import Any, Iterator

import httpx
import pytest
from pydantic import BaseModel

from adsapi.config import create_config
from adsapi.http.client import ApiClient
from adsapi.http.errors import ApiError, DecodeError, ErrorKind, HttpStatusError, classify_exception


class Balance(BaseModel):
    advertiser_id: str
    balance: float


class CountingStream(httpx.SyncByteStream):
    def __init__(self, payload: bytes) -> None:
        self._payload = payload
        self.close_calls = 0

    def __iter__(self) -> Iterator[bytes]:
        yield self._payload

    def close(self) -> None:
        self.close_calls += 1


def build_client(transport: httpx.BaseTransport, *, max_retries: int = 0) -> ApiClient:
    config = create_config(
        base_url="https://ads.example.com",
        access_token="test_token",
        timeout_s=1,
        retry={"max_retries": max_retries, "initial_delay_s": 0.01},
        rate_limit=None,
    )
    return ApiClient(config, transport=transport, sleep=lambda _: None)


def respond_with(status: int, payload: Any) -> ApiClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if isinstance(payload, (bytes, str)):
            return httpx.Response(status, content=payload)
        return httpx.Response(status, json=payload)

    return build_client(httpx.MockTransport(handler))


def test_success_without_target_returns_decoded_json() -> None:
    body = {"code": 0, "message": "OK", "request_id": "r1", "data": {"list": []}}
    client = respond_with(200, body)

    assert client.request("GET", "/x") == body


def test_success_into_model() -> None:
    client = respond_with(200, {"advertiser_id": "7", "balance": 12.5})

    result = client.request("GET", "/x", Balance, check_envelope=False)

    assert result == Balance(advertiser_id="7", balance=12.5)


def test_error_status_with_api_error_body() -> None:
    client = respond_with(
        400, {"code": "INVALID_PARAMETER", "message": "advertiser_id is required", "request_id": "req-9"}
    )

    with pytest.raises(ApiError) as excinfo:
        client.request("GET", "/x")

    error = excinfo.value
    assert error.code == "INVALID_PARAMETER"
    assert error.message == "advertiser_id is required"
    assert error.request_id == "req-9"
    assert error.http_status == 400
    assert error.is_validation_error
    assert not error.is_retryable
    assert error.kind is ErrorKind.VALIDATION
    assert "request_id: req-9" in str(error)


def test_rate_limit_code_is_retryable_and_rate_limit() -> None:
    client = respond_with(200, {"code": "RATE_LIMIT_EXCEEDED", "message": "slow down", "request_id": "r"})

    with pytest.raises(ApiError) as excinfo:
        client.request("GET", "/x")

    assert excinfo.value.is_retryable
    assert excinfo.value.is_rate_limit_error
    assert excinfo.value.kind is ErrorKind.RATE_LIMIT


def test_numeric_envelope_code_becomes_api_error() -> None:
    client = respond_with(200, {"code": 40100, "message": "Access token is invalid", "request_id": "r2", "data": {}})

    with pytest.raises(ApiError) as excinfo:
        client.request("GET", "/x")

    assert excinfo.value.code == "40100"
    assert excinfo.value.http_status == 200
    assert excinfo.value.data == {}


def test_envelope_check_can_be_disabled() -> None:
    body = {"code": 40100, "message": "Access token is invalid"}
    client = respond_with(200, body)

    assert client.request("GET", "/x", check_envelope=False) == body


def test_error_status_without_structured_body() -> None:
    client = respond_with(404, b"<html>not found</html>")

    with pytest.raises(HttpStatusError) as excinfo:
        client.request("GET", "/x")

    assert excinfo.value.status_code == 404
    assert excinfo.value.response_text == "<html>not found</html>"
    assert classify_exception(excinfo.value) is ErrorKind.NOT_FOUND


def test_error_status_with_empty_code_is_generic() -> None:
    client = respond_with(401, {"code": "", "message": "denied"})

    with pytest.raises(HttpStatusError) as excinfo:
        client.request("GET", "/x")

    assert classify_exception(excinfo.value) is ErrorKind.AUTHENTICATION


def test_invalid_json_is_decode_error() -> None:
    client = respond_with(200, b"{not json")

    with pytest.raises(DecodeError) as excinfo:
        client.request("GET", "/x")

    assert not isinstance(excinfo.value, ApiError)
    assert excinfo.value.response_text == "{not json"
    assert classify_exception(excinfo.value) is ErrorKind.DECODE


def test_shape_mismatch_is_decode_error() -> None:
    client = respond_with(200, {"advertiser_id": "7"})

    with pytest.raises(DecodeError, match="Balance"):
        client.request("GET", "/x", Balance, check_envelope=False)


@pytest.mark.parametrize(
    ("status", "payload", "target", "expected"),
    [
        (200, b'{"advertiser_id": "1", "balance": 3}', Balance, None),
        (200, b'{"advertiser_id": "1"}', Balance, DecodeError),
        (200, b"garbage", None, DecodeError),
        (400, b'{"code": "MISSING_PARAMETER", "message": "x"}', None, ApiError),
        (500, b"internal", None, HttpStatusError),
    ],
)
def test_body_closed_exactly_once(status: int, payload: bytes, target: Any, expected: Any) -> None:
    streams: list[CountingStream] = []

    def handler(request: httpx.Request) -> httpx.Response:
        stream = CountingStream(payload)
        streams.append(stream)
        return httpx.Response(status, stream=stream)

    client = build_client(httpx.MockTransport(handler))
    response = client.execute("GET", "/x")

    if expected is None:
        client.parse_into(response, target, check_envelope=False)
    else:
        with pytest.raises(expected):
            client.parse_into(response, target, check_envelope=False)

    assert response.is_closed
    assert [stream.close_calls for stream in streams] == [1]


def test_discarded_retry_responses_are_closed_once() -> None:
    streams: list[CountingStream] = []
    statuses = [503, 429, 200]

    def handler(request: httpx.Request) -> httpx.Response:
        stream = CountingStream(b'{"code": 0}')
        streams.append(stream)
        return httpx.Response(statuses.pop(0), stream=stream)

    client = build_client(httpx.MockTransport(handler), max_retries=2)
    client.parse_into(client.execute("GET", "/x"))

    assert [stream.close_calls for stream in streams] == [1, 1, 1]
