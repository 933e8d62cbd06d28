from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from secrets import token_hex
from typing import Any

from adsapi.config import ConfigError, load_config
from adsapi.http.client import ApiClient
from adsapi.http.context import CallContext
from adsapi.http.errors import (
    AdsApiError,
    ApiError,
    DecodeError,
    HttpStatusError,
    RequestCancelledError,
    RetryExhaustedError,
    TransportError,
)
from adsapi.obs.logging import LogSettings, build_logger, log_event
from adsapi.obs.metrics import summarize_api_health, update_http_metrics

EXIT_OK = 0
EXIT_API_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_TRANSPORT_ERROR = 3
EXIT_CANCELLED = 4


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Advertising API client CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    request_parser = subparsers.add_parser("request", help="Issue one API call and print the JSON result")
    request_parser.add_argument("--config", required=True, help="Path to config YAML")
    request_parser.add_argument("--method", default="GET", help="HTTP method")
    request_parser.add_argument("--path", required=True, help="Endpoint path, e.g. /open_api/v1.3/advertiser/info/")
    request_parser.add_argument(
        "--param", action="append", default=[], metavar="KEY=VALUE", help="Query parameter (repeatable)"
    )
    request_parser.add_argument("--body", help="JSON request body")
    request_parser.add_argument("--timeout", type=float, help="Overall deadline for the call in seconds")
    request_parser.add_argument("--log-level", default="INFO", help="Logging level")
    request_parser.add_argument("--metrics-out", help="Write HTTP metrics JSON to this path")

    return parser.parse_args(argv)


def _parse_params(values: list[str]) -> dict[str, Any]:
    params: dict[str, Any] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid --param (expected KEY=VALUE): {item}")
        try:
            params[key] = json.loads(value)
        except json.JSONDecodeError:
            params[key] = value
    return params


def _exit_code_for(exc: AdsApiError) -> int:
    if isinstance(exc, RequestCancelledError):
        return EXIT_CANCELLED
    if isinstance(exc, (RetryExhaustedError, TransportError)):
        return EXIT_TRANSPORT_ERROR
    return EXIT_API_ERROR


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    if args.command != "request":
        raise ValueError(f"Unsupported command: {args.command}")

    session_id = token_hex(4)
    logger = build_logger(LogSettings(level=args.log_level.upper(), session_id=session_id))

    try:
        loaded = load_config(Path(args.config))
    except ConfigError as exc:
        log_event(logger, 40, "config_invalid", str(exc))
        return EXIT_CONFIG_ERROR

    try:
        params = _parse_params(args.param)
        body = json.loads(args.body) if args.body else None
    except ValueError as exc:
        log_event(logger, 40, "arguments_invalid", str(exc))
        return EXIT_CONFIG_ERROR

    context = CallContext(timeout_s=args.timeout) if args.timeout else None
    exit_code = EXIT_OK
    with ApiClient(loaded.config, logger=logger, session_id=session_id) as client:
        try:
            result = client.request(args.method, args.path, body=body, params=params, context=context)
        except AdsApiError as exc:
            exit_code = _exit_code_for(exc)
            error_fields: dict[str, Any] = {"error_type": type(exc).__name__}
            if isinstance(exc, ApiError):
                error_fields.update(code=exc.code, request_id=exc.request_id, kind=exc.kind.value)
            elif isinstance(exc, (HttpStatusError, DecodeError)):
                error_fields.update(response=getattr(exc, "response_text", ""))
            log_event(logger, 40, "request_failed", str(exc), **error_fields)
        else:
            print(json.dumps(result, ensure_ascii=False, indent=2))

        if args.metrics_out:
            payload = update_http_metrics(Path(args.metrics_out), client.metrics)
            log_event(logger, 20, "metrics_written", "HTTP metrics exported", **summarize_api_health(payload))

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
