from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from adsapi.http.client import LATENCY_BUCKETS_MS, HttpMetrics


def _read_metrics(metrics_path: Path) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if metrics_path.exists():
        raw = metrics_path.read_text(encoding="utf-8").strip()
        if raw:
            payload = json.loads(raw)
    return payload


def _write_metrics(metrics_path: Path, payload: dict[str, Any]) -> None:
    metrics_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def snapshot_http_metrics(metrics: HttpMetrics) -> dict[str, Any]:
    requests, retries, latency = metrics.snapshot()

    requests_by_status: dict[str, int] = {}
    requests_by_endpoint: dict[str, int] = {}
    errors_total = 0
    for (endpoint, status), count in requests.items():
        requests_by_status[status] = requests_by_status.get(status, 0) + count
        requests_by_endpoint[endpoint] = requests_by_endpoint.get(endpoint, 0) + count
        try:
            status_code = int(status)
        except (TypeError, ValueError):
            errors_total += count
        else:
            if not 200 <= status_code < 300:
                errors_total += count

    retries_by_reason: dict[str, int] = {}
    for (_endpoint, reason), count in retries.items():
        retries_by_reason[reason] = retries_by_reason.get(reason, 0) + count

    http_5xx_total = 0
    for status, count in requests_by_status.items():
        if status.isdigit() and 500 <= int(status) <= 599:
            http_5xx_total += count

    buckets = {str(bound): count for bound, count in zip(LATENCY_BUCKETS_MS, latency.buckets)}
    buckets["+inf"] = latency.count

    return {
        "requests_total": sum(requests.values()),
        "errors_total": errors_total,
        "retries_total": sum(retries.values()),
        "requests_by_status": requests_by_status,
        "requests_by_endpoint": requests_by_endpoint,
        "retries_by_reason": retries_by_reason,
        "http_429_total": requests_by_status.get("429", 0),
        "http_401_403_total": requests_by_status.get("401", 0) + requests_by_status.get("403", 0),
        "http_5xx_total": http_5xx_total,
        "transport_errors_total": requests_by_status.get("timeout", 0) + requests_by_status.get("connection_error", 0),
        "latency_ms": {
            "count": latency.count,
            "min": latency.min_ms,
            "max": latency.max_ms,
            "buckets": buckets,
        },
    }


def update_http_metrics(metrics_path: Path, metrics: HttpMetrics) -> dict[str, Any]:
    payload = _read_metrics(metrics_path)
    payload.update(snapshot_http_metrics(metrics))
    _write_metrics(metrics_path, payload)
    return payload


def summarize_api_health(payload: dict[str, Any]) -> dict[str, int | str]:
    http_429_total = int(payload.get("http_429_total") or 0)
    http_auth_total = int(payload.get("http_401_403_total") or 0)
    http_5xx_total = int(payload.get("http_5xx_total") or 0)
    transport_errors_total = int(payload.get("transport_errors_total") or 0)

    if http_5xx_total > 0 or transport_errors_total > 0:
        api_health = "api_unstable"
    elif http_auth_total > 0:
        api_health = "auth_failing"
    elif http_429_total > 0:
        api_health = "degraded"
    else:
        api_health = "ok"

    return {
        "api_health": api_health,
        "http_429_total": http_429_total,
        "http_401_403_total": http_auth_total,
        "http_5xx_total": http_5xx_total,
        "transport_errors_total": transport_errors_total,
    }
