import json
from functools import partial
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

import adsapi.__main__ as cli
from adsapi.http.client import ApiClient


def _write_config(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        "\n".join(
            [
                "base_url: https://ads.example.com",
                "access_token: cli_token",
                "retry:",
                "  max_retries: 0",
                "rate_limit: null",
            ]
        ),
        encoding="utf-8",
    )
    return path


def _patch_transport(monkeypatch: pytest.MonkeyPatch, handler: Callable[[httpx.Request], httpx.Response]) -> None:
    monkeypatch.setattr(cli, "ApiClient", partial(ApiClient, transport=httpx.MockTransport(handler)))


def test_cli_prints_result(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"code": 0, "message": "OK", "data": {"list": []}})

    _patch_transport(monkeypatch, handler)
    config_path = _write_config(tmp_path)

    exit_code = cli.main(
        [
            "request",
            "--config",
            str(config_path),
            "--path",
            "/open_api/v1.3/advertiser/info/",
            "--param",
            'advertiser_ids=["7001"]',
            "--param",
            "page=2",
        ]
    )

    assert exit_code == cli.EXIT_OK
    assert json.loads(capsys.readouterr().out)["data"] == {"list": []}
    assert seen[0].headers["Access-Token"] == "cli_token"
    assert seen[0].url.params["advertiser_ids"] == '["7001"]'
    assert seen[0].url.params["page"] == "2"


def test_cli_api_error_exit_code(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_transport(
        monkeypatch,
        lambda request: httpx.Response(401, json={"code": "INVALID_ACCESS_TOKEN", "message": "bad token"}),
    )

    exit_code = cli.main(["request", "--config", str(_write_config(tmp_path)), "--path", "/x"])

    assert exit_code == cli.EXIT_API_ERROR


def test_cli_transport_error_exit_code(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    _patch_transport(monkeypatch, handler)

    exit_code = cli.main(["request", "--config", str(_write_config(tmp_path)), "--path", "/x"])

    assert exit_code == cli.EXIT_TRANSPORT_ERROR


def test_cli_config_error_exit_code(tmp_path: Path) -> None:
    exit_code = cli.main(["request", "--config", str(tmp_path / "missing.yaml"), "--path", "/x"])

    assert exit_code == cli.EXIT_CONFIG_ERROR


def test_cli_invalid_param_exit_code(tmp_path: Path) -> None:
    exit_code = cli.main(
        ["request", "--config", str(_write_config(tmp_path)), "--path", "/x", "--param", "no-separator"]
    )

    assert exit_code == cli.EXIT_CONFIG_ERROR


def test_cli_writes_metrics(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_transport(monkeypatch, lambda request: httpx.Response(200, json={"code": 0, "data": {}}))
    metrics_path = tmp_path / "metrics.json"

    exit_code = cli.main(
        [
            "request",
            "--config",
            str(_write_config(tmp_path)),
            "--method",
            "post",
            "--path",
            "/x",
            "--body",
            '{"name": "spring"}',
            "--metrics-out",
            str(metrics_path),
        ]
    )

    payload: dict[str, Any] = json.loads(metrics_path.read_text(encoding="utf-8"))
    assert exit_code == cli.EXIT_OK
    assert payload["requests_total"] == 1
    assert payload["requests_by_endpoint"] == {"/x": 1}
