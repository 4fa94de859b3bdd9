from __future__ import annotations

import json

import httpx
from typer.testing import CliRunner

from pgcrfinder.infra.http.bungie_client import BungieApiClient
from pgcrfinder.main import app

runner = CliRunner()


def patch_client_with_transport(monkeypatch, transport: httpx.BaseTransport):
    import pgcrfinder.main as cli_module

    def factory(*args, **kwargs):
        kwargs["transport"] = transport
        return BungieApiClient(*args, **kwargs)

    monkeypatch.setattr(cli_module, "BungieApiClient", factory)


def base_args(tmp_path) -> list[str]:
    return [
        "--log-dir",
        str(tmp_path / "logs"),
        "--report-dir",
        str(tmp_path / "reports"),
        "--api-key",
        "secret",
        "--retry-backoff-seconds",
        "0",
        "--run-id",
        "run-1",
    ]


def test_help_shows_commands():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "find" in result.stdout
    assert "serve" in result.stdout
    assert "check-api" in result.stdout


def test_find_exact_match_writes_report(monkeypatch, tmp_path, make_responder):
    patch_client_with_transport(monkeypatch, httpx.MockTransport(make_responder(last_id=1000)))

    result = runner.invoke(app, base_args(tmp_path) + ["find", "--start", "2024-01-01T08:20:00Z"])

    assert result.exit_code == 0, result.output
    assert "Found record with ID=inst-500, isMatch=true" in result.output
    assert "api_key=***" in result.output
    assert "secret" not in result.output

    report = json.loads((tmp_path / "reports" / "report_find_run-1.json").read_text(encoding="utf-8"))
    assert report["meta"]["command"] == "find"
    assert report["meta"]["target"] == "2024-01-01T08:20:00Z"
    assert report["result"]["instance_id"] == "inst-500"
    assert report["result"]["exact"] is True
    assert report["summary"]["absent"] > 0
    assert (tmp_path / "logs" / "find_run-1.log").exists()


def test_find_after_newest_record_returns_closest(monkeypatch, tmp_path, make_responder):
    patch_client_with_transport(monkeypatch, httpx.MockTransport(make_responder(last_id=1000)))

    result = runner.invoke(app, base_args(tmp_path) + ["find", "--start", "2024-01-01T17:40:00Z"])

    assert result.exit_code == 0, result.output
    assert "Found record with ID=inst-1000, isMatch=false" in result.output


def test_find_print_record_outputs_json(monkeypatch, tmp_path, make_responder):
    patch_client_with_transport(monkeypatch, httpx.MockTransport(make_responder(last_id=1000)))

    result = runner.invoke(
        app,
        base_args(tmp_path) + ["--max-identifier", "1000", "find", "--start", "2024-01-01T00:10:00Z", "--print-record"],
    )

    assert result.exit_code == 0, result.output
    assert '"instanceId": "inst-10"' in result.output


def test_find_requires_start(tmp_path):
    result = runner.invoke(app, base_args(tmp_path) + ["find"])
    assert result.exit_code == 2
    assert "--start is required" in result.output


def test_find_rejects_invalid_timestamp(tmp_path):
    result = runner.invoke(app, base_args(tmp_path) + ["find", "--start", "01/02/2024"])
    assert result.exit_code == 2
    assert "Invalid timestamp format" in result.output


def test_find_requires_api_key(tmp_path, monkeypatch):
    monkeypatch.delenv("PGCR_API_KEY", raising=False)
    result = runner.invoke(
        app,
        ["--log-dir", str(tmp_path / "logs"), "--report-dir", str(tmp_path / "reports"), "find", "--start", "now"],
    )
    assert result.exit_code == 2
    assert "missing API settings" in result.output


def test_find_persistent_errors_exit_with_failure(monkeypatch, tmp_path):
    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="maintenance")

    patch_client_with_transport(monkeypatch, httpx.MockTransport(responder))

    result = runner.invoke(app, base_args(tmp_path) + ["--retries", "1", "find", "--start", "2024-01-01T08:20:00Z"])

    assert result.exit_code == 1
    assert "SEARCH_FAILED" in result.output
    report = json.loads((tmp_path / "reports" / "report_find_run-1.json").read_text(encoding="utf-8"))
    assert report["result"]["error"]["code"] == "SEARCH_FAILED"
    assert report["summary"]["retries"] == 1


def test_check_api_ok(monkeypatch, tmp_path, make_responder):
    patch_client_with_transport(monkeypatch, httpx.MockTransport(make_responder(last_id=10)))

    result = runner.invoke(app, base_args(tmp_path) + ["check-api", "--identifier", "5"])

    assert result.exit_code == 0, result.output
    assert "api ok id=5 outcome=found" in result.output


def test_check_api_unauthorized(monkeypatch, tmp_path):
    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"ErrorStatus": "ApiKeyMissingFromRequest"})

    patch_client_with_transport(monkeypatch, httpx.MockTransport(responder))

    result = runner.invoke(app, base_args(tmp_path) + ["check-api"])

    assert result.exit_code == 2
    assert "API check failed" in result.output


def test_serve_runs_uvicorn_with_settings(monkeypatch, tmp_path):
    import pgcrfinder.main as cli_module

    calls = {}

    def fake_run(api, host, port, log_level):
        calls.update(app=api, host=host, port=port, log_level=log_level)

    monkeypatch.setattr(cli_module.uvicorn, "run", fake_run)

    result = runner.invoke(app, base_args(tmp_path) + ["serve", "--port", "9100"])

    assert result.exit_code == 0, result.output
    assert calls["host"] == "0.0.0.0"
    assert calls["port"] == 9100
    assert "Listening on port=:9100" in result.output
    assert any(route.path == "/pgcrfind" for route in calls["app"].routes)
