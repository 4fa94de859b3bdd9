import httpx
from typer.testing import CliRunner

from pgcrfinder.config import load_settings
from pgcrfinder.infra.http.bungie_client import BungieApiClient
from pgcrfinder.main import app

runner = CliRunner()


def test_priority_cli_over_env_over_config(tmp_path, monkeypatch):
    cfg = tmp_path / "config.yml"
    cfg.write_text(
        "\n".join([
            'base_url: "https://cfg.local/Platform"',
            'api_key: "cfg_key"',
            "retries: 7",
            "max_identifier: 5000",
        ]),
        encoding="utf-8",
    )

    # ENV overrides config
    monkeypatch.setenv("PGCR_BASE_URL", "https://env.local/Platform")
    monkeypatch.setenv("PGCR_API_KEY", "env_key")
    monkeypatch.setenv("PGCR_RETRIES", "5")

    seen = {}

    def responder(request: httpx.Request) -> httpx.Response:
        seen["host"] = request.url.host
        seen["key"] = request.headers.get("X-API-Key")
        return httpx.Response(404)

    import pgcrfinder.main as cli_module

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(responder)
        return BungieApiClient(*args, **kwargs)

    monkeypatch.setattr(cli_module, "BungieApiClient", factory)

    # CLI overrides env
    result = runner.invoke(
        app,
        [
            "--config", str(cfg),
            "--log-dir", str(tmp_path / "logs"),
            "--report-dir", str(tmp_path / "reports"),
            "--base-url", "https://cli.local/Platform",
            "--api-key", "cli_key",
            "check-api",
        ],
    )
    assert result.exit_code == 0, result.output
    assert "base_url=https://cli.local/Platform api_key=***" in result.output
    assert "max_identifier=5000 retries=5" in result.output
    assert "sources=['config', 'env', 'cli']" in result.output
    assert seen == {"host": "cli.local", "key": "cli_key"}


def test_defaults_without_sources(monkeypatch):
    for name in ("PGCR_API_KEY", "PGCR_BASE_URL", "PGCR_RETRIES", "PGCR_LISTEN_PORT"):
        monkeypatch.delenv(name, raising=False)

    loaded = load_settings(config_path=None, cli_overrides={"api_key": None})

    assert loaded.sources_used == []
    assert loaded.settings.base_url == "https://stats.bungie.net/Platform"
    assert loaded.settings.max_identifier == 2 ** 63 - 1
    assert loaded.settings.listen_port == 9000
    assert loaded.settings.search_deadline_seconds is None


def test_invalid_env_value_is_reported(tmp_path, monkeypatch):
    monkeypatch.setenv("PGCR_RETRIES", "many")

    result = runner.invoke(
        app,
        ["--log-dir", str(tmp_path / "logs"), "--report-dir", str(tmp_path / "reports"), "check-api"],
    )

    assert result.exit_code == 2
    assert "Invalid integer env value: many" in result.output


def test_api_key_file(tmp_path, monkeypatch):
    key_file = tmp_path / "key.txt"
    key_file.write_text("file_key\n", encoding="utf-8")
    monkeypatch.delenv("PGCR_API_KEY", raising=False)

    result = runner.invoke(
        app,
        [
            "--api-key-file", str(key_file),
            "--log-dir", str(tmp_path / "logs"),
            "--report-dir", str(tmp_path / "reports"),
            "find",
            "--start", "not-a-date",
        ],
    )

    # the key was accepted: the run got past the API key check to input validation
    assert result.exit_code == 2
    assert "Invalid timestamp format" in result.output
