from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable

import yaml

DEFAULT_BASE_URL = "https://stats.bungie.net/Platform"
DEFAULT_MAX_IDENTIFIER = 2 ** 63 - 1


@dataclass(frozen=True)
class Settings:
    # API
    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 20.0

    # Search
    max_identifier: int = DEFAULT_MAX_IDENTIFIER
    retries: int = 3
    retry_backoff_seconds: float = 0.5
    search_deadline_seconds: float | None = None

    # Paths / logging
    log_dir: str = "./logs"
    report_dir: str = "./reports"
    log_level: str = "INFO"

    # HTTP service
    listen_host: str = "0.0.0.0"
    listen_port: int = 9000


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    sources_used: list[str]


def _read_yaml_config(path: Path) -> dict:
    if not path.exists():
        return {}
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            return {}
        return data


def _env_get(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _parse_int(v: str) -> int:
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"Invalid integer env value: {v}") from None


def _parse_float(v: str) -> float:
    try:
        return float(v)
    except ValueError:
        raise ValueError(f"Invalid number env value: {v}") from None


# field -> (env var, parser)
ENV_VARS: dict[str, tuple[str, Callable[[str], Any]]] = {
    "api_key": ("PGCR_API_KEY", str),
    "base_url": ("PGCR_BASE_URL", str),
    "timeout_seconds": ("PGCR_TIMEOUT_SECONDS", _parse_float),
    "max_identifier": ("PGCR_MAX_IDENTIFIER", _parse_int),
    "retries": ("PGCR_RETRIES", _parse_int),
    "retry_backoff_seconds": ("PGCR_RETRY_BACKOFF_SECONDS", _parse_float),
    "search_deadline_seconds": ("PGCR_SEARCH_DEADLINE_SECONDS", _parse_float),
    "log_dir": ("PGCR_LOG_DIR", str),
    "report_dir": ("PGCR_REPORT_DIR", str),
    "log_level": ("PGCR_LOG_LEVEL", str),
    "listen_host": ("PGCR_LISTEN_HOST", str),
    "listen_port": ("PGCR_LISTEN_PORT", _parse_int),
}


def load_settings(
    config_path: str | None,
    cli_overrides: dict,
) -> LoadedSettings:
    """
    Priority: CLI > ENV > config > defaults
    """
    sources: list[str] = []
    defaults = Settings()
    known = [f.name for f in fields(Settings)]

    # 1) config file
    cfg: dict = {}
    if config_path:
        cfg = _read_yaml_config(Path(config_path))
        if cfg:
            sources.append("config")

    # 2) env
    env: dict[str, Any] = {}
    for name, (var, parse) in ENV_VARS.items():
        raw = _env_get(var)
        if raw is not None:
            env[name] = parse(raw)
    if env:
        sources.append("env")

    # merge defaults -> config -> env
    merged = {name: cfg.get(name, getattr(defaults, name)) for name in known}
    merged.update(env)

    # 3) apply CLI overrides (only those explicitly passed)
    if any(v is not None for v in cli_overrides.values()):
        sources.append("cli")

    for k, v in cli_overrides.items():
        if v is None:
            continue
        merged[k] = v

    settings = Settings(**merged)
    if settings.max_identifier < 1:
        raise ValueError("max_identifier must be >= 1")
    if settings.retries < 0:
        raise ValueError("retries must be >= 0")

    return LoadedSettings(settings=settings, sources_used=sources)
