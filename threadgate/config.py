"""
Runtime settings.

Settings come from an optional `threadgate.toml` and are then overridden by
`THREADGATE_*` environment variables. Credentials are stored as references
(e.g. "env:TWITTER_API_KEY"), never as raw values.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

DEFAULT_CONFIG_FILE = "threadgate.toml"
X_TWEETS_URL = "https://api.twitter.com/2/tweets"

ENV_PREFIX = "THREADGATE_"


@dataclass(frozen=True)
class Credentials:
    """Secret references for the publishing platform (OAuth 1.0a user context)."""

    api_key: str = "env:TWITTER_API_KEY"
    api_secret: str = "env:TWITTER_API_SECRET"
    access_token: str = "env:TWITTER_ACCESS_TOKEN"
    access_secret: str = "env:TWITTER_ACCESS_SECRET"


@dataclass(frozen=True)
class Settings:
    runs_dir: Path = Path("runs")
    x_api_url: str = X_TWEETS_URL
    max_retries: int = 3
    base_delay_ms: int = 1000
    http_timeout_s: float = 15.0
    chain_cache_ttl_s: float = 300.0
    catalog_path: Path | None = None
    log_level: str = "WARNING"
    unusual_whales_key: str = "env:UNUSUAL_WHALES_API_KEY"
    polygon_key: str = "env:POLYGON_API_KEY"
    credentials: Credentials = field(default_factory=Credentials)


def _coerce(name: str, raw: Any, current: Any) -> Any:
    if name in ("runs_dir", "catalog_path"):
        return Path(str(raw)) if raw not in (None, "") else None if name == "catalog_path" else current
    if name in ("max_retries", "base_delay_ms"):
        return int(raw)
    if name in ("http_timeout_s", "chain_cache_ttl_s"):
        return float(raw)
    return str(raw)


def _apply(settings: Settings, data: dict[str, Any]) -> Settings:
    known = {f.name for f in fields(Settings)} - {"credentials"}
    updates: dict[str, Any] = {}
    for key, raw in data.items():
        if key in known:
            updates[key] = _coerce(key, raw, getattr(settings, key))
    return replace(settings, **updates)


def load_settings(path: Path | None = None, *, environ: dict[str, str] | None = None) -> Settings:
    """
    Load settings from TOML (if present) and the environment.

    Args:
        path: Explicit config file. Defaults to ./threadgate.toml when it exists.
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Resolved Settings
    """
    env = os.environ if environ is None else environ
    settings = Settings()

    config_path = path if path is not None else Path(DEFAULT_CONFIG_FILE)
    if config_path.exists():
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
        settings = _apply(settings, data)

        creds_raw = data.get("credentials")
        if isinstance(creds_raw, dict):
            known = {f.name for f in fields(Credentials)}
            settings = replace(
                settings,
                credentials=replace(
                    settings.credentials,
                    **{k: str(v) for k, v in creds_raw.items() if k in known},
                ),
            )
    elif path is not None:
        raise FileNotFoundError(f"Config file not found: {path}")

    env_overrides = {
        key[len(ENV_PREFIX):].lower(): value
        for key, value in env.items()
        if key.startswith(ENV_PREFIX)
    }
    return _apply(settings, env_overrides)
