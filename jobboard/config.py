# jobboard/config.py
from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the config is invalid."""


# ---- Models -----------------------------------------------------------------


@dataclass(frozen=True)
class EmailConfig:
    smtp_host: str
    smtp_port: int
    from_email: str
    smtp_username: str
    smtp_password: str
    starttls: str = "auto"  # "true" | "false" | "auto"


@dataclass(frozen=True)
class TwitterConfig:
    access_token: str
    api_url: str = "https://api.twitter.com/2/tweets"


@dataclass(frozen=True)
class AppConfig:
    """
    Process-wide settings, built once at startup and handed to every
    component that needs them (app, sweeper, CLI). Never mutated.
    """

    app_secret: str
    url: str = "http://localhost:8080"
    host: str = "0.0.0.0"
    port: int = 8080
    env: str = "debug"
    database_path: str = "./local/state/jobboard.db"
    admin_user: str = ""
    admin_password: str = ""
    slack_hook: str = ""
    email: EmailConfig | None = None
    twitter: TwitterConfig | None = None
    retention_days: int = 30
    sweep_interval_hours: int = 1
    timezone: str = "UTC"
    log_level: str = "INFO"

    @property
    def debug(self) -> bool:
        return self.env == "debug"

    @property
    def admin_enabled(self) -> bool:
        return bool(self.admin_user)


# Environment variable -> config key
_ENV_KEYS = {
    "APP_SECRET": "app_secret",
    "APP_URL": "url",
    "HOST": "host",
    "PORT": "port",
    "APP_ENV": "env",
    "DATABASE_PATH": "database_path",
    "ADMIN_USER": "admin_user",
    "ADMIN_PASSWORD": "admin_password",
    "SLACK_HOOK": "slack_hook",
    "RETENTION_DAYS": "retention_days",
    "SWEEP_INTERVAL_HOURS": "sweep_interval_hours",
    "TZ": "timezone",
    "LOG_LEVEL": "log_level",
}
_EMAIL_ENV_KEYS = {
    "SMTP_HOST": "smtp_host",
    "SMTP_PORT": "smtp_port",
    "FROM_EMAIL": "from_email",
    "SMTP_USERNAME": "smtp_username",
    "SMTP_PASSWORD": "smtp_password",
    "SMTP_STARTTLS": "starttls",
}
_TWITTER_ENV_KEYS = {
    "TW_ACCESS_TOKEN": "access_token",
    "TW_API_URL": "api_url",
    # OAuth 1.0a keys: read only so they can be rejected with a clear message
    "TW_ACCESS_TOKEN_SECRET": "access_token_secret",
    "TW_API_KEY": "api_key",
    "TW_API_SECRET_KEY": "api_secret_key",
}
_TWITTER_OAUTH1_KEYS = ("access_token_secret", "api_key", "api_secret_key")
_VALID_ENVS = ("debug", "release", "test")


# ---- Public API -------------------------------------------------------------


def load_config(path: str | None = None, environ: Mapping[str, str] | None = None) -> AppConfig:
    """
    Build the AppConfig.

    Resolution order (later wins):
      1) Built-in defaults
      2) File named by `path` or environ['CONFIG_PATH'] (.json / .yml / .yaml)
      3) Environment variables (APP_SECRET, APP_URL, PORT, ...)

    Raises:
        ConfigError on missing/invalid values.
    """
    env = os.environ if environ is None else environ

    raw: dict[str, Any] = {}
    resolved_path = path or env.get("CONFIG_PATH")
    if resolved_path:
        raw.update(_read_any(resolved_path))
    else:
        logger.debug("CONFIG_PATH not provided; using environment only.")

    for env_key, cfg_key in _ENV_KEYS.items():
        value = env.get(env_key)
        if value is not None and value != "":
            raw[cfg_key] = value

    email_raw = dict(raw.get("email") or {})
    for env_key, cfg_key in _EMAIL_ENV_KEYS.items():
        value = env.get(env_key)
        if value:
            email_raw[cfg_key] = value

    twitter_raw = dict(raw.get("twitter") or {})
    for env_key, cfg_key in _TWITTER_ENV_KEYS.items():
        value = env.get(env_key)
        if value:
            twitter_raw[cfg_key] = value

    return build_config(raw, email_raw=email_raw, twitter_raw=twitter_raw)


def build_config(
    raw: Mapping[str, Any],
    *,
    email_raw: Mapping[str, Any] | None = None,
    twitter_raw: Mapping[str, Any] | None = None,
) -> AppConfig:
    """Normalize + validate a flat mapping into an AppConfig."""
    secret = str(raw.get("app_secret") or "").strip()
    if not secret:
        raise ConfigError("APP_SECRET is required.")

    env_name = str(raw.get("env") or "debug").strip().lower()
    if env_name not in _VALID_ENVS:
        raise ConfigError(f"APP_ENV must be one of {', '.join(_VALID_ENVS)} (got {env_name!r}).")

    url = str(raw.get("url") or "http://localhost:8080").strip().rstrip("/")
    if not url.startswith(("http://", "https://")):
        raise ConfigError(f"APP_URL must start with http:// or https:// (got {url!r}).")

    database_path = str(raw.get("database_path") or "./local/state/jobboard.db").strip()
    if not database_path:
        raise ConfigError("DATABASE_PATH cannot be empty.")

    admin_user = str(raw.get("admin_user") or "").strip()
    admin_password = str(raw.get("admin_password") or "")
    if admin_user and not admin_password:
        raise ConfigError("ADMIN_PASSWORD is required when ADMIN_USER is set.")

    return AppConfig(
        app_secret=secret,
        url=url,
        host=str(raw.get("host") or "0.0.0.0"),
        port=_parse_port(raw.get("port", 8080)),
        env=env_name,
        database_path=database_path,
        admin_user=admin_user,
        admin_password=admin_password,
        slack_hook=str(raw.get("slack_hook") or "").strip(),
        email=_build_email(email_raw or {}),
        twitter=_build_twitter(twitter_raw or {}),
        retention_days=_to_int(raw.get("retention_days", 30), field="retention_days"),
        sweep_interval_hours=_to_int(raw.get("sweep_interval_hours", 1), field="sweep_interval_hours"),
        timezone=str(raw.get("timezone") or "UTC"),
        log_level=str(raw.get("log_level") or "INFO").upper(),
    )


# ---- Helpers ----------------------------------------------------------------


def _build_email(raw: Mapping[str, Any]) -> EmailConfig | None:
    required = ("smtp_host", "from_email", "smtp_username", "smtp_password")
    present = [k for k in required if raw.get(k)]
    if not present:
        return None
    missing = [k for k in required if not raw.get(k)]
    if missing:
        raise ConfigError(f"Incomplete email config; missing: {', '.join(missing)}.")

    starttls = str(raw.get("starttls") or "auto").strip().lower()
    if starttls not in {"true", "false", "auto"}:
        raise ConfigError("SMTP_STARTTLS must be one of true, false, auto.")

    return EmailConfig(
        smtp_host=str(raw["smtp_host"]).strip(),
        smtp_port=_to_int(raw.get("smtp_port", 587), field="smtp_port"),
        from_email=str(raw["from_email"]).strip(),
        smtp_username=str(raw["smtp_username"]).strip(),
        smtp_password=str(raw["smtp_password"]),
        starttls=starttls,
    )


def _build_twitter(raw: Mapping[str, Any]) -> TwitterConfig | None:
    """
    Tweets are posted with an OAuth 2.0 user-context access token
    (tweet.write scope) sent as a bearer token. OAuth 1.0a key sets are
    refused at startup.
    """
    legacy = [k for k in _TWITTER_OAUTH1_KEYS if raw.get(k)]
    if legacy:
        raise ConfigError(
            "OAuth 1.0a Twitter keys are not supported "
            f"({', '.join(legacy)}); set TW_ACCESS_TOKEN to an OAuth 2.0 user-context token instead."
        )
    token = str(raw.get("access_token") or "").strip()
    if not token:
        return None
    api_url = str(raw.get("api_url") or TwitterConfig.api_url).strip()
    return TwitterConfig(access_token=token, api_url=api_url)


def _parse_port(value: Any) -> int:
    # Accept "8080" and ":8080" alike
    text = str(value).strip().lstrip(":")
    port = _to_int(text, field="port")
    if not 0 < port < 65536:
        raise ConfigError(f"'port' must be within 1..65535 (got {port}).")
    return port


def _to_int(value: Any, *, field: str) -> int:
    try:
        iv = int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"'{field}' must be an integer.") from err
    if iv < 1:
        raise ConfigError(f"'{field}' must be >= 1 (got {iv}).")
    return iv


def _read_any(path: str) -> dict[str, Any]:
    lower = path.lower()
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {path}: {e}") from e

    if lower.endswith(".yml") or lower.endswith(".yaml"):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            data = {}
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level config in {path} must be a mapping/object.")
    return data
