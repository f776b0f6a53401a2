"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local secrets and env overrides (gitignored)
  4. Environment variables        — ``BUFF_ENGINE_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

The engine, the remote store client, and every CLI command receive an
``AppConfig`` instance — never raw dicts or individual env var lookups
scattered through the codebase.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class CatalogConfig(BaseModel):
    """Where the buff catalog lives."""

    model_config = ConfigDict(frozen=True)

    path: str = "config/buffs/catalog.json"


class ClockConfig(BaseModel):
    """Local-calendar and recheck settings.

    ``timezone`` is the zone "now" is sampled in; the local calendar day of
    that instant drives all rule matching.
    """

    model_config = ConfigDict(frozen=True)

    timezone: str = "America/New_York"
    lookback_days: int = 7
    refresh_interval_seconds: float = 60.0
    preview_hours: float = 48.0

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown IANA timezone '{v}'.") from exc
        return v

    @field_validator("lookback_days")
    @classmethod
    def validate_lookback(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"lookback_days must be >= 1, got {v}.")
        return v

    @field_validator("refresh_interval_seconds")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"refresh_interval_seconds must be > 0, got {v}.")
        return v

    @field_validator("preview_hours")
    @classmethod
    def validate_preview(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"preview_hours must be >= 0, got {v}.")
        return v


class RemoteConfig(BaseModel):
    """Trusted backend (ledger store + weekday procedure) settings.

    An empty ``base_url`` means no backend is configured: every session is
    evaluated as a guest and ledger mutations are unavailable.
    """

    model_config = ConfigDict(frozen=True)

    base_url: str = ""
    api_key: str = ""
    access_token: str = ""
    timeout_seconds: float = 10.0
    guard_timeout_seconds: float = 5.0
    users_table: str = "users"
    grant_procedure: str = "set_user_buff"
    revoke_procedure: str = "remove_user_buff"
    sweep_procedure: str = "clear_expired_buffs"
    weekday_procedure: str = "is_weekend_for_user"

    @field_validator("timeout_seconds", "guard_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Timeouts must be > 0 seconds, got {v}.")
        return v

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = ""
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration for the buff engine.

    Constructed by ``load_config()`` which merges TOML + .env.
    """

    model_config = ConfigDict(frozen=True)

    catalog: CatalogConfig = CatalogConfig()
    clock: ClockConfig = ClockConfig()
    remote: RemoteConfig = RemoteConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    # 1. Load .env file (silently skip if missing)
    load_dotenv(dotenv_path=root / ".env", override=False)

    # 2. Load TOML config
    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    # 3. Apply BUFF_ENGINE_* environment variable overrides
    raw = _apply_env_overrides(raw)

    # 4. Build and validate AppConfig
    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply BUFF_ENGINE_* env vars to the raw config dict.

    Supported overrides:
      BUFF_ENGINE_CATALOG_PATH    → raw["catalog"]["path"]
      BUFF_ENGINE_TIMEZONE        → raw["clock"]["timezone"]
      BUFF_ENGINE_REMOTE_URL      → raw["remote"]["base_url"]
      BUFF_ENGINE_REMOTE_API_KEY  → raw["remote"]["api_key"]
      BUFF_ENGINE_REMOTE_TOKEN    → raw["remote"]["access_token"]
      BUFF_ENGINE_LOG_LEVEL       → raw["logging"]["level"]
      BUFF_ENGINE_DEBUG           → raw["debug"]
    """
    if catalog_path := os.environ.get("BUFF_ENGINE_CATALOG_PATH"):
        raw.setdefault("catalog", {})["path"] = catalog_path

    if tz := os.environ.get("BUFF_ENGINE_TIMEZONE"):
        raw.setdefault("clock", {})["timezone"] = tz

    if base_url := os.environ.get("BUFF_ENGINE_REMOTE_URL"):
        raw.setdefault("remote", {})["base_url"] = base_url

    if api_key := os.environ.get("BUFF_ENGINE_REMOTE_API_KEY"):
        raw.setdefault("remote", {})["api_key"] = api_key

    if token := os.environ.get("BUFF_ENGINE_REMOTE_TOKEN"):
        raw.setdefault("remote", {})["access_token"] = token

    if log_level := os.environ.get("BUFF_ENGINE_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if debug := os.environ.get("BUFF_ENGINE_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        catalog=CatalogConfig(**raw.get("catalog", {})),
        clock=ClockConfig(**raw.get("clock", {})),
        remote=RemoteConfig(**raw.get("remote", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )


def resolve_catalog_path(config: AppConfig) -> Path:
    """Return the catalog path, anchored at the project root when relative."""
    path = Path(config.catalog.path)
    if path.is_absolute() or path.exists():
        return path
    return _find_project_root() / path
