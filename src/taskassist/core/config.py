"""taskassist configuration: Pydantic model, load, and save."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, SecretStr, field_validator

from taskassist.core.constants import (
    CODE_GENERATION_RETRY_LIMIT,
    CONFIG_FILENAME,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_POLL_TIMEOUT_SECONDS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    MAX_PROJECT_SIZE_BYTES,
    _default_data_dir,
)
from taskassist.core.exceptions import ConfigError, ConfigNotFoundError


def taskassist_dir() -> Path:
    """Return the taskassist data directory, creating it if needed."""
    d = _default_data_dir()
    d.mkdir(mode=0o700, parents=True, exist_ok=True)
    return d


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class RemoteConfig(BaseModel):
    """Where the remote code-generation agent lives."""

    endpoint: str = ""
    api_key: SecretStr | None = None
    timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        if v and not v.startswith(("http://", "https://")):
            raise ValueError(f"endpoint must be an http(s) URL, got {v!r}")
        return v.rstrip("/")

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if not (1.0 <= v <= 600.0):
            raise ValueError("timeout_seconds must be between 1 and 600")
        return v


class CodeGenerationConfig(BaseModel):
    retry_limit: int = CODE_GENERATION_RETRY_LIMIT
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    poll_timeout_seconds: float = DEFAULT_POLL_TIMEOUT_SECONDS
    max_project_size_bytes: int = MAX_PROJECT_SIZE_BYTES

    @field_validator("retry_limit")
    @classmethod
    def validate_retry_limit(cls, v: int) -> int:
        if not (0 <= v <= 10):
            raise ValueError("retry_limit must be between 0 and 10")
        return v

    @field_validator("poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if not (0.0 < v <= 300.0):
            raise ValueError("poll_interval_seconds must be greater than 0 and at most 300")
        return v

    @field_validator("max_project_size_bytes")
    @classmethod
    def validate_max_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("max_project_size_bytes must be positive")
        return v


class LoggingConfig(BaseModel):
    level: str = "WARNING"
    format: str = "text"  # "text" | "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ("text", "json"):
            raise ValueError("Log format must be 'text' or 'json'")
        return v


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


class TaskAssistConfig(BaseModel):
    """Root taskassist configuration model."""

    model_config = {"extra": "forbid"}

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    codegen: CodeGenerationConfig = Field(default_factory=CodeGenerationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    _config_path: Path | None = None

    @property
    def config_path(self) -> Path | None:
        return self._config_path


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def _config_file_path() -> Path:
    if env_path := os.environ.get("TASKASSIST_CONFIG"):
        return Path(env_path)
    return taskassist_dir() / CONFIG_FILENAME


def load_config(path: Path | str | None = None) -> TaskAssistConfig:
    """
    Load TaskAssistConfig from a TOML file, overlaid with environment variables.

    Priority (highest to lowest):
      1. Environment variables (TASKASSIST_*)
      2. Config file (platform data dir / config.toml, or $TASKASSIST_CONFIG)
    """
    import tomllib

    cfg_path = Path(path) if path is not None else _config_file_path()

    if not cfg_path.exists():
        raise ConfigNotFoundError(
            f"taskassist is not configured. Run 'taskassist config init' first.\n"
            f"(Config file not found: {cfg_path})"
        )

    try:
        with open(cfg_path, "rb") as f:
            data = tomllib.load(f)
    except Exception as exc:
        raise ConfigError(f"Cannot read config file {cfg_path}: {exc}") from exc

    _apply_env_overrides(data)

    try:
        config = TaskAssistConfig.model_validate(data)
    except Exception as exc:
        raise ConfigError(f"Invalid config at {cfg_path}: {exc}") from exc

    config._config_path = cfg_path
    return config


def _apply_env_overrides(data: dict[str, Any]) -> None:
    """Overlay TASKASSIST_* environment variables onto parsed TOML."""
    env = os.environ.get

    if endpoint := env("TASKASSIST_ENDPOINT", ""):
        data.setdefault("remote", {})["endpoint"] = endpoint
    if api_key := env("TASKASSIST_API_KEY", ""):
        data.setdefault("remote", {})["api_key"] = api_key
    if level := env("TASKASSIST_LOG_LEVEL", ""):
        data.setdefault("logging", {})["level"] = level
    if interval := env("TASKASSIST_POLL_INTERVAL_SECONDS", ""):
        try:
            data.setdefault("codegen", {})["poll_interval_seconds"] = float(interval)
        except ValueError as exc:
            raise ConfigError(
                f"TASKASSIST_POLL_INTERVAL_SECONDS is not a number: {interval!r}"
            ) from exc


def save_config(config_data: dict[str, Any], path: Path | None = None) -> Path:
    """Write config dict to TOML file with secure permissions (0600)."""
    import tomli_w

    cfg_path = path or _config_file_path()
    cfg_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    tmp_path = cfg_path.with_suffix(".tmp")
    try:
        with open(tmp_path, "wb") as f:
            tomli_w.dump(config_data, f)
        tmp_path.rename(cfg_path)
    except Exception as exc:
        tmp_path.unlink(missing_ok=True)
        raise ConfigError(f"Cannot write config to {cfg_path}: {exc}") from exc

    cfg_path.chmod(0o600)
    return cfg_path
