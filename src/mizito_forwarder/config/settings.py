"""Application settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (``MIZITO_*``, ``JWT_TOKEN_*``, ``SERVER_*``, ...)
2. A ``.env`` file in the working directory
3. YAML config file (``CONFIG_PATH`` env var)
4. Defaults defined here
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class LogLevel(enum.StrEnum):
    """Supported log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    WARNING = "warning"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class ServerConfig(BaseSettings):
    """HTTP server settings."""

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8080
    timeout_graceful_shutdown: int = 30


class MizitoConfig(BaseSettings):
    """Mizito upstream API settings."""

    model_config = SettingsConfigDict(
        env_prefix="MIZITO_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    base_url: str = "https://app.mizito.ir"
    login_url: str = "https://app.mizito.ir/capi/session/create"
    chat_api_url: str = "https://app.mizito.ir/api/chat/send"
    origin: str = "https://office.mizito.ir"

    username: str = ""
    password: str = ""
    login_code: str | None = None
    reg_id: str | None = None
    dialog_id: str = ""
    from_user_id: str = ""

    timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")
    max_retries: int = Field(
        default=2,
        ge=0,
        description="Extra send attempts after a 401 (total attempts = max_retries + 1)",
    )
    timezone: str = "Asia/Tehran"

    @field_validator("login_code", "reg_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        """Map blank values and the legacy ``null`` env value to ``None``."""
        if isinstance(value, str) and value.strip().lower() in ("", "null"):
            return None
        return value

    @model_validator(mode="after")
    def _check_required(self) -> Self:
        missing = [
            f"MIZITO_{name.upper()}"
            for name in ("username", "password", "dialog_id", "from_user_id")
            if not getattr(self, name)
        ]
        if missing:
            msg = ", ".join(missing) + (" is required" if len(missing) == 1 else " are required")
            raise ValueError(msg)
        return self


class TokenConfig(BaseSettings):
    """Session token persistence settings."""

    model_config = SettingsConfigDict(
        env_prefix="JWT_TOKEN_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    file: Path = Path("token.json")
    ttl_hours: float = Field(default=24.0, gt=0)


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="METRICS_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    enabled: bool = True


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Loads settings from environment variables, an optional ``.env`` file,
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    app_token: str = ""
    log_level: LogLevel = LogLevel.INFO
    config_path: str = ""

    server: ServerConfig = Field(default_factory=ServerConfig)
    mizito: MizitoConfig = Field(default_factory=MizitoConfig)
    token: TokenConfig = Field(default_factory=TokenConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @field_validator("log_level", mode="before")
    @classmethod
    def _lower_log_level(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                values[key] = {**val, **values[key]}
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
