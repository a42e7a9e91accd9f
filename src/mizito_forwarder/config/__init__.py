"""Configuration — pydantic-settings models for the forwarder."""

from __future__ import annotations

from mizito_forwarder.config.settings import (
    AppConfig,
    MetricsConfig,
    MizitoConfig,
    ServerConfig,
    TokenConfig,
)

__all__ = ["AppConfig", "MetricsConfig", "MizitoConfig", "ServerConfig", "TokenConfig"]
