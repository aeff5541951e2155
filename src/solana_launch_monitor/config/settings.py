"""Configuration management for the launch monitor."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import AnyHttpUrl, AnyUrl, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, TomlConfigSettingsSource

from ..utils.addresses import validate_address

DEFAULT_CONFIG_FILE = Path("config/monitor.toml")
CONFIG_FILE_ENV_VAR = "MONITOR_CONFIG_FILE"
RPC_URL_PLACEHOLDER = "YOUR_API_KEY_HERE"


def _resolve_config_path() -> Path:
    env_value = os.getenv(CONFIG_FILE_ENV_VAR)
    if env_value:
        candidate = Path(env_value)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        return candidate
    return Path.cwd() / DEFAULT_CONFIG_FILE


class FeedConfig(BaseModel):
    """Upstream token-creation websocket feed."""

    url: AnyUrl
    reconnect_delay_seconds: float = Field(default=5.0, ge=0.0)
    ping_interval_seconds: float = Field(default=20.0, gt=0.0)
    subscribe_method: str = Field(default="subscribeNewToken")

    @field_validator("url")
    @classmethod
    def _websocket_scheme(cls, value: AnyUrl) -> AnyUrl:
        if value.scheme not in {"ws", "wss"}:
            raise ValueError("feed url must use the ws:// or wss:// scheme")
        return value


class RPCConfig(BaseModel):
    """JSON-RPC endpoint and the monitored program."""

    url: AnyHttpUrl
    program_id: str
    request_timeout: float = Field(default=10.0, ge=1.0, le=60.0)
    max_attempts: int = Field(default=2, ge=1, le=10)
    signature_limit: int = Field(default=10, ge=1, le=1000)
    commitment: str = Field(default="confirmed")

    @field_validator("url")
    @classmethod
    def _reject_placeholder(cls, value: AnyHttpUrl) -> AnyHttpUrl:
        if RPC_URL_PLACEHOLDER in str(value):
            raise ValueError("rpc url still contains the API key placeholder")
        return value

    @field_validator("program_id")
    @classmethod
    def _valid_program_id(cls, value: str) -> str:
        return validate_address(value)


class MonitorConfig(BaseModel):
    """Capacities and timers of the in-memory pipeline."""

    active_token_capacity: int = Field(default=100, ge=1)
    full_clear_interval_seconds: float = Field(default=300.0, gt=0.0)
    flush_interval_seconds: float = Field(default=0.5, gt=0.0)
    poll_interval_seconds: float = Field(default=4.0, gt=0.0)
    poll_retry_delay_seconds: float = Field(default=10.0, ge=0.0)
    seen_signature_limit: int = Field(default=2_000, ge=2)
    seen_signature_keep: int = Field(default=1_000, ge=1)
    creator_history_limit: int = Field(default=1_000, ge=1)
    creator_history_max_age_seconds: float = Field(default=3_600.0, gt=0.0)


class ScoringConfig(BaseModel):
    """Thresholds and weights for new-token risk scoring."""

    high_market_cap_sol: float = Field(default=100.0)
    high_market_cap_points: int = 15
    virtual_sol_threshold: float = Field(default=2.0)
    virtual_sol_points: int = 10
    virtual_tokens_threshold: float = Field(default=1_000_000_000.0)
    virtual_tokens_points: int = 10
    invalid_uri_penalty: int = 10
    metadata_failure_penalty: int = 5
    metadata_timeout_seconds: float = Field(default=3.0, gt=0.0)
    sniper_max_sol: float = Field(default=0.05, ge=0.0)
    sniper_penalty: int = 15
    deploy_window_seconds: float = Field(default=300.0, gt=0.0)
    deploy_spam_threshold: int = Field(default=2, ge=1)
    deploy_spam_penalty: int = 20
    legit_min_score: int = 30
    scam_max_score: int = -20


class ParserConfig(BaseModel):
    """Heuristics applied to polled program transactions."""

    mint_account_index: int = Field(default=4, ge=0)
    bundle_instruction_threshold: int = Field(default=3, ge=0)
    bundle_log_threshold: int = Field(default=20, ge=0)
    whale_threshold_sol: float = Field(default=50.0, ge=0.0)
    log_excerpt_lines: int = Field(default=5, ge=0)


class ServerConfig(BaseModel):
    """Viewer-facing HTTP/websocket surface."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, ge=1, le=65535)
    cors_origin: Optional[str] = None
    viewer_queue_size: int = Field(default=1_000, ge=1)

    @property
    def allowed_origins(self) -> List[str]:
        if not self.cors_origin:
            return []
        return [origin.strip() for origin in self.cors_origin.split(",") if origin.strip()]


class MonitoringConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO")


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    feed: FeedConfig
    rpc: RPCConfig
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    parser: ParserConfig = Field(default_factory=ParserConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Runtime environment variables win over the static config file.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=_resolve_config_path()),
            file_secret_settings,
        )


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object.

    Raises ``pydantic.ValidationError`` when a required value is missing or invalid.
    """

    return AppConfig()


__all__ = [
    "AppConfig",
    "FeedConfig",
    "MonitorConfig",
    "MonitoringConfig",
    "ParserConfig",
    "RPCConfig",
    "ScoringConfig",
    "ServerConfig",
    "get_app_config",
]
