"""
Configuration management for the MatchPulse pipeline.

Settings are read from the environment (case-insensitive) and an optional
``.env`` file. Core components never read settings themselves; the pipeline
builder and the CLI translate them into constructor arguments.
"""

from typing import Optional, List, Dict, Any
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="MatchPulse")
    app_version: str = Field(default="1.0.0")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)

    # Connector supervision
    reconnect_delay: float = Field(default=3.0, ge=0)
    max_reconnect_attempts: int = Field(default=10, ge=1)
    reconnect_backoff_cap: int = Field(default=5, ge=1)
    heartbeat_interval: float = Field(default=30.0, gt=0)
    liveness_factor: float = Field(default=2.0, gt=0)
    handshake_timeout: float = Field(default=10.0, gt=0)

    # Upstream sources
    sofascore_ws_url: Optional[str] = Field(default=None)
    bwin_ws_url: Optional[str] = Field(default=None)
    bet365_ws_url: Optional[str] = Field(default=None)
    sofascore_match_ids: str = Field(default="")
    bwin_subscriptions: str = Field(default="live.football")

    # Pipeline
    dedup_ttl: float = Field(default=5.0, gt=0)
    queue_maxsize: int = Field(default=1000, ge=1)
    backpressure: str = Field(default="block")
    dispatch_queue_maxsize: int = Field(default=100, ge=1)
    dispatch_drain_timeout: float = Field(default=5.0, gt=0)
    stats_interval: float = Field(default=60.0, gt=0)

    # Rules
    enable_goals: bool = Field(default=True)
    enable_red_cards: bool = Field(default=True)
    enable_yellow_cards: bool = Field(default=True)
    rule_state_ttl: float = Field(default=3 * 3600.0, gt=0)

    # Enrichment
    enrichment_base_url: Optional[str] = Field(default=None)
    enrichment_timeout: float = Field(default=5.0, gt=0)

    # Monitoring
    metrics_port: Optional[int] = Field(default=None)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment."""
        valid_envs = ["development", "staging", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Environment must be one of: {valid_envs}")
        return v.lower()

    @field_validator("backpressure")
    @classmethod
    def validate_backpressure(cls, v):
        """Validate the fan-in overflow policy."""
        valid_policies = ["block", "drop_oldest"]
        if v.lower() not in valid_policies:
            raise ValueError(f"Backpressure must be one of: {valid_policies}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == "development"

    @property
    def match_id_list(self) -> List[str]:
        """SofaScore match ids to subscribe to on connect."""
        return _split_csv(self.sofascore_match_ids)

    @property
    def subscription_list(self) -> List[str]:
        """Bwin channels to subscribe to on connect."""
        return _split_csv(self.bwin_subscriptions)

    @property
    def sources_config(self) -> Dict[str, Optional[str]]:
        """Get the configured stream URL for each source."""
        return {
            "sofascore": self.sofascore_ws_url,
            "bwin": self.bwin_ws_url,
            "bet365": self.bet365_ws_url,
        }

    @property
    def enabled_events(self) -> Dict[str, bool]:
        """Get the incident alert toggles."""
        return {
            "goals": self.enable_goals,
            "red_cards": self.enable_red_cards,
            "yellow_cards": self.enable_yellow_cards,
        }

    def connector_options(self):
        """Build the reconnect and heartbeat options shared by connectors."""
        from matchpulse.ingestion.connector import ConnectorOptions

        return ConnectorOptions(
            reconnect_delay=self.reconnect_delay,
            max_reconnect_attempts=self.max_reconnect_attempts,
            backoff_cap=self.reconnect_backoff_cap,
            heartbeat_interval=self.heartbeat_interval,
            liveness_factor=self.liveness_factor,
        )

    def to_display_dict(self) -> Dict[str, Any]:
        """Grouped view of the settings for the CLI and startup logs."""
        return {
            "app": {
                "name": self.app_name,
                "environment": self.environment,
                "log_level": self.log_level,
            },
            "sources": self.sources_config,
            "connectors": {
                "reconnect_delay": self.reconnect_delay,
                "max_reconnect_attempts": self.max_reconnect_attempts,
                "backoff_cap": self.reconnect_backoff_cap,
                "heartbeat_interval": self.heartbeat_interval,
            },
            "pipeline": {
                "dedup_ttl": self.dedup_ttl,
                "queue_maxsize": self.queue_maxsize,
                "backpressure": self.backpressure,
            },
            "alerts": self.enabled_events,
        }


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
