"""
Shared configuration management for the rule engine.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Engine configuration read from ``RULES_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="RULES_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    log_json: bool = Field(default=True)
    debug: bool = Field(default=False)

    # Identical log events inside this window are collapsed
    log_rate_limit_seconds: int = Field(default=60, ge=0)

    # Rule defaults
    default_rule_order: int = Field(default=10, ge=0, le=999)
    default_event: str = Field(default="init")
    default_event_priority: int = Field(default=10)

    # Observability
    enable_metrics: bool = Field(default=True)

    @property
    def effective_log_level(self) -> str:
        """Debug mode always wins over the configured level."""
        return "debug" if self.debug else self.log_level


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    """Get the process-wide engine settings."""
    return EngineSettings()
