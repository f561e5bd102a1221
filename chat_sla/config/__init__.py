"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="chat-sla-analytics", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/chat_analytics",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA configuration YAML file"
    )
    sla_recalculation_interval: int = Field(
        default=900,
        description="Seconds between background recalculations (0 disables the scheduler)",
        ge=0
    )
    recalculation_batch_size: int = Field(
        default=500,
        description="Conversations fetched per recalculation batch",
        ge=1,
        le=2000
    )
    default_lookback_days: int = Field(
        default=30,
        description="Date range used when a query gives no start date",
        ge=1
    )
    max_recalculation_days: int = Field(
        default=365,
        description="Largest date range accepted by a recalculation",
        ge=1
    )

    # ========== Fallback office hours (used when the YAML file is absent) ==========
    office_hours_start: str = Field(default="09:00", description="Office open, HH:mm 24-hour")
    office_hours_end: str = Field(default="17:00", description="Office close, HH:mm 24-hour (exclusive)")
    office_hours_working_days: List[int] = Field(
        default=[1, 2, 3, 4, 5],
        description="Working days (1=Monday, 7=Sunday)"
    )
    office_hours_timezone: str = Field(default="America/New_York", description="IANA timezone")

    # ========== Fallback SLA targets (seconds) ==========
    sla_pickup_target: int = Field(default=120, ge=0)
    sla_first_response_target: int = Field(default=300, ge=0)
    sla_avg_response_target: int = Field(default=300, ge=0)
    sla_resolution_target: int = Field(default=7200, ge=0)
    sla_compliance_target: float = Field(default=95.0, ge=0, le=100)

    # ========== Fallback enabled metrics ==========
    sla_enable_pickup: bool = True
    sla_enable_first_response: bool = True
    sla_enable_avg_response: bool = False
    sla_enable_resolution: bool = False

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class MessageRole(str, Enum):
    """Author of a chat message."""
    CUSTOMER = "customer"
    AGENT = "agent"
    SYSTEM = "system"


class TimeSystem(str, Enum):
    """Clock used to measure elapsed time."""
    WALL_CLOCK = "wall_clock"
    BUSINESS_HOURS = "business_hours"


class SLAMetricName(str, Enum):
    """The four per-conversation SLA metrics."""
    PICKUP = "pickup"
    FIRST_RESPONSE = "first_response"
    AVG_RESPONSE = "avg_response"
    RESOLUTION = "resolution"


class Channel(str, Enum):
    """Messaging providers a conversation can arrive through."""
    WHATSAPP = "whatsapp"
    FACEBOOK = "facebook"
    TELEGRAM = "telegram"
    LIVECHAT = "livechat"
    B2CBOTAPI = "b2cbotapi"


class RecalculationTrigger(str, Enum):
    """Why SLA metrics were (re)computed."""
    INITIAL = "initial"
    UPDATE = "update"
    RECALCULATION = "recalculation"
    CONFIG_CHANGE = "config_change"


# ========== Lists for validation ==========

SLA_METRICS = [
    SLAMetricName.PICKUP, SLAMetricName.FIRST_RESPONSE,
    SLAMetricName.AVG_RESPONSE, SLAMetricName.RESOLUTION
]
TIME_SYSTEMS = [TimeSystem.WALL_CLOCK, TimeSystem.BUSINESS_HOURS]
VALID_CHANNELS = [channel.value for channel in Channel]
