"""Configuration management for Visitor Insights."""

import json
import logging
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import (
    BaseModel,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from visitor_insights_mcp.core.exceptions import ConfigurationError


class Environment(str, Enum):
    """Application environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogFormat(str, Enum):
    """Log format options."""

    JSON = "json"
    TEXT = "text"


class GA4Config(BaseModel):
    """Google Analytics 4 Data API configuration."""

    enabled: bool = Field(default=False, description="Enable GA4 API integration")
    property_id: str = Field(
        default="", description="GA4 Property ID (e.g., 123456789)"
    )

    # Authentication
    service_account_key_path: str | None = Field(
        default=None, description="Path to service account JSON key file"
    )
    service_account_json_base64: SecretStr | None = Field(
        default=None, description="Base64-encoded service account JSON key"
    )
    use_application_default_credentials: bool = Field(
        default=True, description="Use Application Default Credentials"
    )

    request_timeout_seconds: float = Field(
        default=30.0, ge=1.0, le=300.0, description="Request timeout in seconds"
    )

    # Rate limiting settings for GA4 Data API
    enable_rate_limiting: bool = Field(
        default=True, description="Enable proactive rate limiting for GA4 Data API"
    )
    requests_per_minute: int = Field(
        default=120, ge=1, description="GA4 API requests per minute per property"
    )

    @field_validator("property_id")
    @classmethod
    def validate_property_id(cls, v: str) -> str:
        """Validate GA4 property ID format."""
        if v and not v.isdigit():
            raise ValueError("GA4 property ID must be numeric")
        return v

    @model_validator(mode="after")
    def validate_ga4_config(self) -> "GA4Config":
        """Validate GA4 configuration."""
        if self.enabled and not self.property_id:
            raise ValueError("property_id is required when GA4 is enabled")

        if self.enabled:
            auth_methods = [
                self.service_account_key_path,
                self.service_account_json_base64,
                self.use_application_default_credentials,
            ]
            if not any(auth_methods):
                raise ValueError(
                    "At least one authentication method must be configured: "
                    "service_account_key_path, service_account_json_base64 or "
                    "use_application_default_credentials"
                )

        return self


class EngineConfig(BaseModel):
    """Tuning for visitor reconstruction queries."""

    max_query_terms: int = Field(
        default=9,
        ge=1,
        description="Upstream cap on dimensions + filter predicates per query",
    )
    default_start_date: str = Field(default="30daysAgo")
    default_end_date: str = Field(default="today")
    default_visitor_limit: int = Field(default=100, ge=1, le=100000)
    reconciliation_row_limit: int = Field(
        default=10000,
        ge=1,
        le=250000,
        description="Row cap for the landing page backfill query",
    )
    power_user_min_sessions: int = Field(default=3, ge=1)
    power_user_row_limit: int = Field(default=10000, ge=1, le=250000)
    detail_row_limit: int = Field(
        default=100, ge=1, le=10000, description="Row cap per visitor detail sub-query"
    )
    engaged_duration_threshold_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Engagement seconds a visitor group needs to count as engaged",
    )
    overview_group_row_limit: int = Field(default=10000, ge=1, le=250000)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: LogFormat = LogFormat.JSON

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """Application settings.

    Environment Variables:
        GA4:
            VIS_GA4__ENABLED=true
            VIS_GA4__PROPERTY_ID=123456789
            VIS_GA4__SERVICE_ACCOUNT_KEY_PATH=/path/to/key.json
            VIS_GA4__SERVICE_ACCOUNT_JSON_BASE64=eyJ0eXBlIjoi...

        Engine:
            VIS_ENGINE__POWER_USER_MIN_SESSIONS=3
            VIS_ENGINE__RECONCILIATION_ROW_LIMIT=10000

        Logging:
            VIS_LOGGING__LEVEL=INFO
            VIS_LOGGING__FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="VIS_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    ga4: GA4Config = Field(default_factory=GA4Config)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "Settings":
        """Load settings from the environment, reading a .env file first if present."""
        if env_file:
            load_dotenv(env_file)
        else:
            root_dir = Path(__file__).parent.parent.parent.parent
            env_path = root_dir / ".env"
            if env_path.exists():
                load_dotenv(env_path)

        return cls()

    def validate_required_settings(self) -> None:
        """Validate settings that depend on each other.

        Raises:
            ConfigurationError: If any cross-field check fails
        """
        errors = []

        if self.environment == Environment.PRODUCTION and self.debug:
            errors.append("DEBUG must be disabled in production")

        if self.ga4.enabled and self.ga4.service_account_key_path:
            if not Path(self.ga4.service_account_key_path).exists():
                errors.append(
                    f"GA4 service account key file not found: "
                    f"{self.ga4.service_account_key_path}"
                )

        if errors:
            raise ConfigurationError(f"Configuration errors: {'; '.join(errors)}")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    try:
        settings = Settings.from_env()
        settings.validate_required_settings()
        return settings
    except (ValidationError, ConfigurationError) as e:
        logging.error(f"Configuration error: {e}")
        raise


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper())

    if settings.logging.format == LogFormat.JSON:
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
