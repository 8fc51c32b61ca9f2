"""Configuration management with Pydantic validation."""

from typing import Optional
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv


class Config(BaseSettings):
    """Client configuration with validation."""

    model_config = SettingsConfigDict(
        env_prefix="MANIMATIC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Backend
    api_base_url: str = Field(..., description="Base URL of the animation API")

    # Deadlines
    generation_timeout_seconds: float = Field(
        default=30.0, gt=0, le=600, description="Deadline for the first event after a triggering call"
    )
    probe_timeout_seconds: float = Field(default=5.0, gt=0, le=60, description="Deadline for the health probe")
    request_timeout_seconds: float = Field(
        default=15.0, gt=0, le=300, description="Deadline for triggering calls and metadata fetches"
    )

    # Features and models
    compile_feature_key: str = Field(default="user-compile", min_length=1, description="Feature gating user compiles")
    default_model: Optional[str] = Field(default=None, description="Fallback model when the backend names none")

    # Event correlation
    filter_events_by_session: bool = Field(
        default=True, description="Drop events whose session id differs from the adopted one"
    )

    # Outbound throttling
    max_concurrent_requests: int = Field(default=4, ge=1, le=32, description="Max concurrent HTTP requests")
    max_requests_per_minute: int = Field(default=60, ge=1, le=6000, description="HTTP requests per minute")

    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("MANIMATIC_LOG_LEVEL", "LOG_LEVEL"),
        description="Root log level",
    )

    @field_validator("api_base_url")
    @classmethod
    def validate_api_base_url(cls, v: str) -> str:
        """Require an http(s) URL and strip the trailing slash."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"api_base_url must start with http:// or https://, got '{v}'")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got '{v}'")
        return v.upper()

    @field_validator("default_model")
    @classmethod
    def validate_default_model(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


def load_config(**overrides) -> Config:
    """
    Load configuration from environment variables.

    Args:
        **overrides: Explicit values that take precedence over the environment

    Returns:
        Config: Validated configuration object

    Raises:
        ValueError: If configuration is invalid or required vars are missing
    """
    # Load .env file if it exists
    load_dotenv()

    try:
        return Config(**overrides)
    except Exception as e:
        raise ValueError(
            f"Configuration error: {e}\nPlease check your .env file or MANIMATIC_* environment variables."
        )


# Global config instance (lazy-loaded)
_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get global configuration instance (singleton pattern).

    Returns:
        Config: Global configuration object
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config
