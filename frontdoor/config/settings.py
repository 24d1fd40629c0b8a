"""
Configuration management for sf-frontdoor.

This module provides centralized configuration management using Pydantic
for validation and type safety. Only the CLI and the helper constructors
read from here; the login core receives every value it needs as arguments.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    level: str = Field(default="INFO", description="Log level")
    file: Optional[Path] = Field(default=None, description="Optional log file path")
    structured: bool = Field(default=False, description="Emit JSON instead of console logs")

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class BrowserSettings(BaseSettings):
    """Browser automation configuration settings."""

    headless: bool = Field(default=True)
    timeout_ms: int = Field(default=30000, description="Timeout for the post-login redirect")
    viewport_width: int = Field(default=1920)
    viewport_height: int = Field(default=1080)
    user_agent: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    )

    model_config = SettingsConfigDict(
        env_prefix="BROWSER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class SalesforceSettings(BaseSettings):
    """Salesforce org connection settings."""

    instance_url: Optional[str] = Field(default=None, description="e.g. https://acme.my.salesforce.com")
    access_token: Optional[str] = Field(default=None, description="Session ID / OAuth access token")
    refresh_token: Optional[str] = Field(default=None)
    client_id: Optional[str] = Field(default=None, description="Connected app consumer key")
    client_secret: Optional[str] = Field(default=None)
    login_url: str = Field(default="https://login.salesforce.com")
    api_version: str = Field(default="60.0")
    username: Optional[str] = Field(default=None)

    @field_validator("login_url")
    @classmethod
    def validate_login_url(cls, v: str) -> str:
        """Require an absolute https login host."""
        if not v.startswith("https://"):
            raise ValueError("Login URL must start with https://")
        return v.rstrip("/")

    @field_validator("api_version")
    @classmethod
    def validate_api_version(cls, v: str) -> str:
        """Accept both '60.0' and 'v60.0'."""
        v = v.lstrip("vV")
        try:
            float(v)
        except ValueError:
            raise ValueError(f"Invalid API version: {v}")
        return v

    model_config = SettingsConfigDict(
        env_prefix="SF_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class Settings(BaseSettings):
    """Main application settings combining all configuration sections."""

    # Environment
    environment: str = Field(default="development")
    debug: bool = Field(default=False)

    # Configuration sections
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    salesforce: SalesforceSettings = Field(default_factory=SalesforceSettings)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment setting."""
        valid_envs = {"development", "testing", "staging", "production"}
        if v.lower() not in valid_envs:
            raise ValueError(f"Environment must be one of: {valid_envs}")
        return v.lower()

    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"

    def redacted(self) -> Dict[str, Any]:
        """Dump settings with credentials masked, for display."""
        data = self.model_dump(mode="json")
        for key in ("access_token", "refresh_token", "client_secret"):
            if data["salesforce"].get(key):
                data["salesforce"][key] = "[REDACTED]"
        return data

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra fields from environment
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: The application configuration
    """
    return Settings()
