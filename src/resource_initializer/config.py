"""
Configuration settings for the resource initializer.

Uses pydantic-settings for type-safe configuration management with
environment variable support.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AWSSettings(BaseSettings):
    """AWS-specific configuration settings."""

    model_config = SettingsConfigDict(extra="ignore")

    # Use explicit env var names to avoid capturing Lambda's temporary credentials
    region: str = Field(default="us-east-1", alias="AWS_DEFAULT_REGION")
    access_key_id: str | None = Field(default=None, alias="INITIALIZER_AWS_ACCESS_KEY_ID")
    secret_access_key: str | None = Field(default=None, alias="INITIALIZER_AWS_SECRET_ACCESS_KEY")


class InitializerSettings(BaseSettings):
    """Invocation and fingerprint configuration."""

    model_config = SettingsConfigDict(env_prefix="INITIALIZER_", extra="ignore")

    timeout_seconds: float = Field(
        default=600.0,
        description="Bounded wait for a single Action Target invocation",
    )
    fingerprint_length: int = Field(
        default=6,
        description="Number of hex characters kept from the payload digest",
    )
    function_memory_mb: int = Field(default=128, description="Action Target memory size")
    function_timeout_seconds: int = Field(default=30, description="Action Target timeout")

    @field_validator("fingerprint_length")
    @classmethod
    def validate_fingerprint_length(cls, v: int) -> int:
        if not 1 <= v <= 32:
            raise ValueError("Fingerprint length must be between 1 and 32")
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v


class StateSettings(BaseSettings):
    """Trigger state persistence configuration."""

    model_config = SettingsConfigDict(env_prefix="STATE_", extra="ignore")

    backend: Literal["memory", "file", "dynamodb"] = Field(
        default="file",
        description="Where trigger records are kept between convergence passes",
    )
    table_name: str = Field(
        default="resource-initializer-state",
        description="DynamoDB table name",
    )
    file_path: Path = Field(
        default=Path(".initializer-state.json"),
        description="JSON state file used by the file backend",
    )


class Settings(BaseSettings):
    """Main application settings aggregating all configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        alias="APP_ENV",
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Nested settings
    aws: AWSSettings = Field(default_factory=AWSSettings)
    initializer: InitializerSettings = Field(default_factory=InitializerSettings)
    state: StateSettings = Field(default_factory=StateSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    def boto_kwargs(self) -> dict:
        """Get boto3 client kwargs, only including credentials if explicitly set."""
        kwargs = {"region_name": self.aws.region}
        if self.aws.access_key_id and self.aws.secret_access_key:
            kwargs["aws_access_key_id"] = self.aws.access_key_id
            kwargs["aws_secret_access_key"] = self.aws.secret_access_key
        return kwargs


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
