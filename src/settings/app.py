"""Application settings powered by Pydantic BaseSettings."""

from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.client.constants import DEFAULT_BASE_URL
from src.connection.constants import (
    DEFAULT_MAX_CONNECTION_ATTEMPTS,
    DEFAULT_PUBSUB_HOST,
)


class AppSettings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    token: str | None = Field(default=None, validation_alias="CODICENT_TOKEN")
    base_url: str = Field(default=DEFAULT_BASE_URL, validation_alias="CODICENT_BASE_URL")
    pubsub_host: str = Field(
        default=DEFAULT_PUBSUB_HOST, validation_alias="CODICENT_PUBSUB_HOST"
    )
    max_connection_attempts: int = Field(
        default=DEFAULT_MAX_CONNECTION_ATTEMPTS,
        validation_alias="CODICENT_MAX_CONNECTION_ATTEMPTS",
    )

    def to_options(self) -> dict[str, Any]:
        """Return ``init`` options for the configured values.

        The token is omitted when unset so ``init`` reports it as missing.
        """
        options: dict[str, Any] = {
            "base_url": self.base_url,
            "pubsub_host": self.pubsub_host,
            "max_connection_attempts": self.max_connection_attempts,
        }
        if self.token:
            options["token"] = self.token
        return options


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
