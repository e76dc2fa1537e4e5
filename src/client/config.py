"""Runtime configuration for the Codicent facade."""

from collections.abc import Mapping
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.client.constants import DEFAULT_BASE_URL
from src.connection.channel import MessageHandler
from src.connection.constants import (
    DEFAULT_MAX_CONNECTION_ATTEMPTS,
    DEFAULT_PUBSUB_HOST,
)
from src.errors import ConfigurationError
from src.observability.sink import LogSink


# Option keys accepted by ``init`` mapped to config fields
OPTION_ALIASES: dict[str, str] = {
    "token": "token",
    "baseUrl": "base_url",
    "base_url": "base_url",
    "signalRHost": "pubsub_host",
    "pubsubHost": "pubsub_host",
    "pubsub_host": "pubsub_host",
    "maxConnectionAttempts": "max_connection_attempts",
    "max_connection_attempts": "max_connection_attempts",
    "log": "log",
    "handleMessage": "handle_message",
    "handle_message": "handle_message",
}


def _format_validation_error(error: ValidationError) -> tuple[str, str | None]:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or None
    return f"Invalid option '{field}': {first['msg']}", field


class ClientConfig(BaseModel):
    """Immutable facade configuration.

    A new instance is produced by ``merge`` for every ``init`` call; the
    previous one is never mutated.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    token: str | None = None
    base_url: str = DEFAULT_BASE_URL
    pubsub_host: str | None = DEFAULT_PUBSUB_HOST
    max_connection_attempts: Annotated[int, Field(ge=1, le=100)] = (
        DEFAULT_MAX_CONNECTION_ATTEMPTS
    )
    log: LogSink | None = None
    handle_message: MessageHandler | None = None

    @field_validator("base_url")
    @classmethod
    def _ensure_trailing_slash(cls, value: str) -> str:
        if not value.strip():
            msg = "base_url must not be empty"
            raise ValueError(msg)
        return value if value.endswith("/") else f"{value}/"

    def merge(self, options: Mapping[str, Any]) -> "ClientConfig":
        """Return a new config with options applied last-write-wins.

        Args:
            options: Option keys (camelCase or snake_case) and values.

        Returns:
            The merged, validated configuration.

        Raises:
            ConfigurationError: An option is unknown or fails validation.
        """
        data = {name: getattr(self, name) for name in type(self).model_fields}
        for key, value in options.items():
            field = OPTION_ALIASES.get(key)
            if field is None:
                msg = f"Unknown option '{key}'"
                raise ConfigurationError(msg, field=key)
            data[field] = value

        try:
            return type(self).model_validate(data)
        except ValidationError as e:
            msg, field = _format_validation_error(e)
            raise ConfigurationError(msg, field=field) from e

    def require_token(self) -> str:
        """Return the token, failing when none is configured.

        Raises:
            ConfigurationError: The token is missing or blank.
        """
        if not self.token or not self.token.strip():
            msg = "Token is required to initialize Codicent"
            raise ConfigurationError(msg, field="token")
        return self.token

    def require_connection_settings(self) -> None:
        """Check the fields needed to open the pub/sub connection.

        Raises:
            ConfigurationError: The token or pub/sub host is missing.
        """
        self.require_token()
        if not self.pubsub_host or not self.pubsub_host.strip():
            msg = "Pub/sub host is required to initialize Codicent"
            raise ConfigurationError(msg, field="pubsub_host")

    def connection_key(self) -> tuple[str | None, str | None, int]:
        """Fields whose change requires a new pub/sub connection."""
        return (self.pubsub_host, self.token, self.max_connection_attempts)
