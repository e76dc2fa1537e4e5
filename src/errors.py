"""Error types for the Codicent client."""

from enum import Enum


class ClientErrorClass(str, Enum):
    """Classification of client errors.

    - CONFIGURATION: Missing or invalid configuration / arguments
    - TRANSPORT: Network failure or timeout that survived all retries
    - HTTP_STATUS: Final response carried a non-success status
    - CANCELLED: The caller cancelled the request
    - CONNECTION: Persistent connection lifecycle failure
    - DEPENDENCY_UNAVAILABLE: The pub/sub transport failed to load
    - NOT_FOUND: A referenced message does not exist
    """

    CONFIGURATION = "CONFIGURATION"
    TRANSPORT = "TRANSPORT"
    HTTP_STATUS = "HTTP_STATUS"
    CANCELLED = "CANCELLED"
    CONNECTION = "CONNECTION"
    DEPENDENCY_UNAVAILABLE = "DEPENDENCY_UNAVAILABLE"
    NOT_FOUND = "NOT_FOUND"


class ClientError(Exception):
    """Base exception for client errors.

    Provides structured error information for logging.
    """

    error_class: ClientErrorClass = ClientErrorClass.CONFIGURATION

    def __init__(
        self,
        message: str,
        details: dict[str, str | int | bool | None] | None = None,
    ) -> None:
        """Initialize the client error.

        Args:
            message: Human-readable error message.
            details: Additional structured error details.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(
        self,
    ) -> dict[str, str | int | bool | None | dict[str, str | int | bool | None]]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "error_class": self.error_class.value,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(ClientError):
    """Raised when required configuration is missing or invalid.

    Never retried; raised before any network activity.
    """

    error_class = ClientErrorClass.CONFIGURATION

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize the configuration error.

        Args:
            message: Human-readable error message.
            field: Name of the offending option, if known.
        """
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class InvalidArgumentError(ConfigurationError):
    """Raised when an operation argument fails validation."""


class TransportFailureError(ClientError):
    """Raised when a request failed at the transport level on every attempt."""

    error_class = ClientErrorClass.TRANSPORT

    def __init__(self, message: str, attempts: int) -> None:
        """Initialize the transport failure.

        Args:
            message: Human-readable error message.
            attempts: Number of attempts made.
        """
        super().__init__(message, details={"attempts": attempts})
        self.attempts = attempts


class HttpStatusError(ClientError):
    """Raised when a final response has a non-success status."""

    error_class = ClientErrorClass.HTTP_STATUS

    def __init__(self, status_code: int, operation: str | None = None) -> None:
        """Initialize the status error.

        Args:
            status_code: HTTP status code of the final response.
            operation: Facade operation that received it.
        """
        super().__init__(
            f"HTTP error: {status_code}",
            details={"status_code": status_code, "operation": operation},
        )
        self.status_code = status_code
        self.operation = operation


class RequestCancelledError(ClientError):
    """Raised when the caller's cancel signal aborts a request."""

    error_class = ClientErrorClass.CANCELLED


class ConnectionLifecycleError(ClientError):
    """Recorded when the persistent connection cannot be established.

    Never raised into callers; kept on the connection state and logged.
    """

    error_class = ClientErrorClass.CONNECTION


class DependencyUnavailableError(ClientError):
    """Raised for operations when the pub/sub transport failed to load."""

    error_class = ClientErrorClass.DEPENDENCY_UNAVAILABLE

    def __init__(
        self,
        message: str = (
            "Pub/sub transport failed to load. Codicent features are not available."
        ),
        operation: str | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            operation: Operation that was rejected.
        """
        super().__init__(message, details={"operation": operation})
        self.operation = operation


class MessageNotFoundError(ClientError):
    """Raised when an operation refers to a message the service cannot find."""

    error_class = ClientErrorClass.NOT_FOUND

    def __init__(self, message_id: str) -> None:
        """Initialize the error.

        Args:
            message_id: ID that was looked up.
        """
        super().__init__(
            f"Message not found: {message_id}", details={"message_id": message_id}
        )
        self.message_id = message_id
