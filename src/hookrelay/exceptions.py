"""hookrelay exception hierarchy.

Provides structured exceptions for error handling inside the delivery engine.
All exceptions inherit from HookRelayError for easy catching. None of them
cross the dispatcher boundary: trigger operations turn them into results
and log entries.
"""

from __future__ import annotations


class HookRelayError(Exception):
    """Base exception for all hookrelay errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code.
    """

    code: str = "hookrelay_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to a serializable dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(HookRelayError):
    """Invalid input provided.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to a serializable dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(HookRelayError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g., "webhook").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to a serializable dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(HookRelayError):
    """Storage operation failed.

    Raised when reading webhooks or writing delivery records fails.
    """

    code: str = "storage_error"


class ConfigurationError(HookRelayError):
    """Configuration error.

    Raised when required configuration is missing or invalid.
    """

    code: str = "configuration_error"


class DeliveryError(HookRelayError):
    """A single HTTP attempt failed.

    Attributes:
        status_code: HTTP status of the failed attempt, if a response arrived.
        retryable: Whether another attempt may succeed.
    """

    code: str = "delivery_error"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retryable: bool = True,
    ) -> None:
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to a serializable dictionary."""
        return {
            "error": {
                "code": self.code,
                "status_code": self.status_code,
                "retryable": self.retryable,
                "message": self.message,
            }
        }
