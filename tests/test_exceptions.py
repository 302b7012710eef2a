"""Tests for hookrelay exception hierarchy."""

from hookrelay.exceptions import (
    ConfigurationError,
    DeliveryError,
    HookRelayError,
    NotFoundError,
    StorageError,
    ValidationError,
)


class TestHookRelayError:
    """Tests for the base HookRelayError class."""

    def test_error_message(self):
        error = HookRelayError("Something went wrong")
        assert error.message == "Something went wrong"
        assert str(error) == "Something went wrong"
        assert error.code == "hookrelay_error"

    def test_to_dict(self):
        assert HookRelayError("Something went wrong").to_dict() == {
            "error": {"code": "hookrelay_error", "message": "Something went wrong"}
        }

    def test_inheritance(self):
        """All custom exceptions should inherit from HookRelayError."""
        for exc in [
            ValidationError("field", "invalid"),
            NotFoundError("webhook", "whk_1"),
            StorageError("failed"),
            ConfigurationError("missing"),
            DeliveryError("failed"),
        ]:
            assert isinstance(exc, HookRelayError)


class TestSpecificErrors:
    """Tests for the specialised exceptions."""

    def test_validation_error(self):
        error = ValidationError("event", "unknown event")
        assert error.field == "event"
        assert str(error) == "event: unknown event"
        assert error.to_dict()["error"]["field"] == "event"

    def test_not_found_error(self):
        error = NotFoundError("webhook", "whk_1")
        assert str(error) == "webhook not found: whk_1"
        assert error.to_dict()["error"]["resource_id"] == "whk_1"
        assert error.code == "not_found"

    def test_storage_error_code(self):
        assert StorageError("down").code == "storage_error"

    def test_delivery_error(self):
        error = DeliveryError("HTTP 503 Service Unavailable", status_code=503)
        assert error.retryable is True
        assert error.to_dict() == {
            "error": {
                "code": "delivery_error",
                "status_code": 503,
                "retryable": True,
                "message": "HTTP 503 Service Unavailable",
            }
        }
