"""
Error taxonomy for push subscription and delivery.

Handlers in main.py translate these into HTTP responses.
"""


class PushError(Exception):
    """Base class for application errors."""

    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class AuthError(PushError):
    """Missing or invalid bearer credential."""

    status_code = 401
    public_message = "Not authenticated"


class ValidationError(PushError):
    """A required field is missing or malformed."""

    status_code = 400
    public_message = "Invalid request"

    def __init__(self, message: str | None = None, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotConfiguredError(PushError):
    """No signing identity is configured."""

    status_code = 500
    public_message = "Push notifications not configured"


class TransportError(PushError):
    """A single push delivery failed."""

    def __init__(self, message: str | None = None, status_code: int | None = None):
        super().__init__(message or "Push delivery failed")
        self.response_status = status_code


class PermanentDeliveryError(TransportError):
    """The push service reports the endpoint is gone."""


class TransientDeliveryError(TransportError):
    """Delivery failed for a reason that may succeed on retry."""


class ControllerStateError(RuntimeError):
    """A lifecycle event arrived in a state that cannot handle it."""
