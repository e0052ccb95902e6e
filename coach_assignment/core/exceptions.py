"""Custom application exceptions.

Every exception carries the machine-readable ``error_code`` rendered in the
``error`` field of the response body.
"""


class AppException(Exception):
    """Base application exception."""

    error_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: str | None = None,
    ):
        """Initialize exception with message, status code and optional details."""
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class ValidationException(AppException):
    """Missing or malformed input."""

    error_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation error",
        status_code: int = 400,
        details: str | None = None,
    ):
        """Initialize with 400 status code unless overridden."""
        super().__init__(message, status_code=status_code, details=details)


class UnauthorizedException(ValidationException):
    """API key rejected by the auth service."""

    def __init__(self, message: str = "Invalid API Key", details: str | None = None):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401, details=details)


class NotFoundException(ValidationException):
    """Referenced resource does not exist."""

    def __init__(self, message: str = "Resource not found", details: str | None = None):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404, details=details)


class DownstreamException(AppException):
    """Auth service unreachable or returned an unreadable answer."""

    error_code = "DOWNSTREAM_ERROR"

    def __init__(self, message: str = "Downstream service failure", details: str | None = None):
        """Initialize with 502 status code."""
        super().__init__(message, status_code=502, details=details)


class NoSlotException(AppException):
    """No eligible coach, or a concurrent booking won the race."""

    error_code = "NO_SLOT_ERROR"

    def __init__(
        self,
        message: str = "No slot available at this time for any coach",
        details: str | None = None,
    ):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409, details=details)


class TransactionException(AppException):
    """Local transaction could not start or commit."""

    error_code = "TRANSACTION_ERROR"

    def __init__(self, message: str = "Unable to create appointment", details: str | None = None):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409, details=details)


class GatewayException(AppException):
    """CRM or calendar call failed after retries or was rejected."""

    error_code = "GATEWAY_ERROR"

    def __init__(
        self,
        message: str = "Gateway failure",
        details: str | None = None,
        status_code: int = 502,
    ):
        """Initialize with 502 status code unless overridden."""
        super().__init__(message, status_code=status_code, details=details)


class InternalException(AppException):
    """Unexpected local store failure."""

    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str = "Database failure", details: str | None = None):
        """Initialize with 500 status code."""
        super().__init__(message, status_code=500, details=details)


class RateLimitException(AppException):
    """Rate limit exceeded exception."""

    error_code = "RATE_LIMIT_ERROR"

    def __init__(self, message: str = "Rate limit exceeded", details: str | None = None):
        """Initialize with 429 status code."""
        super().__init__(message, status_code=429, details=details)
