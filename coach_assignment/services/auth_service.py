"""API key authorization via the external auth service."""

import structlog

from coach_assignment.clients.auth_client import AuthClient, AuthServiceError
from coach_assignment.core.exceptions import (
    DownstreamException,
    UnauthorizedException,
    ValidationException,
)
from coach_assignment.schemas.downstream import ValidateResponse

logger = structlog.get_logger()


class AuthService:
    """Gatekeeper run before every public operation."""

    def __init__(self, auth_client: AuthClient):
        """Initialize auth service with the auth client."""
        self.client = auth_client

    async def authorize(self, api_key: str | None) -> ValidateResponse:
        """
        Validate the caller's API key.

        Args:
            api_key: Value of the X-API-Key header

        Returns:
            Validation result for an accepted key

        Raises:
            ValidationException: If the header is missing
            DownstreamException: If the auth service cannot answer
            UnauthorizedException: If the key is rejected
        """
        if not api_key:
            raise ValidationException("X-API-Key Header is missing")

        try:
            result = await self.client.validate_key(api_key)
        except AuthServiceError as e:
            logger.error("auth_service_unavailable", error=e.message)
            raise DownstreamException("Downstream service failure", details=e.message)

        if not result.valid:
            raise UnauthorizedException("Invalid API Key", details=result.error)

        return result
