"""Auth service client."""

import httpx
import structlog
from pydantic import ValidationError

from coach_assignment.clients.delivery import DeliveryError
from coach_assignment.schemas.downstream import ValidateResponse

logger = structlog.get_logger()


class AuthServiceError(DeliveryError):
    """Auth service unreachable or answered with an unreadable body."""


class AuthClient:
    """Validates API keys against the external auth service."""

    def __init__(self, http_client: httpx.AsyncClient):
        """Initialize with an httpx client pointed at the auth service."""
        self.http = http_client

    async def validate_key(self, api_key: str) -> ValidateResponse:
        """
        Validate an API key.

        The auth service answers 401/429 with a ``valid: false`` body, so the
        body is decoded whatever the status code.

        Args:
            api_key: Key supplied by the caller

        Returns:
            Validation result

        Raises:
            AuthServiceError: If the service cannot be reached or decoded
        """
        url = "/validate"
        try:
            response = await self.http.post(url, headers={"X-API-Key": api_key})
        except httpx.TransportError as e:
            raise AuthServiceError(f"auth service unreachable: {e!s}", url) from e

        try:
            result = ValidateResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise AuthServiceError(
                f"unexpected auth response ({response.status_code}): {e!s}", url
            ) from e

        logger.debug("api_key_validated", valid=result.valid, key_type=result.key_type)
        return result
