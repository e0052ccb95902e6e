"""Idempotent request delivery with bounded retry and exponential backoff."""

import asyncio
import random
from typing import Any, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

logger = structlog.get_logger()

ResponseT = TypeVar("ResponseT", bound=BaseModel)

IDEMPOTENCY_HEADER = "X-Idempotency-Key"


class DeliveryError(Exception):
    """Base class for failed downstream deliveries."""

    def __init__(self, message: str, url: str):
        """Initialize with a message and the target URL."""
        self.message = message
        self.url = url
        super().__init__(message)


class ClientRejectedError(DeliveryError):
    """Downstream answered with a definitive 4xx rejection."""

    def __init__(self, url: str, status_code: int, body: str):
        """Initialize with the rejected status and response body."""
        self.status_code = status_code
        self.body = body
        super().__init__(f"client error: {status_code}, body: {body}", url)


class RetriesExhaustedError(DeliveryError):
    """No successful exchange within the allowed attempts."""

    def __init__(
        self,
        url: str,
        attempts: int,
        last_error: Exception | None,
        last_status: int | None,
    ):
        """Initialize with the last transport error or server status seen."""
        self.attempts = attempts
        self.last_error = last_error
        self.last_status = last_status
        cause = str(last_error) if last_error else f"server error: {last_status}"
        super().__init__(f"giving up after {attempts} attempts: {cause}", url)


class ResponseDecodeError(DeliveryError):
    """A 2xx body did not match the expected response shape."""


def backoff_delay(base_delay: float, attempt: int) -> float:
    """
    Compute the sleep before the next attempt.

    ``base_delay * 2**attempt`` plus a jitter drawn uniformly from
    ``[0, sleep / 2)``.
    """
    sleep = base_delay * (2**attempt)
    return sleep + random.random() * (sleep / 2)


class DeliveryClient:
    """Sends requests with retry on transport errors and 5xx responses."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        max_attempts: int = 3,
        base_delay: float = 0.2,
    ):
        """
        Initialize delivery client.

        Args:
            http_client: Configured httpx client (base URL and timeout)
            max_attempts: Attempts before giving up
            base_delay: Backoff base in seconds
        """
        self.http = http_client
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    async def send(
        self,
        method: str,
        url: str,
        response_model: type[ResponseT],
        *,
        body: BaseModel | None = None,
        params: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
        max_attempts: int | None = None,
    ) -> ResponseT:
        """
        Deliver a request and decode the 2xx response.

        Args:
            method: HTTP method
            url: Target path or URL
            response_model: Expected response shape
            body: JSON body
            params: Query parameters
            idempotency_key: Sent as X-Idempotency-Key so the receiver can dedupe
            max_attempts: Per-call override of the attempt budget

        Returns:
            Decoded response

        Raises:
            ClientRejectedError: On a 4xx response (never retried)
            RetriesExhaustedError: When every attempt failed with a transport
                error or a 5xx response
            ResponseDecodeError: When a 2xx body cannot be decoded
        """
        attempts = max_attempts or self.max_attempts
        headers = {"Content-Type": "application/json"}
        if idempotency_key:
            headers[IDEMPOTENCY_HEADER] = idempotency_key
        payload = body.model_dump(mode="json") if body is not None else None

        last_error: Exception | None = None
        last_status: int | None = None

        for attempt in range(attempts):
            logger.debug("delivery_attempt", method=method, url=url, attempt=attempt)
            try:
                response = await self.http.request(
                    method,
                    url,
                    json=payload,
                    params=params,
                    headers=headers,
                )
            except httpx.TransportError as e:
                last_error = e
                logger.warning(
                    "delivery_transport_error",
                    url=url,
                    attempt=attempt,
                    error=str(e),
                )
            else:
                if response.status_code >= 500:
                    last_status = response.status_code
                    logger.warning(
                        "delivery_server_error",
                        url=url,
                        attempt=attempt,
                        status_code=response.status_code,
                    )
                elif response.status_code >= 300 or response.status_code < 200:
                    raise ClientRejectedError(url, response.status_code, response.text)
                else:
                    try:
                        decoded = response_model.model_validate_json(response.content)
                    except ValidationError as e:
                        raise ResponseDecodeError(f"failed to decode response: {e}", url) from e
                    logger.debug("delivery_succeeded", url=url, attempt=attempt)
                    return decoded

            if attempt + 1 < attempts:
                delay = backoff_delay(self.base_delay, attempt)
                logger.info("delivery_backoff", url=url, attempt=attempt, delay=delay)
                await asyncio.sleep(delay)

        raise RetriesExhaustedError(url, attempts, last_error, last_status)
