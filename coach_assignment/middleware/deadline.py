"""Per-request deadline."""

import asyncio

import structlog
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from coach_assignment.middleware.error_handler import error_response

logger = structlog.get_logger()


class RequestDeadlineMiddleware:
    """
    Bounds the whole request, downstream calls and backoff sleeps included.

    On expiry the in-flight work is cancelled and, if nothing has been sent
    yet, the caller gets a 504 ``GATEWAY_ERROR`` body.
    """

    def __init__(self, app: ASGIApp, timeout_seconds: float):
        """Initialize middleware with the wrapped app and the deadline in seconds."""
        self.app = app
        self.timeout_seconds = timeout_seconds

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """
        Run the wrapped app under the deadline.

        Args:
            scope: ASGI connection scope
            receive: ASGI receive channel
            send: ASGI send channel
        """
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            async with asyncio.timeout(self.timeout_seconds):
                await self.app(scope, receive, send_wrapper)
        except TimeoutError:
            logger.error(
                "request_deadline_exceeded",
                path=scope.get("path"),
                timeout_seconds=self.timeout_seconds,
            )
            if response_started:
                raise
            response = error_response(
                504,
                "GATEWAY_ERROR",
                "Request deadline exceeded",
                f"request did not complete within {self.timeout_seconds}s",
            )
            await response(scope, receive, send)
