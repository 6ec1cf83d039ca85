from __future__ import annotations

"""Error taxonomy shared by the AI endpoints and the provisioning saga.

Each exception carries the HTTP status the API layer answers with and a
message that is safe to show to callers. Internal detail (backend status
codes, stack traces) is logged where the error is raised, never placed in
``message``.
"""

from fastapi import status


class NexusError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(NexusError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class InvalidInput(NexusError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class RateLimited(NexusError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Rate limit exceeded. Please try again in a moment."

    def __init__(self, message: str | None = None, retry_after_seconds: int | None = None) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class QuotaExhausted(NexusError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_message = "AI credits exhausted. Please add credits to continue."


class BackendUnavailable(NexusError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "AI service temporarily unavailable"


class ServiceUnavailable(NexusError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "AI service is not configured"


class ProvisioningError(NexusError):
    """A critical provisioning step failed and the saga was aborted."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Failed to create organization"


class NotFound(NexusError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"
