"""Error taxonomy for the moderation pipeline.

Caller-facing errors derive from ``PortalError`` and carry the HTTP status the
API layer reports. Delivery errors are raised by outbound transports and are
classified by the notification dispatcher; they never reach an HTTP caller.
"""

from typing import Optional


class PortalError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PortalError):
    status_code = 400


class UnauthorizedError(PortalError):
    status_code = 401


class ForbiddenError(PortalError):
    status_code = 403


class NotFoundError(PortalError):
    status_code = 404


class InvalidTransitionError(PortalError):
    status_code = 409


class DeliveryError(Exception):
    """Base for failures reported by an outbound transport."""

    retryable = False

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class TransientFailure(DeliveryError):
    retryable = True


class PermanentFailure(DeliveryError):
    retryable = False
