"""Deal engine error taxonomy and its HTTP error-mapping seam.

Every expected outcome a caller can observe is a ``DealEngineError``
subclass carrying a stable ``code`` and the HTTP status the transport layer
should answer with. ``InternalError`` wraps anything unexpected.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DealEngineError(Exception):
    """Base class for all errors raised by the deal engine."""

    code: str = "error"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class AuthorizationError(DealEngineError):
    """Actor is missing or lacks the role/ownership the operation needs."""

    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "forbidden"):
        super().__init__(message)


class NotFoundError(DealEngineError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: Any = None):
        self.resource = resource
        self.resource_id = resource_id
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} {resource_id} not found"
        super().__init__(message)


class ValidationError(DealEngineError):
    """Field-level input problem; ``details`` maps field name to reason."""

    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, details: dict[str, Any], message: str = "validation failed"):
        super().__init__(message, details)


class StateConflictError(DealEngineError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class InvalidTransitionError(StateConflictError):
    """Raised when a deal transition is not allowed."""

    code = "invalid_transition"

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid transition: {current} -> {target}",
            {"current_status": str(current), "target_status": str(target)},
        )


class PriceMismatchError(StateConflictError):
    code = "price_mismatch"

    def __init__(self, requested: int, actual: int):
        self.requested = requested
        self.actual = actual
        super().__init__(
            "Price does not match the channel's ad format",
            {"price_nano_ton": requested},
        )


class ChannelNotListedError(StateConflictError):
    code = "channel_not_listed"

    def __init__(self, channel_external_id: int):
        self.channel_external_id = channel_external_id
        super().__init__(f"Channel {channel_external_id} is not listed")


class InternalError(DealEngineError):
    """Unexpected persistence or collaborator failure, cause kept in __cause__."""

    code = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, operation: str, cause: BaseException | None = None):
        self.operation = operation
        message = operation if cause is None else f"{operation}: {cause}"
        super().__init__(message)


def error_payload(exc: DealEngineError) -> dict[str, Any]:
    """Render an error the way callers see it; internal detail never leaks."""
    message = "internal error" if isinstance(exc, InternalError) else exc.message
    payload: dict[str, Any] = {"error": exc.code, "message": message}
    if exc.details:
        payload["details"] = exc.details
    return payload


def install_error_handlers(app: FastAPI) -> None:
    """Map every ``DealEngineError`` raised by a route to a JSON response."""

    @app.exception_handler(DealEngineError)
    async def deal_engine_error_handler(request: Request, exc: DealEngineError):
        if exc.status_code >= 500:
            logger.error("Deal engine failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=error_payload(exc))
