"""Domain exceptions.

Every business-rule failure raised by the lifecycle, permission and
reporting services is a ``TaskflowError`` carrying one of the fixed codes
below. Batch operations record these per item; anything else is treated
as an infrastructure failure and aborts the request.
"""

from fastapi import HTTPException


class TaskflowError(Exception):
    """Base exception for domain errors."""

    code: str = "TASKFLOW_ERROR"
    status_code: int = 400

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class InvalidTransitionError(TaskflowError):
    """Requested status change is not in the transition table."""

    code = "INVALID_TRANSITION"
    status_code = 400

    def __init__(self, current_status: str, requested_status: str):
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Cannot move task from '{current_status}' to '{requested_status}'"
        )


class ForbiddenError(TaskflowError):
    """Actor is not authorized for the operation."""

    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(TaskflowError):
    """Referenced entity does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: object | None = None):
        self.resource = resource
        self.resource_id = resource_id
        if resource_id is None:
            message = f"{resource} not found"
        else:
            message = f"{resource} {resource_id} not found"
        super().__init__(message)


class ConflictError(TaskflowError):
    """A concurrent mutation changed the row first."""

    code = "CONFLICT"
    status_code = 409


class ValidationError(TaskflowError):
    """Malformed input."""

    code = "VALIDATION_ERROR"
    status_code = 422


class ScopeMismatchError(TaskflowError):
    """Entity lies outside the workspace the request addressed."""

    code = "SCOPE_MISMATCH"
    status_code = 400


def handle_domain_error(error: TaskflowError) -> HTTPException:
    """Convert domain errors to HTTP exceptions."""
    return HTTPException(
        status_code=error.status_code,
        detail={"code": error.code, "message": error.message},
    )
