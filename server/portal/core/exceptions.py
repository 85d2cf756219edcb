"""Lifecycle exceptions following RFC 9457 Problem Details for HTTP APIs."""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

PROBLEM_BASE_URI = "https://portal.example.com/problems"


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    Every lifecycle error carries a machine-readable ``code`` and a
    ``retryable`` flag so callers know whether resubmitting makes sense.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = {"retryable": False, **(extensions or {})}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    @property
    def code(self) -> Optional[str]:
        return self.problem_details.get("code")

    @property
    def retryable(self) -> bool:
        return bool(self.problem_details.get("retryable"))


class ValidationError(ProblemDetailsException):
    """Missing or malformed input, raised before any write."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Any] = None,
        instance: Optional[str] = None,
    ):
        extensions: Dict[str, Any] = {"code": "VALIDATION_ERROR"}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/validation-error",
            instance=instance,
            extensions=extensions,
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "code": "NOT_FOUND",
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Base for requests that conflict with the current state of a resource."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        title: str = "Resource Conflict",
        type_slug: str = "resource-conflict",
        extensions: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=409,
            title=title,
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/{type_slug}",
            instance=instance,
            extensions=extensions,
        )


class DuplicateBookingError(ConflictError):
    """The user already holds an unpaid booking for the same destination or event."""

    def __init__(
        self,
        user_id: str,
        destination_id: Optional[str] = None,
        event_id: Optional[str] = None,
        existing_booking_id: Optional[str] = None,
    ):
        target = f"destination {destination_id}" if destination_id else f"event {event_id}"
        extensions: Dict[str, Any] = {
            "code": "DUPLICATE_BOOKING",
            "user_id": user_id,
        }
        if destination_id:
            extensions["destination_id"] = destination_id
        if event_id:
            extensions["event_id"] = event_id
        if existing_booking_id:
            extensions["existing_booking_id"] = existing_booking_id

        super().__init__(
            detail=f"User {user_id} already has an unpaid booking for {target}",
            title="Duplicate Booking",
            type_slug="duplicate-booking",
            extensions=extensions,
        )


class InvalidTransitionError(ConflictError):
    """A status change that the entity's state machine does not allow."""

    def __init__(self, entity: str, entity_id: str, current_status: str, target_status: str):
        super().__init__(
            detail=(
                f"Cannot move {entity} {entity_id} from '{current_status}' to '{target_status}'"
            ),
            title="Invalid Status Transition",
            type_slug="invalid-transition",
            extensions={
                "code": "INVALID_TRANSITION",
                "entity": entity,
                "entity_id": entity_id,
                "current_status": current_status,
                "target_status": target_status,
            },
        )
        self.current_status = current_status
        self.target_status = target_status


class ConcurrentModificationError(ConflictError):
    """The persisted state changed between the read and the conditional write."""

    def __init__(self, entity: str, entity_id: str, expected_status: Optional[str] = None,
                 detail: Optional[str] = None):
        extensions: Dict[str, Any] = {
            "code": "CONCURRENT_MODIFICATION",
            "entity": entity,
            "entity_id": entity_id,
        }
        if expected_status:
            extensions["expected_status"] = expected_status

        super().__init__(
            detail=detail or (
                f"{entity.capitalize()} {entity_id} was modified concurrently; "
                f"expected status '{expected_status}' no longer matches"
            ),
            title="Concurrent Modification",
            type_slug="concurrent-modification",
            extensions=extensions,
        )


class InvariantViolationError(ProblemDetailsException):
    """A caller error that would break a cross-entity invariant."""

    def __init__(self, detail: str, invariant: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            status_code=422,
            title="Invariant Violation",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/invariant-violation",
            extensions={
                "code": "INVARIANT_VIOLATION",
                "invariant": invariant,
                **(context or {}),
            },
        )


class TransientError(ProblemDetailsException):
    """Store or network failure; the only error a caller may retry."""

    def __init__(self, operation: str, detail: Optional[str] = None, retry_after: int = 1):
        super().__init__(
            status_code=503,
            title="Service Temporarily Unavailable",
            detail=detail or f"Store call '{operation}' failed",
            type_uri=f"{PROBLEM_BASE_URI}/transient",
            extensions={
                "code": "TRANSIENT",
                "retryable": True,
                "operation": operation,
                "retry_after_seconds": retry_after,
            },
            headers={"Retry-After": str(retry_after)},
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI body/query validation failures as Problem Details with violations."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "type": f"{PROBLEM_BASE_URI}/request-validation",
            "title": "Request Validation Failed",
            "status": 422,
            "detail": "The request body failed schema validation",
            "code": "REQUEST_VALIDATION",
            "retryable": False,
            "violations": violations,
        },
        media_type="application/problem+json",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    problem_details = {
        "type": f"{PROBLEM_BASE_URI}/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": str(uuid.uuid4()),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
        media_type="application/problem+json",
    )
