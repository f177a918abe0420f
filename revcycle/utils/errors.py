"""
HTTP Exceptions
Maps revenue-cycle errors onto HTTP responses.
Source: https://fastapi.tiangolo.com/tutorial/handling-errors/
"""

from typing import Any

from fastapi import HTTPException, status

from revcycle.services.exceptions import (
    ClaimNotFoundError,
    ClaimsServiceError,
    ClaimValidationError,
    ConcurrentModificationError,
    InvalidTransitionError,
    PayerRejection,
    ReconciliationConflict,
    TransportFailure,
)


class NotFoundError(HTTPException):
    """Raised when resource not found"""

    def __init__(self, detail: Any = "Resource not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
        )


class UnprocessableError(HTTPException):
    """Raised when validation or payer rejection blocks an operation"""

    def __init__(self, detail: Any = "Validation error"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
        )


class ConflictError(HTTPException):
    """Raised when a transition or reconciliation conflicts with claim state"""

    def __init__(self, detail: Any = "Resource conflict"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


class UpstreamError(HTTPException):
    """Raised when the clearinghouse could not be reached"""

    def __init__(self, detail: Any = "Upstream service unavailable"):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail,
        )


class ServerError(HTTPException):
    """Raised when an operation aborts to protect data integrity"""

    def __init__(self, detail: Any = "Internal error"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
        )


def http_error(error: ClaimsServiceError) -> HTTPException:
    """Translate a revenue-cycle error into its HTTP response."""
    detail = error.to_detail()
    if isinstance(error, ClaimNotFoundError):
        return NotFoundError(detail)
    if isinstance(error, (ClaimValidationError, PayerRejection)):
        return UnprocessableError(detail)
    if isinstance(error, (InvalidTransitionError, ConcurrentModificationError, ReconciliationConflict)):
        return ConflictError(detail)
    if isinstance(error, TransportFailure):
        return UpstreamError(detail)
    return ServerError(detail)
