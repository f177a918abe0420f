"""
Revenue-Cycle Exceptions.

Only the claim lifecycle service decides state transitions in response to
these errors; the scrub engine, gateway and reconciliation engine report
structured outcomes and raise them for the lifecycle service to act on.
"""

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from revcycle.gateways.clearinghouse_gateway import SubmissionResult
    from revcycle.services.scrub_engine import ScrubResult


class ClaimsServiceError(Exception):
    """Base exception for revenue-cycle errors."""

    def to_detail(self) -> dict[str, Any]:
        """Structured payload for API responses."""
        return {"error": type(self).__name__, "message": str(self)}


class ClaimNotFoundError(ClaimsServiceError):
    """Raised when claim is not found."""

    pass


class ClaimValidationError(ClaimsServiceError):
    """Raised when a claim fails scrub or its scrub result is stale.

    Recoverable: fix the claim and rescrub.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[list[str]] = None,
        scrub_result: Optional["ScrubResult"] = None,
    ):
        super().__init__(message)
        self.errors = errors or []
        self.scrub_result = scrub_result

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["errors"] = self.errors
        if self.scrub_result is not None:
            detail["scrub_result"] = self.scrub_result.to_dict()
        return detail


class InvalidTransitionError(ClaimsServiceError):
    """Raised when a trigger is not legal from the claim's current status."""

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        event: Optional[str] = None,
        allowed_events: Optional[list[str]] = None,
    ):
        super().__init__(message)
        self.current_status = current_status
        self.event = event
        self.allowed_events = allowed_events or []

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["current_status"] = self.current_status
        detail["event"] = self.event
        detail["allowed_events"] = list(self.allowed_events)
        return detail


class BalanceInvariantViolation(ClaimsServiceError):
    """Raised when committing would leave claim financials inconsistent."""

    def __init__(self, message: str, violations: Optional[list[str]] = None):
        super().__init__(message)
        self.violations = violations or []

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["violations"] = self.violations
        return detail


class TransportFailure(ClaimsServiceError):
    """Raised when the clearinghouse could not be reached or answered garbage.

    Retryable; the claim is left in its pre-call status.
    """

    def __init__(self, message: str, source: Optional[str] = None, retryable: bool = True):
        super().__init__(message)
        self.source = source
        self.retryable = retryable

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["source"] = self.source
        detail["retryable"] = self.retryable
        return detail


class PayerRejection(ClaimsServiceError):
    """Raised when the payer rejected a submission.

    Terminal for this submission attempt; the claim must be corrected and
    rescrubbed before it is submitted again.
    """

    def __init__(
        self,
        message: str,
        reasons: Optional[list[str]] = None,
        submission: Optional["SubmissionResult"] = None,
    ):
        super().__init__(message)
        self.reasons = reasons or []
        self.submission = submission

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["reasons"] = self.reasons
        if self.submission is not None:
            detail["submission"] = self.submission.to_dict()
        return detail


class ReconciliationConflict(ClaimsServiceError):
    """Raised when a remittance contradicts the claim's totals."""

    def __init__(self, message: str, control_number: Optional[str] = None):
        super().__init__(message)
        self.control_number = control_number


class ConcurrentModificationError(ClaimsServiceError):
    """Raised when another writer changed the claim since it was read."""

    pass
