"""
Core Enumerations for the Revenue-Cycle Claims Engine.
"""

from enum import Enum


# =============================================================================
# Integration Mode Enums
# =============================================================================


class IntegrationMode(str, Enum):
    """System integration mode."""

    DEMO = "demo"  # Demo mode: simulated clearinghouse
    LIVE = "live"  # Live mode: real clearinghouse transport


class ProviderStatus(str, Enum):
    """Health status of an external transport."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class SubmissionSource(str, Enum):
    """Which gateway implementation produced a result."""

    LIVE = "live"
    SIMULATED = "simulated"


# =============================================================================
# Claim Processing Enums
# =============================================================================


class ClaimType(str, Enum):
    """Types of insurance claims."""

    PROFESSIONAL = "professional"  # CMS-1500 / 837P style claims
    INSTITUTIONAL = "institutional"  # UB-04 / 837I style claims


class ClaimStatus(str, Enum):
    """Claim lifecycle status.

    State Machine Transitions:
    DRAFT -> VALIDATED | CANCELLED
    VALIDATED -> SUBMITTED | DRAFT | CANCELLED
    SUBMITTED -> ACKNOWLEDGED
    ACKNOWLEDGED -> ADJUDICATED | PAID | DENIED
    ADJUDICATED -> PAID | DENIED
    DENIED -> APPEALED
    APPEALED -> PAID | DENIED
    """

    DRAFT = "draft"
    VALIDATED = "validated"
    SUBMITTED = "submitted"
    ACKNOWLEDGED = "acknowledged"
    ADJUDICATED = "adjudicated"
    PAID = "paid"
    DENIED = "denied"
    APPEALED = "appealed"
    CANCELLED = "cancelled"


class RevenueCycleEventType(str, Enum):
    """Types of entries in a claim's revenue-cycle event log."""

    CREATED = "created"
    LINES_REPLACED = "lines_replaced"
    SCRUBBED = "scrubbed"
    SUBMITTED = "submitted"
    PAYER_REJECTED = "payer_rejected"
    ACKNOWLEDGED = "acknowledged"
    STATUS_CHECKED = "status_checked"
    ADJUDICATED = "adjudicated"
    REMITTANCE_APPLIED = "remittance_applied"
    STATUS_OVERRIDE = "status_override"
    APPEALED = "appealed"
    CANCELLED = "cancelled"


# =============================================================================
# Scrub Enums
# =============================================================================


class EditSeverity(str, Enum):
    """Severity level of a scrub edit."""

    ERROR = "error"  # Blocks validation
    WARNING = "warning"  # Advisory only


class EditCategory(str, Enum):
    """Category of a scrub edit."""

    STRUCTURAL = "structural"
    CODING = "coding"
    ADMINISTRATIVE = "administrative"
    PAYER = "payer"


# =============================================================================
# Payer Status Enums
# =============================================================================


class PayerClaimStatus(str, Enum):
    """Overall status returned by a payer status inquiry (276/277)."""

    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    IN_ADJUDICATION = "in_adjudication"
    FINALIZED = "finalized"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"


# =============================================================================
# Remittance Enums
# =============================================================================


class AdjustmentGroup(str, Enum):
    """Claim adjustment group code (835 CAS01)."""

    CO = "CO"  # Contractual Obligations
    CR = "CR"  # Corrections and Reversals
    OA = "OA"  # Other Adjustments
    PI = "PI"  # Payor Initiated Reductions
    PR = "PR"  # Patient Responsibility


class RemittanceClaimStatus(str, Enum):
    """Claim status code (835 CLP02)."""

    PROCESSED_PRIMARY = "1"
    PROCESSED_SECONDARY = "2"
    PROCESSED_TERTIARY = "3"
    DENIED = "4"
    REVERSAL = "22"


class PaymentMethod(str, Enum):
    """Remittance payment method (835 BPR04)."""

    ACH = "ACH"  # ACH transfer
    CHECK = "CHK"  # Paper check
    NON_PAYMENT = "NON"  # Zero-pay remittance


class ReconciliationStatus(str, Enum):
    """Per-claim result of applying a remittance."""

    APPLIED = "applied"
    CONFLICT = "conflict"
    UNMATCHED = "unmatched"
    FAILED = "failed"
