"""
Pydantic Schemas for Remittances.

Field names follow the 835 loops they carry: batch header (BPR/TRN),
claim payment (CLP), service payment (SVC) and adjustments (CAS).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from revcycle.core.enums import (
    AdjustmentGroup,
    ClaimStatus,
    IntegrationMode,
    PaymentMethod,
    ReconciliationStatus,
    RemittanceClaimStatus,
    SubmissionSource,
)
from revcycle.services.remittance_reconciliation import (
    Adjustment,
    ReconciliationOutcome,
    RemittanceBatch,
    RemittedClaim,
    ServicePayment,
)

ZERO = Decimal("0.00")


class AdjustmentIn(BaseModel):
    group_code: AdjustmentGroup
    reason_code: str = Field(..., min_length=1, max_length=5)
    amount: Decimal = Field(..., decimal_places=2)
    description: Optional[str] = None

    def to_domain(self) -> Adjustment:
        return Adjustment(
            group_code=self.group_code,
            reason_code=self.reason_code,
            amount=self.amount,
            description=self.description,
        )


class ServicePaymentIn(BaseModel):
    procedure_code: str = Field(..., min_length=1, max_length=20)
    charge_amount: Decimal = Field(..., decimal_places=2)
    paid_amount: Decimal = Field(..., decimal_places=2)
    units: int = Field(default=1, ge=1)
    allowed_amount: Optional[Decimal] = Field(None, decimal_places=2)
    modifier: Optional[str] = None
    adjustments: list[AdjustmentIn] = Field(default_factory=list)

    def to_domain(self) -> ServicePayment:
        return ServicePayment(
            procedure_code=self.procedure_code,
            charge_amount=self.charge_amount,
            paid_amount=self.paid_amount,
            units=self.units,
            allowed_amount=self.allowed_amount,
            modifier=self.modifier,
            adjustments=[a.to_domain() for a in self.adjustments],
        )


class RemittedClaimIn(BaseModel):
    """One claim payment (CLP) in a remittance."""

    patient_control_number: str = Field(..., min_length=1, max_length=30)
    claim_status: RemittanceClaimStatus
    charge_amount: Decimal = Field(..., decimal_places=2)
    paid_amount: Decimal = Field(..., decimal_places=2)
    patient_responsibility: Decimal = Field(default=ZERO, decimal_places=2)
    payer_claim_number: Optional[str] = Field(None, max_length=50)
    adjustments: list[AdjustmentIn] = Field(default_factory=list)
    service_lines: list[ServicePaymentIn] = Field(default_factory=list)

    def to_domain(self) -> RemittedClaim:
        return RemittedClaim(
            patient_control_number=self.patient_control_number,
            claim_status=self.claim_status,
            charge_amount=self.charge_amount,
            paid_amount=self.paid_amount,
            patient_responsibility=self.patient_responsibility,
            payer_claim_number=self.payer_claim_number,
            adjustments=[a.to_domain() for a in self.adjustments],
            service_payments=[s.to_domain() for s in self.service_lines],
        )


class RemittanceBatchIn(BaseModel):
    """Schema for a received payer remittance."""

    batch_id: str = Field(..., min_length=1, max_length=64)
    check_number: str = Field(..., min_length=1, max_length=50)
    payer_id: Optional[str] = Field(None, max_length=50)
    payer_name: Optional[str] = Field(None, max_length=200)
    payment_amount: Decimal = Field(..., ge=0, decimal_places=2)
    payment_method: PaymentMethod = PaymentMethod.ACH
    payment_date: Optional[date] = None
    claims: list[RemittedClaimIn] = Field(..., min_length=1)

    def to_domain(self) -> RemittanceBatch:
        return RemittanceBatch(
            batch_id=self.batch_id,
            check_number=self.check_number,
            payer_id=self.payer_id,
            payer_name=self.payer_name,
            payment_amount=self.payment_amount,
            payment_method=self.payment_method,
            payment_date=self.payment_date,
            claims=[c.to_domain() for c in self.claims],
        )


class ReconciliationOutcomeResponse(BaseModel):
    """Per-claim reconciliation result."""

    model_config = ConfigDict(from_attributes=True)

    control_number: str
    status: ReconciliationStatus
    message: str = ""
    claim_id: Optional[int] = None
    claim_number: Optional[str] = None
    new_status: Optional[ClaimStatus] = None
    paid_amount: Decimal = ZERO
    patient_responsibility_applied: Decimal = ZERO
    contractual_adjustment: Decimal = ZERO
    total_paid: Optional[Decimal] = None
    patient_responsibility: Optional[Decimal] = None
    adjustments: list[dict[str, Any]] = Field(default_factory=list)
    replayed: bool = False


class RemittanceApplyResponse(BaseModel):
    """Result of applying a remittance batch."""

    batch_id: str
    applied: int
    conflicts: int
    unmatched: int
    failed: int
    outcomes: list[ReconciliationOutcomeResponse]

    @classmethod
    def from_outcomes(
        cls, batch_id: str, outcomes: list[ReconciliationOutcome]
    ) -> "RemittanceApplyResponse":
        def count(status: ReconciliationStatus) -> int:
            return sum(1 for o in outcomes if o.status == status)

        return cls(
            batch_id=batch_id,
            applied=count(ReconciliationStatus.APPLIED),
            conflicts=count(ReconciliationStatus.CONFLICT),
            unmatched=count(ReconciliationStatus.UNMATCHED),
            failed=count(ReconciliationStatus.FAILED),
            outcomes=[ReconciliationOutcomeResponse.model_validate(o) for o in outcomes],
        )


class RemittanceBatchResponse(BaseModel):
    """Retained remittance header."""

    model_config = ConfigDict(from_attributes=True)

    batch_id: str
    check_number: str
    payer_id: Optional[str] = None
    payer_name: Optional[str] = None
    payment_amount: Decimal
    payment_method: PaymentMethod
    payment_date: Optional[date] = None
    claim_count: int
    received_at: datetime


class IntegrationStatusResponse(BaseModel):
    """Which clearinghouse transport is active."""

    mode: IntegrationMode
    source: SubmissionSource
    api_key_set: bool
    health: dict[str, Any]
