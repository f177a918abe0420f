"""
Pydantic Schemas for Claims.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from revcycle.core.enums import (
    ClaimStatus,
    ClaimType,
    PayerClaimStatus,
    RevenueCycleEventType,
    SubmissionSource,
)
from revcycle.services.claim_lifecycle import ClaimInput, ClaimLineInput
from revcycle.services.claim_state_machine import get_claim_state_machine, get_status_display_name


# =============================================================================
# Line Schemas
# =============================================================================


class ClaimLineCreate(BaseModel):
    """Schema for one billed service."""

    procedure_code: str = Field(..., min_length=1, max_length=20, description="CPT/HCPCS code")
    charge_amount: Optional[Decimal] = Field(
        None,
        ge=0,
        decimal_places=2,
        description="Unit charge; defaults to the reference charge for the code",
    )
    units: int = Field(default=1, ge=1, description="Service units")
    description: Optional[str] = Field(None, max_length=500)
    modifier: Optional[str] = Field(None, max_length=10)
    diagnosis_pointers: list[int] = Field(
        default_factory=list,
        description="1-based positions in the claim diagnosis list this line is billed against",
    )

    def to_input(self) -> ClaimLineInput:
        return ClaimLineInput(
            procedure_code=self.procedure_code,
            charge_amount=self.charge_amount,
            units=self.units,
            description=self.description,
            modifier=self.modifier,
            diagnosis_pointers=list(self.diagnosis_pointers),
        )


class ClaimLinesReplace(BaseModel):
    """Schema for replacing the lines of a pre-submission claim."""

    lines: list[ClaimLineCreate] = Field(default_factory=list)


class ClaimLineResponse(BaseModel):
    """Schema for claim line response."""

    model_config = ConfigDict(from_attributes=True)

    line_number: int
    procedure_code: str
    description: Optional[str] = None
    modifier: Optional[str] = None
    units: int
    charge_amount: Decimal
    allowed_amount: Optional[Decimal] = None
    paid_amount: Decimal
    diagnosis_pointers: list[int] = Field(default_factory=list)


# =============================================================================
# Claim Schemas
# =============================================================================


class ClaimCreate(BaseModel):
    """
    Schema for creating a claim.

    Insurance fields are optional: a claim without ``payer_id`` is self-pay.
    """

    patient_id: str = Field(..., min_length=1, max_length=64)
    patient_name: Optional[str] = Field(None, max_length=200)
    provider_id: Optional[str] = Field(None, max_length=64)
    provider_name: Optional[str] = Field(None, max_length=200)
    claim_type: ClaimType = ClaimType.PROFESSIONAL

    payer_id: Optional[str] = Field(None, max_length=50)
    payer_name: Optional[str] = Field(None, max_length=200)
    member_id: Optional[str] = Field(None, max_length=50)
    policy_number: Optional[str] = Field(None, max_length=50)
    group_number: Optional[str] = Field(None, max_length=50)

    diagnosis_codes: list[str] = Field(default_factory=list, description="ICD-10-CM codes, primary first")
    date_of_service: Optional[date] = None
    place_of_service: Optional[str] = Field(None, max_length=2)
    notes: Optional[str] = None

    lines: list[ClaimLineCreate] = Field(default_factory=list)

    @field_validator("diagnosis_codes")
    @classmethod
    def strip_blank_codes(cls, v: list[str]) -> list[str]:
        return [code.strip() for code in v if code and code.strip()]

    def to_input(self) -> ClaimInput:
        return ClaimInput(
            patient_id=self.patient_id,
            patient_name=self.patient_name,
            provider_id=self.provider_id,
            provider_name=self.provider_name,
            claim_type=self.claim_type,
            payer_id=self.payer_id,
            payer_name=self.payer_name,
            member_id=self.member_id,
            policy_number=self.policy_number,
            group_number=self.group_number,
            diagnosis_codes=list(self.diagnosis_codes),
            date_of_service=self.date_of_service,
            place_of_service=self.place_of_service,
            notes=self.notes,
            lines=[line.to_input() for line in self.lines],
        )


class ClaimStatusUpdate(BaseModel):
    """Schema for an operator status override."""

    status: ClaimStatus
    reason: Optional[str] = Field(None, max_length=500)


class ClaimActionRequest(BaseModel):
    """Schema for appeal / cancel requests."""

    reason: Optional[str] = Field(None, max_length=500)


class RevenueCycleEventResponse(BaseModel):
    """Schema for one entry of the claim's event log."""

    model_config = ConfigDict(from_attributes=True)

    sequence: int
    event_type: RevenueCycleEventType
    old_status: Optional[ClaimStatus] = None
    new_status: Optional[ClaimStatus] = None
    details: dict[str, Any] = Field(default_factory=dict)
    actor: Optional[str] = None
    created_at: datetime


class ClaimListItem(BaseModel):
    """Condensed claim for list views."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    claim_number: str
    status: ClaimStatus
    status_display: str = ""
    patient_id: str
    patient_name: Optional[str] = None
    payer_id: Optional[str] = None
    payer_name: Optional[str] = None
    date_of_service: Optional[date] = None
    total_charge: Decimal
    total_paid: Decimal
    patient_responsibility: Decimal
    control_number: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def fill_status_display(self) -> "ClaimListItem":
        self.status_display = get_status_display_name(self.status)
        return self


class ClaimResponse(ClaimListItem):
    """Full claim with lines and event log."""

    version: int
    claim_type: ClaimType
    provider_id: Optional[str] = None
    provider_name: Optional[str] = None
    member_id: Optional[str] = None
    policy_number: Optional[str] = None
    group_number: Optional[str] = None
    diagnosis_codes: list[str] = Field(default_factory=list)
    place_of_service: Optional[str] = None
    notes: Optional[str] = None
    total_allowed: Optional[Decimal] = None

    scrub_passed: Optional[bool] = None
    scrub_result: Optional[dict[str, Any]] = None
    scrubbed_at: Optional[datetime] = None

    submission_count: int
    gateway_reference: Optional[str] = None
    submitted_at: Optional[datetime] = None
    payer_claim_number: Optional[str] = None
    payer_status: Optional[dict[str, Any]] = None
    last_status_check_at: Optional[datetime] = None

    lines: list[ClaimLineResponse] = Field(default_factory=list)
    events: list[RevenueCycleEventResponse] = Field(default_factory=list)
    next_statuses: list[ClaimStatus] = Field(default_factory=list, description="Statuses reachable in one step")

    @model_validator(mode="after")
    def fill_next_statuses(self) -> "ClaimResponse":
        self.next_statuses = get_claim_state_machine().get_next_statuses(self.status)
        return self


class ClaimsSummaryResponse(BaseModel):
    """Aggregate counts and money across all claims."""

    total_claims: int
    by_status: dict[str, int]
    total_charges: Decimal
    total_paid: Decimal
    outstanding: Decimal


# =============================================================================
# Scrub / Clearinghouse Schemas
# =============================================================================


class EditResponse(BaseModel):
    code: str
    category: str
    severity: str
    message: str
    field: Optional[str] = None
    line_number: Optional[int] = None


class ScrubResultResponse(BaseModel):
    """Schema for a scrub outcome."""

    passed: bool
    content_hash: str
    errors: list[EditResponse] = Field(default_factory=list)
    warnings: list[EditResponse] = Field(default_factory=list)


class SubmissionResponse(BaseModel):
    """Schema for an accepted submission."""

    accepted: bool
    source: SubmissionSource
    control_number: Optional[str] = None
    gateway_reference: Optional[str] = None
    message: str = ""
    rejection_reasons: list[str] = Field(default_factory=list)


class CategoryStatusResponse(BaseModel):
    category: str
    category_description: str
    status_code: str
    status_description: str


class StatusInquiryResponse(BaseModel):
    """Schema for a payer status inquiry result."""

    overall_status: PayerClaimStatus
    overall_description: str = ""
    category_statuses: list[CategoryStatusResponse] = Field(default_factory=list)
    payer_claim_number: Optional[str] = None
    source: SubmissionSource
