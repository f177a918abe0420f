"""
Claim Models for the Revenue-Cycle Engine.

Claim, its ordered service lines and its append-only revenue-cycle event log.
Claims are never hard-deleted and events are never rewritten; both rules are
enforced with mapper event guards below.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from revcycle.core.enums import ClaimStatus, ClaimType, RevenueCycleEventType
from revcycle.models.base import Base, Money, TimeStampedModel, utcnow

ZERO = Decimal("0.00")


def _enum_values(enum_cls: type) -> list[str]:
    return [member.value for member in enum_cls]


class Claim(Base, TimeStampedModel):
    """
    Insurance claim for one billable encounter.

    ``status`` is written only by the claim lifecycle service. Financial
    totals are derived from the lines (charge) or from reconciliation
    (allowed, paid, patient responsibility).
    """

    __tablename__ = "claims"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    claim_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True,
        comment="Human-readable claim number (e.g., CLM-2026-000001)",
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Optimistic concurrency version",
    )

    claim_type: Mapped[ClaimType] = mapped_column(
        Enum(ClaimType, native_enum=False, length=20, values_callable=_enum_values),
        default=ClaimType.PROFESSIONAL,
        nullable=False,
    )
    status: Mapped[ClaimStatus] = mapped_column(
        Enum(ClaimStatus, native_enum=False, length=20, values_callable=_enum_values),
        default=ClaimStatus.DRAFT,
        nullable=False,
        index=True,
    )

    # Parties
    patient_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    patient_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    provider_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    provider_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Insurance (all null for self-pay)
    payer_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    payer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    member_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    policy_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    group_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Clinical context
    diagnosis_codes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    place_of_service: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    date_of_service: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Financial summary
    total_charge: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    total_allowed: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    total_paid: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    patient_responsibility: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)

    # Last scrub outcome (informational; status is authoritative)
    scrub_passed: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    scrub_result: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    scrub_content_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    scrubbed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Submission bookkeeping
    control_number: Mapped[Optional[str]] = mapped_column(
        String(30),
        unique=True,
        nullable=True,
        index=True,
        comment="Patient control number sent to the payer (remittance correlation key)",
    )
    submission_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gateway_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    payer_claim_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payer_status: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    last_status_check_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    lines: Mapped[list["ClaimLine"]] = relationship(
        back_populates="claim",
        cascade="all, delete-orphan",
        order_by="ClaimLine.line_number",
        lazy="selectin",
    )
    events: Mapped[list["RevenueCycleEvent"]] = relationship(
        back_populates="claim",
        cascade="save-update, merge",
        order_by="RevenueCycleEvent.sequence",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_claims_status_date", "status", "date_of_service"),
    )

    def __repr__(self) -> str:
        return f"<Claim(id={self.id}, number='{self.claim_number}', status='{self.status}')>"

    @property
    def is_self_pay(self) -> bool:
        return not self.payer_id

    @property
    def line_count(self) -> int:
        return len(self.lines) if self.lines else 0

    @property
    def outstanding(self) -> Decimal:
        """Charge not yet covered by payer payments."""
        return (self.total_charge or ZERO) - (self.total_paid or ZERO)

    def calculate_total_charge(self) -> Decimal:
        """Sum of charge x units across lines."""
        return sum(
            (line.charge_amount * line.units for line in self.lines),
            ZERO,
        )


class ClaimLine(Base):
    """Single billed service on a claim."""

    __tablename__ = "claim_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    claim_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("claims.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    procedure_code: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    modifier: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    units: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    charge_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    allowed_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    paid_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    diagnosis_pointers: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)

    claim: Mapped["Claim"] = relationship(back_populates="lines")

    __table_args__ = (
        UniqueConstraint("claim_id", "line_number", name="uq_claim_lines_claim_line"),
    )

    @property
    def line_charge(self) -> Decimal:
        return self.charge_amount * self.units

    def __repr__(self) -> str:
        return f"<ClaimLine(claim_id={self.claim_id}, line={self.line_number}, code='{self.procedure_code}')>"


class RevenueCycleEvent(Base):
    """
    Immutable audit record on a claim.

    ``new_status`` is set only for status transitions; informational events
    (status checks, line edits, failed scrubs) leave it null.
    """

    __tablename__ = "revenue_cycle_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    claim_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("claims.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[RevenueCycleEventType] = mapped_column(
        Enum(RevenueCycleEventType, native_enum=False, length=30, values_callable=_enum_values),
        nullable=False,
    )
    old_status: Mapped[Optional[ClaimStatus]] = mapped_column(
        Enum(ClaimStatus, native_enum=False, length=20, values_callable=_enum_values),
        nullable=True,
    )
    new_status: Mapped[Optional[ClaimStatus]] = mapped_column(
        Enum(ClaimStatus, native_enum=False, length=20, values_callable=_enum_values),
        nullable=True,
    )
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    actor: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    claim: Mapped["Claim"] = relationship(back_populates="events")

    __table_args__ = (
        UniqueConstraint("claim_id", "sequence", name="uq_revenue_cycle_events_claim_seq"),
    )

    @property
    def is_transition(self) -> bool:
        return self.new_status is not None

    def __repr__(self) -> str:
        return (
            f"<RevenueCycleEvent(claim_id={self.claim_id}, seq={self.sequence}, "
            f"type='{self.event_type}', {self.old_status} -> {self.new_status})>"
        )


# =============================================================================
# Retention guards
# =============================================================================


@event.listens_for(Claim, "before_delete")
def _reject_claim_delete(mapper, connection, target: Claim) -> None:
    raise PermissionError(
        f"Claim {target.claim_number} cannot be deleted; cancel it instead"
    )


@event.listens_for(RevenueCycleEvent, "before_update")
def _reject_event_update(mapper, connection, target: RevenueCycleEvent) -> None:
    raise PermissionError("Revenue-cycle events are append-only")


@event.listens_for(RevenueCycleEvent, "before_delete")
def _reject_event_delete(mapper, connection, target: RevenueCycleEvent) -> None:
    raise PermissionError("Revenue-cycle events are append-only")
