"""
Remittance Models.

Remittance batches are not first-class entities: the header is retained for
display and audit, and each applied (batch, claim) pair is recorded so a
repeated application can return the prior outcome instead of double-counting.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from revcycle.models.base import Base, Money, utcnow


class RemittanceBatchRecord(Base):
    """Header of a received payer remittance (835)."""

    __tablename__ = "remittance_batches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    check_number: Mapped[str] = mapped_column(String(50), nullable=False)
    payer_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    payment_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    claim_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<RemittanceBatchRecord(batch_id='{self.batch_id}', check='{self.check_number}')>"


class AppliedRemittance(Base):
    """Idempotence ledger: one row per successfully applied (batch, claim)."""

    __tablename__ = "applied_remittances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    control_number: Mapped[str] = mapped_column(String(30), nullable=False)
    claim_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("claims.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    outcome: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("batch_id", "control_number", name="uq_applied_remittances_batch_claim"),
    )
