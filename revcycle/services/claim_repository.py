"""
Claim Repository.

Persistence access for claims, their event log and the remittance ledger.
The repository never decides status; it stores what the claim lifecycle
service hands it inside the caller's transaction.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from revcycle.core.enums import ClaimStatus, RevenueCycleEventType
from revcycle.models import (
    AppliedRemittance,
    Claim,
    RemittanceBatchRecord,
    RevenueCycleEvent,
)
from revcycle.models.base import utcnow

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class ClaimRepository:
    """Claim, event and remittance-ledger access bound to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # =========================================================================
    # Claim Number Generation
    # =========================================================================

    async def next_claim_number(self, prefix: str = "CLM", year: Optional[int] = None) -> str:
        """
        Generate the next claim number for the year.

        Format: {PREFIX}-{YEAR}-{SEQUENCE:06d}
        Example: CLM-2026-000001
        """
        year = year or datetime.now(timezone.utc).year
        result = await self.session.execute(
            select(func.max(Claim.claim_number)).where(
                Claim.claim_number.like(f"{prefix}-{year}-%")
            )
        )
        max_number = result.scalar_one_or_none()

        next_seq = 1
        if max_number:
            try:
                next_seq = int(max_number.split("-")[-1]) + 1
            except (ValueError, IndexError):
                next_seq = 1
        return f"{prefix}-{year}-{next_seq:06d}"

    # =========================================================================
    # Claims
    # =========================================================================

    async def add(self, claim: Claim) -> Claim:
        self.session.add(claim)
        await self.session.flush()
        return claim

    async def get(self, claim_id: int) -> Optional[Claim]:
        result = await self.session.execute(select(Claim).where(Claim.id == claim_id))
        return result.scalar_one_or_none()

    async def get_by_control_number(self, control_number: str) -> Optional[Claim]:
        result = await self.session.execute(
            select(Claim).where(Claim.control_number == control_number)
        )
        return result.scalar_one_or_none()

    async def list_claims(
        self,
        status: Optional[ClaimStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Claim]:
        query = select(Claim)
        if status:
            query = query.where(Claim.status == status)
        query = query.order_by(Claim.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def summary(self) -> dict[str, Any]:
        """
        Aggregate counts and money by status.

        Sums are taken in Python over exact decimals; ``outstanding`` excludes
        cancelled claims.
        """
        result = await self.session.execute(
            select(Claim.status, Claim.total_charge, Claim.total_paid)
        )

        by_status: dict[str, int] = {status.value: 0 for status in ClaimStatus}
        total_claims = 0
        total_charges = ZERO
        total_paid = ZERO
        outstanding = ZERO

        for status, charge, paid in result.all():
            by_status[status.value] += 1
            total_claims += 1
            total_charges += charge
            total_paid += paid
            if status != ClaimStatus.CANCELLED:
                outstanding += charge - paid

        return {
            "total_claims": total_claims,
            "by_status": by_status,
            "total_charges": total_charges,
            "total_paid": total_paid,
            "outstanding": outstanding,
        }

    def touch(self, claim: Claim) -> None:
        """Mark the claim row dirty so its version is bumped on flush."""
        claim.updated_at = utcnow()

    # =========================================================================
    # Event Log
    # =========================================================================

    def append_event(
        self,
        claim: Claim,
        event_type: RevenueCycleEventType,
        old_status: Optional[ClaimStatus],
        new_status: Optional[ClaimStatus],
        details: Optional[dict[str, Any]] = None,
        actor: Optional[str] = None,
    ) -> RevenueCycleEvent:
        """Append the next event in the claim's sequence."""
        sequence = max((e.sequence for e in claim.events), default=0) + 1
        event = RevenueCycleEvent(
            sequence=sequence,
            event_type=event_type,
            old_status=old_status,
            new_status=new_status,
            details=details or {},
            actor=actor,
        )
        claim.events.append(event)
        return event

    # =========================================================================
    # Remittance Ledger
    # =========================================================================

    async def get_applied_remittance(
        self, batch_id: str, control_number: str
    ) -> Optional[AppliedRemittance]:
        result = await self.session.execute(
            select(AppliedRemittance).where(
                AppliedRemittance.batch_id == batch_id,
                AppliedRemittance.control_number == control_number,
            )
        )
        return result.scalar_one_or_none()

    def record_applied_remittance(
        self,
        batch_id: str,
        control_number: str,
        claim_id: int,
        outcome: dict[str, Any],
    ) -> AppliedRemittance:
        record = AppliedRemittance(
            batch_id=batch_id,
            control_number=control_number,
            claim_id=claim_id,
            outcome=outcome,
        )
        self.session.add(record)
        return record

    async def get_batch(self, batch_id: str) -> Optional[RemittanceBatchRecord]:
        result = await self.session.execute(
            select(RemittanceBatchRecord).where(RemittanceBatchRecord.batch_id == batch_id)
        )
        return result.scalar_one_or_none()

    async def save_batch(self, record: RemittanceBatchRecord) -> RemittanceBatchRecord:
        """Store a batch header unless one with the same batch id exists."""
        existing = await self.get_batch(record.batch_id)
        if existing is not None:
            return existing
        self.session.add(record)
        await self.session.flush()
        return record

    async def list_batches(self, skip: int = 0, limit: int = 100) -> list[RemittanceBatchRecord]:
        result = await self.session.execute(
            select(RemittanceBatchRecord)
            .order_by(RemittanceBatchRecord.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())
