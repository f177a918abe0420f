"""
Remittance Reconciliation Service.

Applies a payer remittance (835-equivalent) back onto the claims it covers:
- Resolve each remitted claim by patient control number
- Sum service-line payments and adjustments by group code
- Reject contradictions per claim; the rest of the batch continues
- Transition the claim through the lifecycle service (paid / denied)

Each (batch, claim) pair is applied at most once; repeating a batch returns
the recorded outcomes flagged as replayed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from revcycle.core.config import ClaimsSettings
from revcycle.core.enums import (
    AdjustmentGroup,
    ClaimStatus,
    PaymentMethod,
    ReconciliationStatus,
    RemittanceClaimStatus,
)
from revcycle.models import Claim, RemittanceBatchRecord
from revcycle.services.claim_lifecycle import (
    ClaimLifecycleService,
    LineRemittance,
    RemittancePlan,
)
from revcycle.services.exceptions import (
    BalanceInvariantViolation,
    ClaimNotFoundError,
    ConcurrentModificationError,
    InvalidTransitionError,
    ReconciliationConflict,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

# Claim Adjustment Reason Codes (CARC) most often seen on professional claims
CARC_DESCRIPTIONS: dict[str, str] = {
    "1": "Deductible amount",
    "2": "Coinsurance amount",
    "3": "Co-payment amount",
    "16": "Claim/service lacks information needed for adjudication",
    "18": "Exact duplicate claim/service",
    "22": "Care may be covered by another payer per coordination of benefits",
    "27": "Expenses incurred after coverage terminated",
    "29": "The time limit for filing has expired",
    "45": "Charge exceeds fee schedule/maximum allowable",
    "50": "Non-covered service: not deemed a medical necessity by the payer",
    "96": "Non-covered charge(s)",
    "97": "Payment is included in the allowance for another service",
    "109": "Claim/service not covered by this payer/contractor",
    "119": "Benefit maximum for this time period has been reached",
    "197": "Precertification/authorization/notification absent",
    "204": "Service not covered under the patient's current benefit plan",
    "253": "Sequestration - reduction in federal payment",
}


def describe_reason(reason_code: str) -> str:
    """CARC description, or a generic label for codes outside the table."""
    return CARC_DESCRIPTIONS.get(reason_code, f"Adjustment reason {reason_code}")


# =============================================================================
# Remittance Input
# =============================================================================


@dataclass
class Adjustment:
    """Claim or service adjustment (CAS)."""

    group_code: AdjustmentGroup
    reason_code: str
    amount: Decimal
    description: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "group_code": self.group_code.value,
            "reason_code": self.reason_code,
            "amount": str(self.amount),
            "description": self.description or describe_reason(self.reason_code),
        }


@dataclass
class ServicePayment:
    """Service line payment (Loop 2110)."""

    procedure_code: str
    charge_amount: Decimal
    paid_amount: Decimal
    units: int = 1
    allowed_amount: Optional[Decimal] = None
    modifier: Optional[str] = None
    adjustments: list[Adjustment] = field(default_factory=list)


@dataclass
class RemittedClaim:
    """Claim-level payment information (Loop 2100)."""

    patient_control_number: str
    claim_status: RemittanceClaimStatus
    charge_amount: Decimal
    paid_amount: Decimal
    patient_responsibility: Decimal = ZERO
    payer_claim_number: Optional[str] = None
    adjustments: list[Adjustment] = field(default_factory=list)
    service_payments: list[ServicePayment] = field(default_factory=list)

    def all_adjustments(self) -> list[Adjustment]:
        adjustments = list(self.adjustments)
        for service in self.service_payments:
            adjustments.extend(service.adjustments)
        return adjustments


@dataclass
class RemittanceBatch:
    """One payer payment advice covering one or more claims."""

    batch_id: str
    check_number: str
    payment_amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.ACH
    payment_date: Optional[date] = None
    payer_id: Optional[str] = None
    payer_name: Optional[str] = None
    claims: list[RemittedClaim] = field(default_factory=list)


# =============================================================================
# Outcome
# =============================================================================


@dataclass
class ReconciliationOutcome:
    """Per-claim result of applying a remittance."""

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
    adjustments: list[dict[str, Any]] = field(default_factory=list)
    replayed: bool = False

    @property
    def applied(self) -> bool:
        return self.status == ReconciliationStatus.APPLIED

    @classmethod
    def from_dict(cls, data: dict[str, Any], replayed: bool = False) -> "ReconciliationOutcome":
        def _money(key: str) -> Optional[Decimal]:
            value = data.get(key)
            return Decimal(value) if value is not None else None

        new_status = data.get("new_status")
        return cls(
            control_number=data["control_number"],
            status=ReconciliationStatus(data["status"]),
            message=data.get("message", ""),
            claim_id=data.get("claim_id"),
            claim_number=data.get("claim_number"),
            new_status=ClaimStatus(new_status) if new_status else None,
            paid_amount=_money("paid_amount") or ZERO,
            patient_responsibility_applied=_money("patient_responsibility_applied") or ZERO,
            contractual_adjustment=_money("contractual_adjustment") or ZERO,
            total_paid=_money("total_paid"),
            patient_responsibility=_money("patient_responsibility"),
            adjustments=list(data.get("adjustments", [])),
            replayed=replayed,
        )


# =============================================================================
# Reconciliation Service
# =============================================================================


class RemittanceReconciliationService:
    """
    Reconciles remittance batches against claims.

    Claims in a batch are reconciled concurrently up to
    ``RECONCILIATION_CONCURRENCY``; each runs in its own transaction so a
    failure on one claim never affects the others.
    """

    def __init__(
        self,
        lifecycle: ClaimLifecycleService,
        settings: Optional[ClaimsSettings] = None,
    ):
        self.lifecycle = lifecycle
        self.settings = settings or lifecycle.settings

    async def apply_remittance_batch(
        self,
        batch: RemittanceBatch,
        actor: Optional[str] = None,
    ) -> list[ReconciliationOutcome]:
        """
        Apply every remitted claim in a batch.

        Args:
            batch: Remittance batch
            actor: Who applied the batch

        Returns:
            One outcome per remitted claim, in batch order
        """
        await self._store_header(batch)

        remitted_total = sum((c.paid_amount for c in batch.claims), ZERO)
        if remitted_total != batch.payment_amount:
            logger.warning(
                f"Remittance {batch.batch_id}: payment {batch.payment_amount} "
                f"differs from sum of claim payments {remitted_total}"
            )

        semaphore = asyncio.Semaphore(self.settings.RECONCILIATION_CONCURRENCY)

        async def _bounded(remitted: RemittedClaim) -> ReconciliationOutcome:
            async with semaphore:
                return await self._reconcile_claim(batch, remitted, actor)

        outcomes = await asyncio.gather(*(_bounded(c) for c in batch.claims))

        counts: dict[str, int] = {}
        for outcome in outcomes:
            counts[outcome.status.value] = counts.get(outcome.status.value, 0) + 1
        logger.info(f"Remittance {batch.batch_id} (check {batch.check_number}) reconciled: {counts}")
        return list(outcomes)

    async def list_batches(self, skip: int = 0, limit: int = 100) -> list[RemittanceBatchRecord]:
        async with self.lifecycle._unit_of_work() as repo:
            return await repo.list_batches(skip=skip, limit=limit)

    async def _store_header(self, batch: RemittanceBatch) -> None:
        async with self.lifecycle._unit_of_work() as repo:
            await repo.save_batch(RemittanceBatchRecord(
                batch_id=batch.batch_id,
                check_number=batch.check_number,
                payer_id=batch.payer_id,
                payer_name=batch.payer_name,
                payment_amount=batch.payment_amount,
                payment_method=batch.payment_method.value,
                payment_date=batch.payment_date,
                claim_count=len(batch.claims),
            ))

    async def _reconcile_claim(
        self,
        batch: RemittanceBatch,
        remitted: RemittedClaim,
        actor: Optional[str],
    ) -> ReconciliationOutcome:
        control_number = remitted.patient_control_number
        try:
            outcome, replayed = await self.lifecycle.apply_remittance(
                batch.batch_id,
                control_number,
                lambda claim: self.plan(claim, remitted, batch),
                actor=actor,
            )
            return ReconciliationOutcome.from_dict(outcome, replayed=replayed)
        except ClaimNotFoundError as e:
            logger.warning(f"Remittance {batch.batch_id}: {e}")
            return ReconciliationOutcome(
                control_number=control_number,
                status=ReconciliationStatus.UNMATCHED,
                message=str(e),
            )
        except (ReconciliationConflict, InvalidTransitionError) as e:
            logger.warning(f"Remittance {batch.batch_id} conflict on {control_number}: {e}")
            return ReconciliationOutcome(
                control_number=control_number,
                status=ReconciliationStatus.CONFLICT,
                message=str(e),
            )
        except (BalanceInvariantViolation, ConcurrentModificationError) as e:
            return ReconciliationOutcome(
                control_number=control_number,
                status=ReconciliationStatus.FAILED,
                message=str(e),
            )
        except Exception as e:
            logger.exception(f"Remittance {batch.batch_id}: unexpected error on {control_number}")
            return ReconciliationOutcome(
                control_number=control_number,
                status=ReconciliationStatus.FAILED,
                message=f"Unexpected error: {e}",
            )

    # =========================================================================
    # Planning
    # =========================================================================

    def plan(self, claim: Claim, remitted: RemittedClaim, batch: RemittanceBatch) -> RemittancePlan:
        """
        Compute the balance changes a remitted claim implies.

        Raises:
            ReconciliationConflict: The remittance contradicts the claim
        """
        cn = remitted.patient_control_number

        def conflict(message: str) -> ReconciliationConflict:
            return ReconciliationConflict(f"{claim.claim_number}: {message}", control_number=cn)

        if remitted.claim_status == RemittanceClaimStatus.REVERSAL:
            raise conflict("payment reversals must be posted manually")

        adjustments = remitted.all_adjustments()
        amounts = [remitted.paid_amount, remitted.patient_responsibility]
        amounts += [s.paid_amount for s in remitted.service_payments]
        amounts += [a.amount for a in adjustments]
        if any(amount < 0 for amount in amounts):
            raise conflict("negative amounts are not accepted")

        if remitted.service_payments:
            paid_delta = sum((s.paid_amount for s in remitted.service_payments), ZERO)
            if paid_delta != remitted.paid_amount:
                raise conflict(
                    f"claim paid amount {remitted.paid_amount} does not match "
                    f"service line payments {paid_delta}"
                )
        else:
            paid_delta = remitted.paid_amount

        by_group: dict[AdjustmentGroup, Decimal] = {}
        for adjustment in adjustments:
            by_group[adjustment.group_code] = by_group.get(adjustment.group_code, ZERO) + adjustment.amount

        if AdjustmentGroup.PR in by_group:
            pr_delta = by_group[AdjustmentGroup.PR]
        else:
            pr_delta = remitted.patient_responsibility
        co_total = by_group.get(AdjustmentGroup.CO, ZERO)

        remaining = claim.total_charge - claim.total_paid
        if paid_delta > remaining:
            raise conflict(f"payment {paid_delta} exceeds remaining charge {remaining}")
        if claim.total_paid + paid_delta + claim.patient_responsibility + pr_delta > claim.total_charge:
            raise conflict("payments plus patient responsibility exceed total charge")

        allowed_base = claim.total_allowed if claim.total_allowed is not None else claim.total_charge
        allowed_total = allowed_base - co_total
        if allowed_total < 0:
            raise conflict(f"contractual adjustments {co_total} exceed allowed amount {allowed_base}")

        denied = remitted.claim_status == RemittanceClaimStatus.DENIED or (
            paid_delta == 0 and pr_delta == 0
        )
        if remitted.claim_status == RemittanceClaimStatus.DENIED and paid_delta > 0:
            raise conflict("denied claim carries a payment")

        line_remittances = self._match_lines(claim, remitted, conflict)

        described = [a.to_dict() for a in adjustments]
        group_totals = {group.value: str(total) for group, total in sorted(by_group.items())}
        if remitted.charge_amount != claim.total_charge:
            logger.info(
                f"Remittance {batch.batch_id}: payer charge {remitted.charge_amount} "
                f"differs from claim {claim.claim_number} charge {claim.total_charge}"
            )

        target = ClaimStatus.DENIED if denied else ClaimStatus.PAID
        return RemittancePlan(
            target_status=target,
            paid_delta=paid_delta,
            patient_responsibility_delta=pr_delta,
            allowed_total=allowed_total,
            line_remittances=line_remittances,
            payer_claim_number=remitted.payer_claim_number,
            details={
                "check_number": batch.check_number,
                "payer_id": batch.payer_id,
                "claim_status_code": remitted.claim_status.value,
                "payer_charge_amount": str(remitted.charge_amount),
                "paid_amount": str(paid_delta),
                "adjustment_totals": group_totals,
                "adjustments": described,
            },
            outcome={
                "control_number": cn,
                "status": ReconciliationStatus.APPLIED.value,
                "message": f"Claim {target.value}",
                "paid_amount": str(paid_delta),
                "patient_responsibility_applied": str(pr_delta),
                "contractual_adjustment": str(co_total),
                "adjustments": described,
            },
        )

    @staticmethod
    def _match_lines(claim: Claim, remitted: RemittedClaim, conflict) -> dict[int, LineRemittance]:
        """Match service payments to claim lines by procedure code, in line order."""
        matched: dict[int, LineRemittance] = {}
        for service in remitted.service_payments:
            line = next(
                (
                    candidate
                    for candidate in claim.lines
                    if candidate.procedure_code == service.procedure_code
                    and candidate.line_number not in matched
                ),
                None,
            )
            if line is None:
                raise conflict(f"service line {service.procedure_code} does not match any claim line")
            if line.paid_amount + service.paid_amount > line.line_charge:
                raise conflict(
                    f"line {line.line_number} payment {service.paid_amount} exceeds "
                    f"remaining line charge {line.line_charge - line.paid_amount}"
                )

            allowed = service.allowed_amount
            if allowed is None:
                co = sum(
                    (a.amount for a in service.adjustments if a.group_code == AdjustmentGroup.CO),
                    ZERO,
                )
                allowed = line.line_charge - co if co else None
            matched[line.line_number] = LineRemittance(
                allowed_amount=allowed,
                paid_amount=service.paid_amount,
            )
        return matched
