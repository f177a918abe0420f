"""
Claim Lifecycle Service.

Provides:
- Claim creation and line replacement
- Scrub, submission and status inquiry
- Operator overrides, appeal and cancellation
- Remittance application on behalf of the reconciliation engine

This is the only component that writes ``Claim.status``. Every transition is
resolved through the state machine and persisted together with its event in
one transaction. Mutations on one claim are serialized by a per-claim lock;
the ``version`` column catches writers in other processes.
"""

import asyncio
import logging
import weakref
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from revcycle.core.config import ClaimsSettings, get_claims_settings
from revcycle.core.enums import (
    ClaimStatus,
    ClaimType,
    PayerClaimStatus,
    RevenueCycleEventType,
)
from revcycle.gateways.clearinghouse_gateway import (
    ClearinghouseGateway,
    StatusResult,
    SubmissionResult,
)
from revcycle.models import Claim, ClaimLine
from revcycle.models.base import CENTS, utcnow
from revcycle.services.claim_repository import ClaimRepository
from revcycle.services.claim_state_machine import (
    MANUAL_TARGETS,
    ClaimStateMachine,
    Transition,
    TransitionEvent,
    get_claim_state_machine,
)
from revcycle.services.code_reference import CodeReferenceService
from revcycle.services.exceptions import (
    BalanceInvariantViolation,
    ClaimNotFoundError,
    ClaimValidationError,
    ConcurrentModificationError,
    InvalidTransitionError,
    PayerRejection,
    TransportFailure,
)
from revcycle.services.scrub_engine import (
    ClaimSnapshot,
    ScrubEngine,
    ScrubResult,
    compute_content_hash,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CLAIM_NUMBER_ATTEMPTS = 3
T = TypeVar("T")


# =============================================================================
# Data Transfer Objects
# =============================================================================


@dataclass
class ClaimLineInput:
    """One billed service supplied by the caller."""

    procedure_code: str
    charge_amount: Optional[Decimal] = None  # None -> code reference default charge
    units: int = 1
    description: Optional[str] = None
    modifier: Optional[str] = None
    diagnosis_pointers: list[int] = field(default_factory=list)


@dataclass
class ClaimInput:
    """Encounter data supplied by the billing collaborator."""

    patient_id: str
    diagnosis_codes: list[str] = field(default_factory=list)
    date_of_service: Optional[date] = None
    place_of_service: Optional[str] = None
    lines: list[ClaimLineInput] = field(default_factory=list)
    claim_type: ClaimType = ClaimType.PROFESSIONAL
    patient_name: Optional[str] = None
    provider_id: Optional[str] = None
    provider_name: Optional[str] = None
    payer_id: Optional[str] = None
    payer_name: Optional[str] = None
    member_id: Optional[str] = None
    policy_number: Optional[str] = None
    group_number: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class LineRemittance:
    """Amounts a remittance assigns to one claim line."""

    allowed_amount: Optional[Decimal]
    paid_amount: Decimal


@dataclass
class RemittancePlan:
    """
    Balance changes computed by the reconciliation engine for one claim.

    The lifecycle service applies it, runs the invariant checks and records
    ``outcome`` in the idempotence ledger in the same transaction.
    """

    target_status: ClaimStatus
    paid_delta: Decimal
    patient_responsibility_delta: Decimal
    allowed_total: Optional[Decimal]
    line_remittances: dict[int, LineRemittance] = field(default_factory=dict)
    payer_claim_number: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)
    outcome: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Claim Lifecycle Service
# =============================================================================


class ClaimLifecycleService:
    """
    Orchestrates the claim state machine.

    Each public operation opens its own unit of work through the session
    factory, so gateway calls never hold a database transaction open.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        scrub_engine: ScrubEngine,
        gateway: ClearinghouseGateway,
        settings: Optional[ClaimsSettings] = None,
        state_machine: Optional[ClaimStateMachine] = None,
    ):
        self.session_factory = session_factory
        self.scrub_engine = scrub_engine
        self.gateway = gateway
        self.settings = settings or get_claims_settings()
        self.state_machine = state_machine or get_claim_state_machine()
        # Entries vanish once no operation holds or awaits the lock
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()
        self._numbering_lock = asyncio.Lock()

    @property
    def code_reference(self) -> CodeReferenceService:
        return self.scrub_engine.code_reference

    # =========================================================================
    # Infrastructure
    # =========================================================================

    def _lock_for(self, claim_id: int) -> asyncio.Lock:
        lock = self._locks.get(claim_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[claim_id] = lock
        return lock

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncIterator[ClaimRepository]:
        """One transaction: commit on success, roll back on any error."""
        async with self.session_factory() as session:
            try:
                yield ClaimRepository(session)
                await session.commit()
            except StaleDataError as e:
                await session.rollback()
                raise ConcurrentModificationError(
                    "Claim was modified by another writer; reload and retry"
                ) from e
            except Exception:
                await session.rollback()
                raise

    async def _load(self, repo: ClaimRepository, claim_id: int) -> Claim:
        claim = await repo.get(claim_id)
        if claim is None:
            raise ClaimNotFoundError(f"Claim not found: {claim_id}")
        return claim

    async def _call_gateway(self, call: Awaitable[T], operation: str, claim_ref: str) -> T:
        """Bound a gateway call by the configured timeout."""
        timeout = self.settings.CLEARINGHOUSE_TIMEOUT_SECONDS
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Clearinghouse {operation} for {claim_ref} timed out after {timeout}s")
            raise TransportFailure(
                f"Clearinghouse {operation} timed out after {timeout}s",
                source=self.gateway.source.value,
            ) from e
        except TransportFailure as e:
            logger.warning(f"Clearinghouse {operation} for {claim_ref} failed: {e}")
            raise

    def _ensure_unchanged(self, claim: Claim, expected_version: int) -> None:
        if claim.version != expected_version:
            logger.warning(
                f"Claim {claim.claim_number} changed during gateway call "
                f"(version {expected_version} -> {claim.version})"
            )
            raise ConcurrentModificationError(
                f"Claim {claim.claim_number} was modified while the clearinghouse call was in flight"
            )

    # =========================================================================
    # Transitions and Invariants
    # =========================================================================

    def _check_invariants(self, claim: Claim) -> None:
        """Re-validate financial invariants before anything is committed."""
        violations = []

        expected_charge = claim.calculate_total_charge()
        if claim.total_charge != expected_charge:
            violations.append(
                f"total_charge {claim.total_charge} != sum of lines {expected_charge}"
            )
        if claim.total_paid > claim.total_charge:
            violations.append(
                f"total_paid {claim.total_paid} exceeds total_charge {claim.total_charge}"
            )
        if claim.total_paid < 0:
            violations.append(f"total_paid {claim.total_paid} is negative")
        if claim.patient_responsibility < 0:
            violations.append(f"patient_responsibility {claim.patient_responsibility} is negative")
        if claim.total_allowed is not None and claim.total_allowed < 0:
            violations.append(f"total_allowed {claim.total_allowed} is negative")
        if not claim.lines and claim.status not in (ClaimStatus.DRAFT, ClaimStatus.CANCELLED):
            violations.append("a claim with no lines cannot leave draft")
        for line in claim.lines:
            if line.units < 1:
                violations.append(f"line {line.line_number}: units must be at least 1")
            if line.charge_amount < 0:
                violations.append(f"line {line.line_number}: negative charge amount")
            if line.paid_amount > line.line_charge:
                violations.append(
                    f"line {line.line_number}: paid {line.paid_amount} exceeds charge {line.line_charge}"
                )

        if violations:
            logger.error(
                f"Balance invariant violation on claim {claim.claim_number}: {'; '.join(violations)}"
            )
            raise BalanceInvariantViolation(
                f"Claim {claim.claim_number} would violate financial invariants",
                violations=violations,
            )

    def _apply(
        self,
        repo: ClaimRepository,
        claim: Claim,
        transition: Transition,
        details: Optional[dict[str, Any]] = None,
        actor: Optional[str] = None,
    ) -> None:
        """Apply a resolved transition and append its event."""
        old_status = claim.status
        new_status = transition.to_status if transition.changes_status else None
        if new_status is not None:
            claim.status = new_status

        self._check_invariants(claim)
        repo.append_event(
            claim,
            transition.event_type,
            old_status,
            new_status,
            details=details,
            actor=actor,
        )
        repo.touch(claim)

        if new_status is not None:
            logger.info(
                f"Claim {claim.claim_number} transitioned: {old_status.value} -> "
                f"{new_status.value} (event: {transition.event.value})"
            )
        else:
            logger.info(
                f"Claim {claim.claim_number} {transition.event_type.value} "
                f"(status {old_status.value})"
            )

    def _resolve(self, claim: Claim, event: TransitionEvent, manual: bool = False) -> Transition:
        return self.state_machine.validate_transition(
            claim.claim_number, claim.status, event, manual=manual
        )

    # =========================================================================
    # Create / Line Mutation
    # =========================================================================

    def _build_lines(self, lines: list[ClaimLineInput]) -> list[ClaimLine]:
        errors = []
        built = []
        for number, item in enumerate(lines, start=1):
            code = self.code_reference.normalize(item.procedure_code)
            charge = item.charge_amount
            if charge is None:
                charge = self.code_reference.default_charge(code)
                if charge is None:
                    errors.append(f"line {number}: no default charge for procedure code '{code}'")
                    continue
            charge = Decimal(charge).quantize(CENTS)
            if charge < 0:
                errors.append(f"line {number}: charge amount cannot be negative")
            if item.units < 1:
                errors.append(f"line {number}: units must be at least 1")

            description = item.description
            if description is None:
                reference = self.code_reference.lookup_procedure(code)
                description = reference.description if reference else None

            built.append(ClaimLine(
                line_number=number,
                procedure_code=code,
                description=description,
                modifier=item.modifier,
                units=item.units,
                charge_amount=charge,
                paid_amount=ZERO,
                diagnosis_pointers=list(item.diagnosis_pointers),
            ))

        if errors:
            raise ClaimValidationError("Invalid claim lines", errors=errors)
        return built

    async def create_claim(self, data: ClaimInput, actor: Optional[str] = None) -> Claim:
        """
        Create a claim in DRAFT.

        Claim numbers are allocated under a service-wide lock; a number taken
        by another process in the meantime is detected by the unique
        constraint and allocation is retried.

        Args:
            data: Encounter data and lines
            actor: Who is creating the claim

        Returns:
            Created Claim with lines and its first event

        Raises:
            ClaimValidationError: A line is invalid
            ConcurrentModificationError: No free claim number after retrying
        """
        for attempt in range(1, CLAIM_NUMBER_ATTEMPTS + 1):
            try:
                async with self._numbering_lock:
                    claim = await self._insert_claim(data, actor)
                break
            except IntegrityError as e:
                if "claim_number" not in str(e):
                    raise
                logger.warning(f"Claim number collision on attempt {attempt}/{CLAIM_NUMBER_ATTEMPTS}")
                if attempt == CLAIM_NUMBER_ATTEMPTS:
                    raise ConcurrentModificationError(
                        "Could not allocate a claim number; retry the request"
                    ) from e

        logger.info(f"Created claim {claim.claim_number} (ID: {claim.id}, {len(claim.lines)} lines)")
        return claim

    async def _insert_claim(self, data: ClaimInput, actor: Optional[str]) -> Claim:
        lines = self._build_lines(data.lines)

        async with self._unit_of_work() as repo:
            claim_number = await repo.next_claim_number(self.settings.CLAIM_NUMBER_PREFIX)
            claim = Claim(
                claim_number=claim_number,
                claim_type=data.claim_type,
                status=ClaimStatus.DRAFT,
                patient_id=data.patient_id,
                patient_name=data.patient_name,
                provider_id=data.provider_id,
                provider_name=data.provider_name,
                payer_id=data.payer_id or None,
                payer_name=data.payer_name,
                member_id=data.member_id,
                policy_number=data.policy_number,
                group_number=data.group_number,
                diagnosis_codes=[self.code_reference.normalize(c) for c in data.diagnosis_codes],
                place_of_service=data.place_of_service,
                date_of_service=data.date_of_service,
                notes=data.notes,
                lines=lines,
                events=[],
                total_paid=ZERO,
                patient_responsibility=ZERO,
            )
            claim.total_charge = claim.calculate_total_charge()
            self._check_invariants(claim)
            repo.append_event(
                claim,
                RevenueCycleEventType.CREATED,
                None,
                ClaimStatus.DRAFT,
                details={"line_count": len(lines), "total_charge": str(claim.total_charge)},
                actor=actor,
            )
            await repo.add(claim)
        return claim

    async def replace_lines(
        self,
        claim_id: int,
        lines: list[ClaimLineInput],
        actor: Optional[str] = None,
    ) -> Claim:
        """
        Replace all lines of a pre-submission claim.

        Recomputes ``total_charge`` and invalidates the attached scrub result;
        the status field is left as it is, so submit must rescrub.
        """
        new_lines = self._build_lines(lines)

        async with self._lock_for(claim_id):
            async with self._unit_of_work() as repo:
                claim = await self._load(repo, claim_id)
                transition = self._resolve(claim, TransitionEvent.EDIT_LINES)
                previous_total = claim.total_charge

                claim.lines.clear()
                await repo.session.flush()
                claim.lines.extend(new_lines)

                claim.total_charge = claim.calculate_total_charge()
                claim.scrub_passed = None
                claim.scrub_result = None
                claim.scrub_content_hash = None
                claim.scrubbed_at = None

                self._apply(
                    repo,
                    claim,
                    transition,
                    details={
                        "line_count": len(new_lines),
                        "previous_total_charge": str(previous_total),
                        "total_charge": str(claim.total_charge),
                    },
                    actor=actor,
                )
        return claim

    # =========================================================================
    # Scrub
    # =========================================================================

    async def scrub_claim(
        self,
        claim_id: int,
        as_of: Optional[date] = None,
        actor: Optional[str] = None,
    ) -> ScrubResult:
        """
        Scrub a claim and record the result.

        A passing scrub moves DRAFT to VALIDATED; a failing one moves
        VALIDATED back to DRAFT (or leaves DRAFT as is). Either way the result
        is attached and an event is logged.
        """
        async with self._lock_for(claim_id):
            return await self._scrub(claim_id, as_of, actor)

    async def _scrub(self, claim_id: int, as_of: Optional[date], actor: Optional[str]) -> ScrubResult:
        async with self._unit_of_work() as repo:
            claim = await self._load(repo, claim_id)
            if claim.status not in (ClaimStatus.DRAFT, ClaimStatus.VALIDATED):
                self._resolve(claim, TransitionEvent.SCRUB_PASSED)

            result = self.scrub_engine.scrub(ClaimSnapshot.from_claim(claim), as_of=as_of)
            passed = result.passed and bool(claim.lines)
            event = TransitionEvent.SCRUB_PASSED if passed else TransitionEvent.SCRUB_FAILED
            transition = self._resolve(claim, event)

            claim.scrub_passed = passed
            claim.scrub_result = result.to_dict()
            claim.scrub_content_hash = result.content_hash
            claim.scrubbed_at = utcnow()

            self._apply(
                repo,
                claim,
                transition,
                details={
                    "passed": passed,
                    "content_hash": result.content_hash,
                    "errors": result.error_messages(),
                    "warning_count": result.warning_count,
                },
                actor=actor,
            )

        if not passed:
            logger.warning(
                f"Scrub failed for claim {claim.claim_number}: {'; '.join(result.error_messages())}"
            )
        return result

    # =========================================================================
    # Submission
    # =========================================================================

    async def submit_claim(
        self,
        claim_id: int,
        as_of: Optional[date] = None,
        actor: Optional[str] = None,
    ) -> SubmissionResult:
        """
        Submit a validated claim through the clearinghouse.

        A DRAFT claim is scrubbed first. Submission requires a passing scrub
        whose content hash still matches the claim.

        Raises:
            ClaimValidationError: Scrub failed or the scrub result is stale
            InvalidTransitionError: The claim is past submission
            TransportFailure: Gateway unreachable or timed out; claim unchanged
            PayerRejection: Payer rejected; claim moved back to DRAFT
        """
        async with self._lock_for(claim_id):
            async with self._unit_of_work() as repo:
                claim = await self._load(repo, claim_id)
                status = claim.status

            if status == ClaimStatus.DRAFT:
                result = await self._scrub(claim_id, as_of, actor)
                if not result.passed:
                    raise ClaimValidationError(
                        f"Claim {claim.claim_number} failed scrub",
                        errors=result.error_messages(),
                        scrub_result=result,
                    )

            async with self._unit_of_work() as repo:
                claim = await self._load(repo, claim_id)
                self._resolve(claim, TransitionEvent.SUBMIT)
                current_hash = compute_content_hash(ClaimSnapshot.from_claim(claim))
                if not claim.scrub_passed or claim.scrub_content_hash != current_hash:
                    logger.warning(f"Refusing to submit {claim.claim_number}: scrub result is stale")
                    raise ClaimValidationError(
                        f"Claim {claim.claim_number} changed since it was scrubbed; rescrub before submitting",
                        errors=["scrub result is stale"],
                    )
                control_number = (
                    claim.claim_number.replace("-", "") + f"{claim.submission_count + 1:02d}"
                )
                snapshot = ClaimSnapshot.from_claim(claim, control_number=control_number)
                version = claim.version

            submission = await self._call_gateway(
                self.gateway.submit(snapshot), "submit", claim.claim_number
            )

            async with self._unit_of_work() as repo:
                claim = await self._load(repo, claim_id)
                try:
                    self._ensure_unchanged(claim, version)
                except ConcurrentModificationError:
                    if submission.accepted:
                        logger.error(
                            f"Clearinghouse accepted claim {claim.claim_number} as {control_number} "
                            f"(reference {submission.gateway_reference}) but the submission was not "
                            f"recorded; reconcile with the clearinghouse before resubmitting"
                        )
                    raise
                claim.submission_count += 1
                details = submission.to_dict()

                if submission.accepted:
                    transition = self._resolve(claim, TransitionEvent.SUBMIT)
                    claim.control_number = control_number
                    claim.gateway_reference = submission.gateway_reference
                    claim.submitted_at = utcnow()
                else:
                    transition = self._resolve(claim, TransitionEvent.PAYER_REJECT)
                    claim.scrub_passed = None
                self._apply(repo, claim, transition, details=details, actor=actor)

        if not submission.accepted:
            logger.warning(
                f"Payer rejected claim {claim.claim_number}: "
                f"{'; '.join(submission.rejection_reasons) or submission.message}"
            )
            raise PayerRejection(
                submission.message or f"Claim {claim.claim_number} rejected by payer",
                reasons=submission.rejection_reasons,
                submission=submission,
            )
        return submission

    # =========================================================================
    # Status Inquiry
    # =========================================================================

    async def check_claim_status(self, claim_id: int, actor: Optional[str] = None) -> StatusResult:
        """
        Ask the payer about a submitted claim.

        Stores the raw status and payer claim number; a payer receipt
        acknowledges a SUBMITTED claim and an interim adjudication status
        moves an ACKNOWLEDGED claim to ADJUDICATED. A payer rejection sends a
        SUBMITTED or ACKNOWLEDGED claim back to DRAFT with the payer's reasons
        in the event. Balances never change.
        """
        async with self._lock_for(claim_id):
            async with self._unit_of_work() as repo:
                claim = await self._load(repo, claim_id)
                self._resolve(claim, TransitionEvent.STATUS_CHECK)
                snapshot = ClaimSnapshot.from_claim(claim)
                version = claim.version

            result = await self._call_gateway(
                self.gateway.check_status(snapshot), "status inquiry", claim.claim_number
            )

            async with self._unit_of_work() as repo:
                claim = await self._load(repo, claim_id)
                self._ensure_unchanged(claim, version)

                claim.payer_status = result.to_dict()
                claim.last_status_check_at = utcnow()
                if result.payer_claim_number:
                    claim.payer_claim_number = result.payer_claim_number

                details = result.to_dict()
                self._apply(
                    repo, claim, self._resolve(claim, TransitionEvent.STATUS_CHECK), details=details, actor=actor
                )

                rejected = result.overall_status == PayerClaimStatus.REJECTED and claim.status in (
                    ClaimStatus.SUBMITTED,
                    ClaimStatus.ACKNOWLEDGED,
                )
                if rejected:
                    # Resubmission must rescrub
                    claim.scrub_passed = None
                    self._apply(
                        repo,
                        claim,
                        self._resolve(claim, TransitionEvent.PAYER_REJECT),
                        details={**details, "accepted": False, "rejected_via": "status_inquiry"},
                        actor=actor,
                    )

                received = result.overall_status in (
                    PayerClaimStatus.ACKNOWLEDGED,
                    PayerClaimStatus.IN_ADJUDICATION,
                    PayerClaimStatus.FINALIZED,
                )
                if claim.status == ClaimStatus.SUBMITTED and received:
                    self._apply(
                        repo, claim, self._resolve(claim, TransitionEvent.ACKNOWLEDGE), details=details, actor=actor
                    )
                interim = result.overall_status in (
                    PayerClaimStatus.IN_ADJUDICATION,
                    PayerClaimStatus.FINALIZED,
                )
                if claim.status == ClaimStatus.ACKNOWLEDGED and interim:
                    self._apply(
                        repo, claim, self._resolve(claim, TransitionEvent.STATUS_POLL), details=details, actor=actor
                    )

        if rejected:
            logger.warning(
                f"Payer rejected claim {claim.claim_number} after submission: "
                f"{result.overall_description or 'no description'}"
            )
        return result

    # =========================================================================
    # Overrides, Appeal, Cancel
    # =========================================================================

    async def _transition(
        self,
        claim_id: int,
        event: TransitionEvent,
        details: dict[str, Any],
        actor: Optional[str],
        manual: bool = False,
    ) -> Claim:
        async with self._lock_for(claim_id):
            async with self._unit_of_work() as repo:
                claim = await self._load(repo, claim_id)
                transition = self._resolve(claim, event, manual=manual)
                self._apply(repo, claim, transition, details=details, actor=actor)
        return claim

    async def set_claim_status(
        self,
        claim_id: int,
        new_status: ClaimStatus,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Claim:
        """
        Operator override for acknowledge / paid / denied.

        Goes through the same state machine as automated transitions.
        """
        event = MANUAL_TARGETS.get(new_status)
        if event is None:
            logger.warning(f"Rejected manual status change of claim {claim_id} to {new_status.value}")
            raise InvalidTransitionError(
                f"Status {new_status.value} cannot be set manually",
                event=f"set_{new_status.value}",
            )
        return await self._transition(
            claim_id,
            event,
            {"manual": True, "requested_status": new_status.value, "reason": reason},
            actor,
            manual=True,
        )

    async def appeal_claim(
        self, claim_id: int, reason: Optional[str] = None, actor: Optional[str] = None
    ) -> Claim:
        """Appeal a denied claim."""
        return await self._transition(claim_id, TransitionEvent.APPEAL, {"reason": reason}, actor)

    async def cancel_claim(
        self, claim_id: int, reason: Optional[str] = None, actor: Optional[str] = None
    ) -> Claim:
        """Cancel a claim that has not been submitted."""
        return await self._transition(claim_id, TransitionEvent.CANCEL, {"reason": reason}, actor)

    # =========================================================================
    # Remittance
    # =========================================================================

    async def apply_remittance(
        self,
        batch_id: str,
        control_number: str,
        planner: Callable[[Claim], RemittancePlan],
        actor: Optional[str] = None,
    ) -> tuple[dict[str, Any], bool]:
        """
        Apply one remitted claim.

        Args:
            batch_id: Remittance batch identifier
            control_number: Patient control number from the remittance
            planner: Computes the balance changes from the current claim;
                raises ReconciliationConflict when the remittance contradicts it
            actor: Who applied the batch

        Returns:
            (outcome, replayed) where ``replayed`` is True when this
            (batch, claim) pair had already been applied

        Raises:
            ClaimNotFoundError: No claim carries the control number
        """
        async with self._unit_of_work() as repo:
            claim = await repo.get_by_control_number(control_number)
            if claim is None:
                raise ClaimNotFoundError(f"No claim with control number {control_number}")
            claim_id = claim.id

        async with self._lock_for(claim_id):
            async with self._unit_of_work() as repo:
                prior = await repo.get_applied_remittance(batch_id, control_number)
                if prior is not None:
                    logger.info(f"Remittance {batch_id}/{control_number} already applied; replaying outcome")
                    return prior.outcome, True

                claim = await self._load(repo, claim_id)
                plan = planner(claim)

                if claim.status == ClaimStatus.SUBMITTED:
                    self._apply(
                        repo,
                        claim,
                        self._resolve(claim, TransitionEvent.ACKNOWLEDGE),
                        details={"implied_by_remittance": batch_id},
                        actor=actor,
                    )

                event = (
                    TransitionEvent.RECONCILE_PAID
                    if plan.target_status == ClaimStatus.PAID
                    else TransitionEvent.RECONCILE_DENIED
                )
                transition = self._resolve(claim, event)

                claim.total_paid = (claim.total_paid + plan.paid_delta).quantize(CENTS)
                claim.patient_responsibility = (
                    claim.patient_responsibility + plan.patient_responsibility_delta
                ).quantize(CENTS)
                if plan.allowed_total is not None:
                    claim.total_allowed = plan.allowed_total.quantize(CENTS)
                for line in claim.lines:
                    remitted = plan.line_remittances.get(line.line_number)
                    if remitted is None:
                        continue
                    line.paid_amount = (line.paid_amount + remitted.paid_amount).quantize(CENTS)
                    if remitted.allowed_amount is not None:
                        line.allowed_amount = remitted.allowed_amount.quantize(CENTS)
                if plan.payer_claim_number:
                    claim.payer_claim_number = plan.payer_claim_number

                self._apply(
                    repo,
                    claim,
                    transition,
                    details={"batch_id": batch_id, "control_number": control_number, **plan.details},
                    actor=actor,
                )

                outcome = dict(plan.outcome)
                outcome.update({
                    "claim_id": claim.id,
                    "claim_number": claim.claim_number,
                    "new_status": claim.status.value,
                    "total_paid": str(claim.total_paid),
                    "patient_responsibility": str(claim.patient_responsibility),
                })
                repo.record_applied_remittance(batch_id, control_number, claim.id, outcome)

        return outcome, False

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def get_claim(self, claim_id: int) -> Claim:
        """Get a claim with its lines and event log."""
        async with self._unit_of_work() as repo:
            return await self._load(repo, claim_id)

    async def list_claims(
        self,
        status: Optional[ClaimStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Claim]:
        async with self._unit_of_work() as repo:
            return await repo.list_claims(status=status, skip=skip, limit=limit)

    async def get_claims_summary(self) -> dict[str, Any]:
        async with self._unit_of_work() as repo:
            return await repo.summary()

