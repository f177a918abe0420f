"""
Claim Lifecycle State Machine.

Provides:
- The legal (status, trigger) table
- Transition validation
- Event-log replay

State Diagram:
    DRAFT -> VALIDATED | CANCELLED
    VALIDATED -> SUBMITTED | DRAFT | CANCELLED
    SUBMITTED -> ACKNOWLEDGED | DRAFT
    ACKNOWLEDGED -> ADJUDICATED | PAID | DENIED | DRAFT
    ADJUDICATED -> PAID | DENIED
    DENIED -> APPEALED
    APPEALED -> PAID | DENIED

Some triggers are legal without changing status (a failed scrub on a draft,
a status inquiry on a submitted claim); those are still listed so that the
table alone decides which operations a status admits.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from revcycle.core.enums import ClaimStatus, RevenueCycleEventType
from revcycle.services.exceptions import InvalidTransitionError

logger = logging.getLogger(__name__)


class TransitionEvent(str, Enum):
    """Triggers that drive the claim lifecycle."""

    EDIT_LINES = "edit_lines"
    SCRUB_PASSED = "scrub_passed"
    SCRUB_FAILED = "scrub_failed"
    SUBMIT = "submit"
    PAYER_REJECT = "payer_reject"
    ACKNOWLEDGE = "acknowledge"
    STATUS_CHECK = "status_check"
    STATUS_POLL = "status_poll"
    RECONCILE_PAID = "reconcile_paid"
    RECONCILE_DENIED = "reconcile_denied"
    MARK_PAID = "mark_paid"
    MARK_DENIED = "mark_denied"
    APPEAL = "appeal"
    CANCEL = "cancel"


@dataclass(frozen=True)
class Transition:
    """Represents a legal (status, trigger) pair."""

    from_status: ClaimStatus
    to_status: ClaimStatus
    event: TransitionEvent
    event_type: RevenueCycleEventType
    manual: bool = False  # Operator override path

    @property
    def changes_status(self) -> bool:
        return self.from_status != self.to_status


# =============================================================================
# Valid Transitions Definition
# =============================================================================


def _t(
    from_status: ClaimStatus,
    to_status: ClaimStatus,
    event: TransitionEvent,
    event_type: RevenueCycleEventType,
    manual: bool = False,
) -> Transition:
    return Transition(from_status, to_status, event, event_type, manual)


_S = ClaimStatus
_E = TransitionEvent
_R = RevenueCycleEventType

VALID_TRANSITIONS: list[Transition] = [
    # Line mutation (status unchanged, scrub result invalidated)
    _t(_S.DRAFT, _S.DRAFT, _E.EDIT_LINES, _R.LINES_REPLACED),
    _t(_S.VALIDATED, _S.VALIDATED, _E.EDIT_LINES, _R.LINES_REPLACED),

    # Scrub
    _t(_S.DRAFT, _S.VALIDATED, _E.SCRUB_PASSED, _R.SCRUBBED),
    _t(_S.DRAFT, _S.DRAFT, _E.SCRUB_FAILED, _R.SCRUBBED),
    _t(_S.VALIDATED, _S.VALIDATED, _E.SCRUB_PASSED, _R.SCRUBBED),
    _t(_S.VALIDATED, _S.DRAFT, _E.SCRUB_FAILED, _R.SCRUBBED),

    # Submission
    _t(_S.VALIDATED, _S.SUBMITTED, _E.SUBMIT, _R.SUBMITTED),
    _t(_S.VALIDATED, _S.DRAFT, _E.PAYER_REJECT, _R.PAYER_REJECTED),
    _t(_S.SUBMITTED, _S.DRAFT, _E.PAYER_REJECT, _R.PAYER_REJECTED),
    _t(_S.ACKNOWLEDGED, _S.DRAFT, _E.PAYER_REJECT, _R.PAYER_REJECTED),

    # Payer receipt
    _t(_S.SUBMITTED, _S.ACKNOWLEDGED, _E.ACKNOWLEDGE, _R.ACKNOWLEDGED),

    # Status inquiry
    _t(_S.SUBMITTED, _S.SUBMITTED, _E.STATUS_CHECK, _R.STATUS_CHECKED),
    _t(_S.ACKNOWLEDGED, _S.ACKNOWLEDGED, _E.STATUS_CHECK, _R.STATUS_CHECKED),
    _t(_S.ADJUDICATED, _S.ADJUDICATED, _E.STATUS_CHECK, _R.STATUS_CHECKED),
    _t(_S.APPEALED, _S.APPEALED, _E.STATUS_CHECK, _R.STATUS_CHECKED),
    _t(_S.ACKNOWLEDGED, _S.ADJUDICATED, _E.STATUS_POLL, _R.ADJUDICATED),

    # Remittance
    _t(_S.ACKNOWLEDGED, _S.PAID, _E.RECONCILE_PAID, _R.REMITTANCE_APPLIED),
    _t(_S.ACKNOWLEDGED, _S.DENIED, _E.RECONCILE_DENIED, _R.REMITTANCE_APPLIED),
    _t(_S.ADJUDICATED, _S.PAID, _E.RECONCILE_PAID, _R.REMITTANCE_APPLIED),
    _t(_S.ADJUDICATED, _S.DENIED, _E.RECONCILE_DENIED, _R.REMITTANCE_APPLIED),
    _t(_S.APPEALED, _S.PAID, _E.RECONCILE_PAID, _R.REMITTANCE_APPLIED),
    _t(_S.APPEALED, _S.DENIED, _E.RECONCILE_DENIED, _R.REMITTANCE_APPLIED),

    # Manual overrides
    _t(_S.SUBMITTED, _S.ACKNOWLEDGED, _E.ACKNOWLEDGE, _R.ACKNOWLEDGED, manual=True),
    _t(_S.ACKNOWLEDGED, _S.PAID, _E.MARK_PAID, _R.STATUS_OVERRIDE, manual=True),
    _t(_S.ACKNOWLEDGED, _S.DENIED, _E.MARK_DENIED, _R.STATUS_OVERRIDE, manual=True),
    _t(_S.ADJUDICATED, _S.PAID, _E.MARK_PAID, _R.STATUS_OVERRIDE, manual=True),
    _t(_S.ADJUDICATED, _S.DENIED, _E.MARK_DENIED, _R.STATUS_OVERRIDE, manual=True),

    # Appeal and cancellation
    _t(_S.DENIED, _S.APPEALED, _E.APPEAL, _R.APPEALED),
    _t(_S.DRAFT, _S.CANCELLED, _E.CANCEL, _R.CANCELLED),
    _t(_S.VALIDATED, _S.CANCELLED, _E.CANCEL, _R.CANCELLED),
]

# Target status an operator may request through the override path
MANUAL_TARGETS: dict[ClaimStatus, TransitionEvent] = {
    ClaimStatus.ACKNOWLEDGED: TransitionEvent.ACKNOWLEDGE,
    ClaimStatus.PAID: TransitionEvent.MARK_PAID,
    ClaimStatus.DENIED: TransitionEvent.MARK_DENIED,
}


# =============================================================================
# State Machine
# =============================================================================


class ClaimStateMachine:
    """
    State machine for claim status transitions.

    Pure lookup; the claim lifecycle service applies the transition and
    appends the event in the same transaction.
    """

    def __init__(self, transitions: Optional[list[Transition]] = None):
        """Initialize state machine with transition map."""
        self._transitions: dict[tuple[ClaimStatus, TransitionEvent], Transition] = {}
        self._manual: dict[tuple[ClaimStatus, TransitionEvent], Transition] = {}
        self._from_status_map: dict[ClaimStatus, list[Transition]] = {}

        for transition in transitions or VALID_TRANSITIONS:
            key = (transition.from_status, transition.event)
            if transition.manual:
                self._manual[key] = transition
            else:
                self._transitions[key] = transition
            self._from_status_map.setdefault(transition.from_status, []).append(transition)

    def get_valid_transitions(self, status: ClaimStatus) -> list[Transition]:
        """Get all valid transitions from a given status."""
        return self._from_status_map.get(status, [])

    def get_valid_events(self, status: ClaimStatus) -> list[TransitionEvent]:
        """Get all valid events for a given status."""
        return sorted({t.event for t in self.get_valid_transitions(status)}, key=lambda e: e.value)

    def get_next_statuses(self, status: ClaimStatus) -> list[ClaimStatus]:
        """Get all statuses reachable in one transition."""
        return sorted(
            {t.to_status for t in self.get_valid_transitions(status) if t.changes_status},
            key=lambda s: s.value,
        )

    def get_transition(
        self,
        from_status: ClaimStatus,
        event: TransitionEvent,
        manual: bool = False,
    ) -> Optional[Transition]:
        """Get transition for a status and event combination."""
        table = self._manual if manual else self._transitions
        return table.get((from_status, event))

    def validate_transition(
        self,
        claim_ref: str,
        current_status: ClaimStatus,
        event: TransitionEvent,
        manual: bool = False,
    ) -> Transition:
        """
        Resolve a trigger against the current status.

        Args:
            claim_ref: Claim number for messages and logs
            current_status: Status the claim is in now
            event: Requested trigger
            manual: Resolve against the operator override table

        Returns:
            The matching Transition

        Raises:
            InvalidTransitionError: The trigger is not legal from ``current_status``
        """
        transition = self.get_transition(current_status, event, manual=manual)
        if transition is None:
            message = (
                f"Invalid transition for claim {claim_ref}: "
                f"{current_status.value} + {event.value}"
            )
            logger.warning(message)
            raise InvalidTransitionError(
                message,
                current_status=current_status.value,
                event=event.value,
                allowed_events=[e.value for e in self.get_valid_events(current_status)],
            )
        return transition


# =============================================================================
# Event Replay
# =============================================================================


class _LoggedTransition(Protocol):
    old_status: Optional[ClaimStatus]
    new_status: Optional[ClaimStatus]


def replay_status(events: Iterable[_LoggedTransition]) -> ClaimStatus:
    """
    Rebuild a claim's status from its event log.

    Starts at DRAFT and follows every event that carries a new status.

    Raises:
        ValueError: An event's old status does not match the replayed status
    """
    status = ClaimStatus.DRAFT
    for event in events:
        if event.new_status is None:
            continue
        if event.old_status is not None and event.old_status != status:
            raise ValueError(
                f"Event log out of order: expected {status.value}, "
                f"found {event.old_status.value} -> {event.new_status.value}"
            )
        status = event.new_status
    return status


# =============================================================================
# Status Helpers
# =============================================================================


def get_status_display_name(status: ClaimStatus) -> str:
    """Get human-readable status name."""
    display_names = {
        ClaimStatus.DRAFT: "Draft",
        ClaimStatus.VALIDATED: "Ready to Submit",
        ClaimStatus.SUBMITTED: "Submitted",
        ClaimStatus.ACKNOWLEDGED: "Received by Payer",
        ClaimStatus.ADJUDICATED: "In Adjudication",
        ClaimStatus.PAID: "Paid",
        ClaimStatus.DENIED: "Denied",
        ClaimStatus.APPEALED: "Appealed",
        ClaimStatus.CANCELLED: "Cancelled",
    }
    return display_names.get(status, status.value)


# =============================================================================
# Singleton Instance
# =============================================================================


_state_machine: Optional[ClaimStateMachine] = None


def get_claim_state_machine() -> ClaimStateMachine:
    """Get singleton state machine instance."""
    global _state_machine
    if _state_machine is None:
        _state_machine = ClaimStateMachine()
    return _state_machine
