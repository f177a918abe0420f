"""
Unit tests for the claim lifecycle state machine.
"""

from types import SimpleNamespace

import pytest

from revcycle.core.enums import ClaimStatus, RevenueCycleEventType
from revcycle.services.claim_state_machine import (
    MANUAL_TARGETS,
    VALID_TRANSITIONS,
    ClaimStateMachine,
    TransitionEvent,
    get_claim_state_machine,
    get_status_display_name,
    replay_status,
)
from revcycle.services.exceptions import InvalidTransitionError

S = ClaimStatus
E = TransitionEvent


@pytest.fixture
def machine() -> ClaimStateMachine:
    return ClaimStateMachine()


@pytest.mark.unit
class TestTransitionTable:
    @pytest.mark.parametrize(
        "from_status,event,to_status",
        [
            (S.DRAFT, E.SCRUB_PASSED, S.VALIDATED),
            (S.DRAFT, E.SCRUB_FAILED, S.DRAFT),
            (S.VALIDATED, E.SCRUB_FAILED, S.DRAFT),
            (S.VALIDATED, E.SUBMIT, S.SUBMITTED),
            (S.VALIDATED, E.PAYER_REJECT, S.DRAFT),
            (S.SUBMITTED, E.ACKNOWLEDGE, S.ACKNOWLEDGED),
            (S.SUBMITTED, E.PAYER_REJECT, S.DRAFT),
            (S.ACKNOWLEDGED, E.PAYER_REJECT, S.DRAFT),
            (S.ACKNOWLEDGED, E.STATUS_POLL, S.ADJUDICATED),
            (S.ACKNOWLEDGED, E.RECONCILE_PAID, S.PAID),
            (S.ADJUDICATED, E.RECONCILE_DENIED, S.DENIED),
            (S.DENIED, E.APPEAL, S.APPEALED),
            (S.APPEALED, E.RECONCILE_PAID, S.PAID),
            (S.DRAFT, E.CANCEL, S.CANCELLED),
            (S.VALIDATED, E.CANCEL, S.CANCELLED),
        ],
    )
    def test_legal_transitions(self, machine, from_status, event, to_status):
        transition = machine.validate_transition("CLM-TEST", from_status, event)
        assert transition.to_status == to_status

    @pytest.mark.parametrize(
        "from_status,event",
        [
            (S.DRAFT, E.SUBMIT),
            (S.SUBMITTED, E.CANCEL),
            (S.SUBMITTED, E.RECONCILE_PAID),
            (S.ADJUDICATED, E.PAYER_REJECT),
            (S.PAID, E.APPEAL),
            (S.PAID, E.RECONCILE_PAID),
            (S.CANCELLED, E.SCRUB_PASSED),
            (S.DENIED, E.CANCEL),
            (S.APPEALED, E.APPEAL),
        ],
    )
    def test_illegal_transitions_raise(self, machine, from_status, event):
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.validate_transition("CLM-TEST", from_status, event)

        assert exc_info.value.current_status == from_status.value
        assert exc_info.value.event == event.value
        assert event.value not in exc_info.value.allowed_events

    def test_terminal_statuses_have_no_transitions(self, machine):
        assert machine.get_valid_transitions(S.PAID) == []
        assert machine.get_valid_transitions(S.CANCELLED) == []

    def test_status_check_does_not_change_status(self, machine):
        for status in (S.SUBMITTED, S.ACKNOWLEDGED, S.ADJUDICATED, S.APPEALED):
            transition = machine.validate_transition("CLM-TEST", status, E.STATUS_CHECK)
            assert transition.changes_status is False
            assert transition.event_type == RevenueCycleEventType.STATUS_CHECKED

    def test_no_duplicate_keys(self):
        keys = [(t.from_status, t.event, t.manual) for t in VALID_TRANSITIONS]
        assert len(keys) == len(set(keys))

    def test_next_statuses(self, machine):
        assert machine.get_next_statuses(S.ACKNOWLEDGED) == [S.ADJUDICATED, S.DENIED, S.DRAFT, S.PAID]
        assert machine.get_next_statuses(S.VALIDATED) == [S.CANCELLED, S.DRAFT, S.SUBMITTED]
        assert machine.get_next_statuses(S.PAID) == []

    def test_valid_events_for_draft(self, machine):
        assert machine.get_valid_events(S.DRAFT) == [
            E.CANCEL, E.EDIT_LINES, E.SCRUB_FAILED, E.SCRUB_PASSED,
        ]

    def test_error_lists_allowed_events(self, machine):
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.validate_transition("CLM-TEST", S.SUBMITTED, E.CANCEL)

        assert exc_info.value.allowed_events == [
            e.value for e in machine.get_valid_events(S.SUBMITTED)
        ]
        assert "payer_reject" in exc_info.value.allowed_events
        assert exc_info.value.to_detail()["allowed_events"] == exc_info.value.allowed_events


@pytest.mark.unit
class TestManualOverrides:
    def test_manual_paths_are_separate(self, machine):
        """MARK_PAID only resolves through the override table."""
        with pytest.raises(InvalidTransitionError):
            machine.validate_transition("CLM-TEST", S.ADJUDICATED, E.MARK_PAID)

        transition = machine.validate_transition("CLM-TEST", S.ADJUDICATED, E.MARK_PAID, manual=True)
        assert transition.to_status == S.PAID
        assert transition.event_type == RevenueCycleEventType.STATUS_OVERRIDE

    def test_manual_acknowledge(self, machine):
        transition = machine.validate_transition("CLM-TEST", S.SUBMITTED, E.ACKNOWLEDGE, manual=True)
        assert transition.to_status == S.ACKNOWLEDGED

    def test_cannot_skip_acknowledgement_manually(self, machine):
        with pytest.raises(InvalidTransitionError):
            machine.validate_transition("CLM-TEST", S.SUBMITTED, E.MARK_PAID, manual=True)

    def test_manual_targets(self):
        assert set(MANUAL_TARGETS) == {S.ACKNOWLEDGED, S.PAID, S.DENIED}


@pytest.mark.unit
class TestReplay:
    @staticmethod
    def event(old, new):
        return SimpleNamespace(old_status=old, new_status=new)

    def test_empty_log_is_draft(self):
        assert replay_status([]) == S.DRAFT

    def test_replay_skips_informational_events(self):
        events = [
            self.event(None, S.DRAFT),
            self.event(S.DRAFT, None),
            self.event(S.DRAFT, S.VALIDATED),
            self.event(S.VALIDATED, S.SUBMITTED),
            self.event(S.SUBMITTED, None),
            self.event(S.SUBMITTED, S.ACKNOWLEDGED),
        ]
        assert replay_status(events) == S.ACKNOWLEDGED

    def test_out_of_order_log_raises(self):
        events = [self.event(S.DRAFT, S.VALIDATED), self.event(S.SUBMITTED, S.ACKNOWLEDGED)]
        with pytest.raises(ValueError, match="out of order"):
            replay_status(events)


@pytest.mark.unit
class TestStatusHelpers:
    def test_display_name(self):
        assert get_status_display_name(S.VALIDATED) == "Ready to Submit"

    def test_singleton(self):
        assert get_claim_state_machine() is get_claim_state_machine()
