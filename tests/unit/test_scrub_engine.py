"""
Unit tests for the scrub engine and its rule catalog.
"""

from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

import pytest

from revcycle.core.enums import EditCategory, EditSeverity
from revcycle.services.scrub_engine import (
    NO_LINES_MESSAGE,
    ClaimSnapshot,
    LineSnapshot,
    ScrubEngine,
    ScrubResult,
    ScrubRuleCatalog,
    compute_content_hash,
)

AS_OF = date(2026, 10, 1)


def office_visit(**overrides) -> ClaimSnapshot:
    data = {
        "patient_id": "PAT-1001",
        "diagnosis_codes": ("Z00.00", "Z23"),
        "lines": (
            LineSnapshot(1, "99213", Decimal("120.00")),
            LineSnapshot(2, "90658", Decimal("35.00")),
        ),
        "place_of_service": "11",
        "date_of_service": date(2026, 9, 14),
        "claim_number": "CLM-2026-000001",
    }
    data.update(overrides)
    return ClaimSnapshot(**data)


def codes(edits) -> list[str]:
    return [edit.code for edit in edits]


@pytest.mark.unit
class TestPassingClaims:
    def test_self_pay_office_visit_passes(self, scrub_engine):
        """Two known lines, no payer, valid diagnoses: no errors."""
        result = scrub_engine.scrub(office_visit(), as_of=AS_OF)

        assert result.passed is True
        assert result.errors == []
        assert result.content_hash == compute_content_hash(office_visit())

    def test_insured_claim_with_required_fields_passes(self, scrub_engine):
        snapshot = office_visit(payer_id="AETNA", member_id="W123456789", policy_number="POL-77")
        assert scrub_engine.scrub(snapshot, as_of=AS_OF).passed is True

    def test_medicare_only_needs_member_id(self, scrub_engine):
        snapshot = office_visit(payer_id="MEDICARE", member_id="1EG4TE5MK73")
        assert scrub_engine.scrub(snapshot, as_of=AS_OF).passed is True


@pytest.mark.unit
class TestStructuralEdits:
    def test_no_lines(self, scrub_engine):
        result = scrub_engine.scrub(office_visit(lines=()), as_of=AS_OF)

        assert result.passed is False
        edit = result.errors[0]
        assert edit.code == "STRUCT_NO_LINES"
        assert edit.category == EditCategory.STRUCTURAL
        assert edit.message == NO_LINES_MESSAGE

    def test_unknown_and_malformed_procedures(self, scrub_engine):
        snapshot = office_visit(lines=(
            LineSnapshot(1, "12345", Decimal("10.00")),
            LineSnapshot(2, "ABC", Decimal("10.00")),
        ))
        result = scrub_engine.scrub(snapshot, as_of=AS_OF)

        assert codes(result.errors).count("STRUCT_INVALID_PROCEDURE") == 2
        assert {e.line_number for e in result.errors} >= {1, 2}
        assert any("unknown procedure code '12345'" in m for m in result.error_messages())
        assert any("malformed procedure code 'ABC'" in m for m in result.error_messages())

    def test_negative_charge_and_zero_units(self, scrub_engine):
        snapshot = office_visit(lines=(
            LineSnapshot(1, "99213", Decimal("-1.00")),
            LineSnapshot(2, "90658", Decimal("35.00"), units=0),
        ))
        result = scrub_engine.scrub(snapshot, as_of=AS_OF)

        assert "STRUCT_NEGATIVE_CHARGE" in codes(result.errors)
        assert "STRUCT_INVALID_UNITS" in codes(result.errors)

    def test_zero_total_is_only_a_warning(self, scrub_engine):
        snapshot = office_visit(lines=(LineSnapshot(1, "99213", Decimal("0.00")),))
        result = scrub_engine.scrub(snapshot, as_of=AS_OF)

        assert result.passed is True
        assert "STRUCT_ZERO_TOTAL" in codes(result.warnings)


@pytest.mark.unit
class TestCodingEdits:
    def test_missing_diagnosis(self, scrub_engine):
        result = scrub_engine.scrub(office_visit(diagnosis_codes=()), as_of=AS_OF)
        assert "CODING_MISSING_DIAGNOSIS" in codes(result.errors)

    def test_malformed_diagnosis_is_an_error(self, scrub_engine):
        result = scrub_engine.scrub(office_visit(diagnosis_codes=("Z23", "123")), as_of=AS_OF)
        assert "CODING_INVALID_DIAGNOSIS" in codes(result.errors)

    def test_unknown_but_well_formed_diagnosis_is_a_warning(self, scrub_engine):
        result = scrub_engine.scrub(office_visit(diagnosis_codes=("Z23", "Q99.8")), as_of=AS_OF)

        assert result.passed is True
        assert "CODING_UNKNOWN_DIAGNOSIS" in codes(result.warnings)

    def test_duplicate_diagnosis_warning(self, scrub_engine):
        result = scrub_engine.scrub(office_visit(diagnosis_codes=("Z23", "z23")), as_of=AS_OF)
        assert "CODING_DUPLICATE_DIAGNOSIS" in codes(result.warnings)

    def test_vaccine_without_immunization_diagnosis_warns(self, scrub_engine):
        result = scrub_engine.scrub(office_visit(diagnosis_codes=("I10",)), as_of=AS_OF)

        assert result.passed is True
        pairing = [e for e in result.warnings if e.code == "CODING_PAIRING"]
        assert len(pairing) == 1
        assert pairing[0].line_number == 2
        assert "Z23" in pairing[0].message

    def test_pairing_uses_pointed_diagnoses(self, scrub_engine):
        """The vaccine line points at the hypertension diagnosis, not at Z23."""
        snapshot = office_visit(
            diagnosis_codes=("Z23", "I10"),
            lines=(
                LineSnapshot(1, "99213", Decimal("120.00"), diagnosis_pointers=(2,)),
                LineSnapshot(2, "90658", Decimal("35.00"), diagnosis_pointers=(2,)),
            ),
        )
        result = scrub_engine.scrub(snapshot, as_of=AS_OF)

        assert result.passed is True
        pairing = [e for e in result.warnings if e.code == "CODING_PAIRING"]
        assert [e.line_number for e in pairing] == [2]

    def test_pointer_to_immunization_diagnosis_pairs(self, scrub_engine):
        snapshot = office_visit(
            diagnosis_codes=("I10", "Z23"),
            lines=(LineSnapshot(1, "90658", Decimal("35.00"), diagnosis_pointers=(2,)),),
        )
        result = scrub_engine.scrub(snapshot, as_of=AS_OF)
        assert "CODING_PAIRING" not in codes(result.warnings)

    def test_out_of_range_pointer_is_an_error(self, scrub_engine):
        snapshot = office_visit(
            lines=(
                LineSnapshot(1, "99213", Decimal("120.00"), diagnosis_pointers=(1,)),
                LineSnapshot(2, "90658", Decimal("35.00"), diagnosis_pointers=(3, 0)),
            ),
        )
        result = scrub_engine.scrub(snapshot, as_of=AS_OF)

        assert result.passed is False
        pointer_errors = [e for e in result.errors if e.code == "CODING_INVALID_POINTER"]
        assert len(pointer_errors) == 1
        assert pointer_errors[0].line_number == 2
        assert "3, 0" in pointer_errors[0].message
        assert "CODING_PAIRING" not in codes(result.warnings)

    def test_too_many_pointers(self, scrub_engine):
        snapshot = office_visit(
            diagnosis_codes=("Z00.00", "Z23", "I10", "E11.9", "J06.9"),
            lines=(LineSnapshot(1, "99213", Decimal("120.00"), diagnosis_pointers=(1, 2, 3, 4, 5)),),
        )
        result = scrub_engine.scrub(snapshot, as_of=AS_OF)
        assert "CODING_INVALID_POINTER" in codes(result.errors)


@pytest.mark.unit
class TestAdministrativeEdits:
    def test_missing_place_and_date_of_service(self, scrub_engine):
        result = scrub_engine.scrub(
            office_visit(place_of_service=None, date_of_service=None), as_of=AS_OF
        )
        assert {"ADMIN_MISSING_POS", "ADMIN_MISSING_DOS"} <= set(codes(result.errors))

    def test_unknown_place_of_service(self, scrub_engine):
        result = scrub_engine.scrub(office_visit(place_of_service="98"), as_of=AS_OF)
        assert "ADMIN_INVALID_POS" in codes(result.errors)

    def test_future_date_of_service(self, scrub_engine):
        result = scrub_engine.scrub(
            office_visit(date_of_service=AS_OF + timedelta(days=1)), as_of=AS_OF
        )
        assert "ADMIN_FUTURE_DOS" in codes(result.errors)

    def test_timely_filing_warning(self, scrub_engine):
        result = scrub_engine.scrub(
            office_visit(date_of_service=AS_OF - timedelta(days=400)), as_of=AS_OF
        )
        assert result.passed is True
        assert "ADMIN_TIMELY_FILING" in codes(result.warnings)


@pytest.mark.unit
class TestPayerEdits:
    def test_commercial_payer_requires_member_and_policy(self, scrub_engine):
        result = scrub_engine.scrub(office_visit(payer_id="AETNA"), as_of=AS_OF)

        missing = [e.field for e in result.errors if e.code == "PAYER_MISSING_FIELD"]
        assert sorted(missing) == ["member_id", "policy_number"]
        assert all(e.category == EditCategory.PAYER for e in result.errors)

    def test_self_pay_skips_payer_rules(self, scrub_engine):
        result = scrub_engine.scrub(office_visit(payer_id=None), as_of=AS_OF)
        assert "PAYER_MISSING_FIELD" not in codes(result.errors)


@pytest.mark.unit
class TestRuleCatalog:
    def test_disabled_rule_is_not_reported(self, code_reference):
        catalog = ScrubRuleCatalog.from_dict({
            "rules": {
                "STRUCT_NO_LINES": {"category": "structural", "severity": "error", "enabled": False},
            },
        })
        engine = ScrubEngine(code_reference, catalog)
        assert engine.scrub(office_visit(lines=()), as_of=AS_OF).passed is True

    def test_severity_comes_from_catalog(self, code_reference):
        catalog = ScrubRuleCatalog.from_dict({
            "rules": {
                "ADMIN_MISSING_POS": {"category": "administrative", "severity": "warning"},
            },
        })
        engine = ScrubEngine(code_reference, catalog)
        result = engine.scrub(office_visit(place_of_service=None), as_of=AS_OF)

        assert result.passed is True
        assert result.warnings[0].severity == EditSeverity.WARNING

    def test_required_fields_fall_back_to_default(self, scrub_engine):
        catalog = scrub_engine.catalog
        assert catalog.required_fields_for("medicaid") == ["member_id"]
        assert catalog.required_fields_for("UNLISTED") == ["member_id", "policy_number"]


@pytest.mark.unit
class TestContentHash:
    def test_hash_ignores_claim_and_control_numbers(self):
        snapshot = office_visit()
        other = replace(snapshot, claim_number="CLM-2026-000099", control_number="X1")
        assert compute_content_hash(snapshot) == compute_content_hash(other)

    def test_hash_changes_with_lines(self):
        snapshot = office_visit()
        edited = replace(snapshot, lines=snapshot.lines[:1])
        assert compute_content_hash(snapshot) != compute_content_hash(edited)

    def test_hash_changes_with_diagnosis_pointers(self):
        a = office_visit(lines=(LineSnapshot(1, "99213", Decimal("120.00"), diagnosis_pointers=(1,)),))
        b = office_visit(lines=(LineSnapshot(1, "99213", Decimal("120.00"), diagnosis_pointers=(2,)),))
        assert compute_content_hash(a) != compute_content_hash(b)

    def test_hash_normalizes_charge_scale(self):
        a = office_visit(lines=(LineSnapshot(1, "99213", Decimal("120")),))
        b = office_visit(lines=(LineSnapshot(1, "99213", Decimal("120.00")),))
        assert compute_content_hash(a) == compute_content_hash(b)

    def test_result_round_trips_through_dict(self, scrub_engine):
        result = scrub_engine.scrub(office_visit(payer_id="AETNA"), as_of=AS_OF)
        restored = ScrubResult.from_dict(result.to_dict())

        assert restored.passed == result.passed
        assert restored.errors == result.errors
