"""
Claim Scrub Engine.

Validates a claim snapshot against billing-edit rules before submission:
- Structural: lines present, known procedure codes, sane charges and units
- Coding: diagnosis presence/format, procedure/diagnosis pairing plausibility
- Administrative: place and date of service
- Payer-specific: required insurance identifiers (self-pay skips these)

The engine is a pure function of the snapshot, the code reference, the rule
catalog and the ``as_of`` date, so rescrubbing an unchanged claim yields an
identical result and content hash.
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from revcycle.core.enums import ClaimType, EditCategory, EditSeverity
from revcycle.services.code_reference import CodeReferenceService

if TYPE_CHECKING:
    from revcycle.models.claim import Claim

logger = logging.getLogger(__name__)

NO_LINES_MESSAGE = "claim has no line items"
MAX_DIAGNOSIS_POINTERS = 4


# =============================================================================
# Snapshots
# =============================================================================


@dataclass(frozen=True)
class LineSnapshot:
    """Immutable view of one claim line."""

    line_number: int
    procedure_code: str
    charge_amount: Decimal
    units: int = 1
    description: Optional[str] = None
    modifier: Optional[str] = None
    # 1-based positions in the claim diagnosis list; empty means the whole list
    diagnosis_pointers: tuple[int, ...] = ()

    @property
    def line_charge(self) -> Decimal:
        return self.charge_amount * self.units


@dataclass(frozen=True)
class ClaimSnapshot:
    """
    Immutable view of a claim's billable content.

    ``claim_number``, ``control_number`` and ``total_charge`` ride along for
    the gateway but are not part of the content hash.
    """

    patient_id: str
    diagnosis_codes: tuple[str, ...] = ()
    lines: tuple[LineSnapshot, ...] = ()
    claim_type: ClaimType = ClaimType.PROFESSIONAL
    provider_id: Optional[str] = None
    payer_id: Optional[str] = None
    payer_name: Optional[str] = None
    member_id: Optional[str] = None
    policy_number: Optional[str] = None
    group_number: Optional[str] = None
    place_of_service: Optional[str] = None
    date_of_service: Optional[date] = None
    claim_number: Optional[str] = None
    control_number: Optional[str] = None
    payer_claim_number: Optional[str] = None

    @property
    def is_self_pay(self) -> bool:
        return not self.payer_id

    @property
    def total_charge(self) -> Decimal:
        return sum((line.line_charge for line in self.lines), Decimal("0.00"))

    @classmethod
    def from_claim(cls, claim: "Claim", control_number: Optional[str] = None) -> "ClaimSnapshot":
        """Build a snapshot from a persisted claim."""
        return cls(
            patient_id=claim.patient_id,
            diagnosis_codes=tuple(claim.diagnosis_codes or ()),
            lines=tuple(
                LineSnapshot(
                    line_number=line.line_number,
                    procedure_code=line.procedure_code,
                    charge_amount=line.charge_amount,
                    units=line.units,
                    description=line.description,
                    modifier=line.modifier,
                    diagnosis_pointers=tuple(line.diagnosis_pointers or ()),
                )
                for line in claim.lines
            ),
            claim_type=claim.claim_type,
            provider_id=claim.provider_id,
            payer_id=claim.payer_id,
            payer_name=claim.payer_name,
            member_id=claim.member_id,
            policy_number=claim.policy_number,
            group_number=claim.group_number,
            place_of_service=claim.place_of_service,
            date_of_service=claim.date_of_service,
            claim_number=claim.claim_number,
            control_number=control_number or claim.control_number,
            payer_claim_number=claim.payer_claim_number,
        )

    def content(self) -> dict[str, Any]:
        """Canonical billable content used for the content hash."""
        return {
            "patient_id": self.patient_id,
            "claim_type": ClaimType(self.claim_type).value,
            "provider_id": self.provider_id,
            "payer_id": self.payer_id,
            "member_id": self.member_id,
            "policy_number": self.policy_number,
            "group_number": self.group_number,
            "diagnosis_codes": list(self.diagnosis_codes),
            "place_of_service": self.place_of_service,
            "date_of_service": self.date_of_service.isoformat() if self.date_of_service else None,
            "lines": [
                {
                    "line_number": line.line_number,
                    "procedure_code": line.procedure_code,
                    "modifier": line.modifier,
                    "units": line.units,
                    "charge_amount": str(Decimal(line.charge_amount).quantize(Decimal("0.01"))),
                    "diagnosis_pointers": list(line.diagnosis_pointers),
                }
                for line in self.lines
            ],
        }


def compute_content_hash(snapshot: ClaimSnapshot) -> str:
    """SHA-256 of the snapshot's canonical JSON content."""
    canonical = json.dumps(snapshot.content(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class Edit:
    """Single scrub finding."""

    code: str
    category: EditCategory
    severity: EditSeverity
    message: str
    field: Optional[str] = None
    line_number: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "field": self.field,
            "line_number": self.line_number,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Edit":
        return cls(
            code=data["code"],
            category=EditCategory(data["category"]),
            severity=EditSeverity(data["severity"]),
            message=data["message"],
            field=data.get("field"),
            line_number=data.get("line_number"),
        )


@dataclass
class ScrubResult:
    """Outcome of one scrub: errors block validation, warnings do not."""

    content_hash: str
    errors: list[Edit] = field(default_factory=list)
    warnings: list[Edit] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.errors

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def add_edit(self, edit: Edit) -> None:
        if edit.severity == EditSeverity.ERROR:
            self.errors.append(edit)
        else:
            self.warnings.append(edit)

    def error_messages(self) -> list[str]:
        return [edit.message for edit in self.errors]

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "content_hash": self.content_hash,
            "errors": [edit.to_dict() for edit in self.errors],
            "warnings": [edit.to_dict() for edit in self.warnings],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScrubResult":
        return cls(
            content_hash=data["content_hash"],
            errors=[Edit.from_dict(e) for e in data.get("errors", [])],
            warnings=[Edit.from_dict(w) for w in data.get("warnings", [])],
        )


# =============================================================================
# Rule Catalog
# =============================================================================


@dataclass(frozen=True)
class RuleConfig:
    """Catalog entry for one scrub rule."""

    rule_id: str
    category: EditCategory
    severity: EditSeverity
    enabled: bool = True


@dataclass
class ScrubRuleCatalog:
    """
    Rule catalog loaded from JSON.

    Payer rules change independently of the engine, so everything that is
    payer- or policy-specific lives here rather than in code.
    """

    rules: dict[str, RuleConfig] = field(default_factory=dict)
    place_of_service_codes: dict[str, str] = field(default_factory=dict)
    payer_required_fields: dict[str, list[str]] = field(default_factory=dict)
    diagnosis_pairing: dict[str, list[str]] = field(default_factory=dict)
    timely_filing_days: int = 365
    version: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScrubRuleCatalog":
        rules = {
            rule_id: RuleConfig(
                rule_id=rule_id,
                category=EditCategory(entry["category"]),
                severity=EditSeverity(entry["severity"]),
                enabled=entry.get("enabled", True),
            )
            for rule_id, entry in data.get("rules", {}).items()
        }
        return cls(
            rules=rules,
            place_of_service_codes=dict(data.get("place_of_service_codes", {})),
            payer_required_fields={
                k: list(v) for k, v in data.get("payer_required_fields", {}).items()
            },
            diagnosis_pairing={k: list(v) for k, v in data.get("diagnosis_pairing", {}).items()},
            timely_filing_days=int(data.get("timely_filing_days", 365)),
            version=data.get("version"),
        )

    @classmethod
    def load(cls, path: Path) -> "ScrubRuleCatalog":
        with open(path, "r", encoding="utf-8") as f:
            catalog = cls.from_dict(json.load(f))
        logger.info(f"Loaded scrub rule catalog {catalog.version} ({len(catalog.rules)} rules)")
        return catalog

    def required_fields_for(self, payer_id: str) -> list[str]:
        return self.payer_required_fields.get(
            payer_id.upper(), self.payer_required_fields.get("default", [])
        )


# =============================================================================
# Scrub Engine
# =============================================================================


class ScrubEngine:
    """
    Stateless billing-edit evaluator.

    Each rule family is an independent check that reports through
    :meth:`_flag`; severity and enablement come from the catalog.
    """

    def __init__(self, code_reference: CodeReferenceService, catalog: ScrubRuleCatalog):
        self.code_reference = code_reference
        self.catalog = catalog

    def scrub(self, snapshot: ClaimSnapshot, as_of: Optional[date] = None) -> ScrubResult:
        """
        Scrub a claim snapshot.

        Args:
            snapshot: Claim content to validate
            as_of: Reference date for date-of-service checks (defaults to today)

        Returns:
            ScrubResult with itemized errors and warnings
        """
        as_of = as_of or date.today()
        result = ScrubResult(content_hash=compute_content_hash(snapshot))

        self._check_structure(snapshot, result)
        self._check_coding(snapshot, result)
        self._check_administrative(snapshot, as_of, result)
        self._check_payer(snapshot, result)

        logger.debug(
            f"Scrubbed {snapshot.claim_number or snapshot.patient_id}: "
            f"{result.error_count} errors, {result.warning_count} warnings"
        )
        return result

    def _flag(
        self,
        result: ScrubResult,
        rule_id: str,
        message: str,
        field: Optional[str] = None,
        line_number: Optional[int] = None,
    ) -> None:
        rule = self.catalog.rules.get(rule_id)
        if rule is None or not rule.enabled:
            return
        result.add_edit(Edit(
            code=rule_id,
            category=rule.category,
            severity=rule.severity,
            message=message,
            field=field,
            line_number=line_number,
        ))

    # =========================================================================
    # Structural
    # =========================================================================

    def _check_structure(self, snapshot: ClaimSnapshot, result: ScrubResult) -> None:
        if not snapshot.lines:
            self._flag(result, "STRUCT_NO_LINES", NO_LINES_MESSAGE, field="lines")
            return

        for line in snapshot.lines:
            code = line.procedure_code
            if not self.code_reference.is_valid_procedure_format(code):
                self._flag(
                    result,
                    "STRUCT_INVALID_PROCEDURE",
                    f"line {line.line_number}: malformed procedure code '{code}'",
                    field="procedure_code",
                    line_number=line.line_number,
                )
            elif self.code_reference.lookup_procedure(code) is None:
                self._flag(
                    result,
                    "STRUCT_INVALID_PROCEDURE",
                    f"line {line.line_number}: unknown procedure code '{code}'",
                    field="procedure_code",
                    line_number=line.line_number,
                )

            if line.charge_amount < 0:
                self._flag(
                    result,
                    "STRUCT_NEGATIVE_CHARGE",
                    f"line {line.line_number}: charge amount cannot be negative",
                    field="charge_amount",
                    line_number=line.line_number,
                )
            if line.units < 1:
                self._flag(
                    result,
                    "STRUCT_INVALID_UNITS",
                    f"line {line.line_number}: units must be at least 1",
                    field="units",
                    line_number=line.line_number,
                )

        if snapshot.total_charge == 0:
            self._flag(result, "STRUCT_ZERO_TOTAL", "claim total charge is zero", field="lines")

    # =========================================================================
    # Coding
    # =========================================================================

    def _check_coding(self, snapshot: ClaimSnapshot, result: ScrubResult) -> None:
        if not snapshot.diagnosis_codes:
            self._flag(
                result,
                "CODING_MISSING_DIAGNOSIS",
                "at least one diagnosis code is required",
                field="diagnosis_codes",
            )
            return

        seen: set[str] = set()
        for code in snapshot.diagnosis_codes:
            normalized = self.code_reference.normalize(code)
            if normalized in seen:
                self._flag(
                    result,
                    "CODING_DUPLICATE_DIAGNOSIS",
                    f"diagnosis code '{code}' is listed more than once",
                    field="diagnosis_codes",
                )
            seen.add(normalized)

            if not self.code_reference.is_valid_diagnosis_format(code):
                self._flag(
                    result,
                    "CODING_INVALID_DIAGNOSIS",
                    f"invalid ICD-10 diagnosis code format: '{code}'",
                    field="diagnosis_codes",
                )
            elif self.code_reference.lookup_diagnosis(code) is None:
                self._flag(
                    result,
                    "CODING_UNKNOWN_DIAGNOSIS",
                    f"diagnosis code '{code}' is not in the reference set",
                    field="diagnosis_codes",
                )

        self._check_pointers(snapshot, result)
        self._check_pairing(snapshot, result)

    def _check_pointers(self, snapshot: ClaimSnapshot, result: ScrubResult) -> None:
        count = len(snapshot.diagnosis_codes)
        for line in snapshot.lines:
            pointers = line.diagnosis_pointers
            if len(pointers) > MAX_DIAGNOSIS_POINTERS:
                self._flag(
                    result,
                    "CODING_INVALID_POINTER",
                    f"line {line.line_number}: at most {MAX_DIAGNOSIS_POINTERS} diagnosis pointers are allowed",
                    field="diagnosis_pointers",
                    line_number=line.line_number,
                )
            out_of_range = [p for p in pointers if not 1 <= p <= count]
            if out_of_range:
                self._flag(
                    result,
                    "CODING_INVALID_POINTER",
                    f"line {line.line_number}: diagnosis pointer "
                    f"{', '.join(str(p) for p in out_of_range)} does not match one of the "
                    f"{count} claim diagnoses",
                    field="diagnosis_pointers",
                    line_number=line.line_number,
                )

    def _check_pairing(self, snapshot: ClaimSnapshot, result: ScrubResult) -> None:
        """Category-level plausibility: e.g. a vaccine line expects an immunization diagnosis."""
        diagnoses = [self.code_reference.normalize(c) for c in snapshot.diagnosis_codes]
        for line in snapshot.lines:
            procedure = self.code_reference.lookup_procedure(line.procedure_code)
            if procedure is None:
                continue
            prefixes = self.catalog.diagnosis_pairing.get(procedure.category)
            if not prefixes:
                continue
            if line.diagnosis_pointers:
                pointed = [diagnoses[p - 1] for p in line.diagnosis_pointers if 1 <= p <= len(diagnoses)]
                if not pointed:
                    continue
            else:
                pointed = diagnoses
            if not any(dx.startswith(prefix) for dx in pointed for prefix in prefixes):
                self._flag(
                    result,
                    "CODING_PAIRING",
                    f"line {line.line_number}: {procedure.category} procedure "
                    f"{procedure.code} usually requires a diagnosis starting with "
                    f"{', '.join(prefixes)}",
                    field="diagnosis_codes",
                    line_number=line.line_number,
                )

    # =========================================================================
    # Administrative
    # =========================================================================

    def _check_administrative(
        self,
        snapshot: ClaimSnapshot,
        as_of: date,
        result: ScrubResult,
    ) -> None:
        pos = snapshot.place_of_service
        if not pos:
            self._flag(result, "ADMIN_MISSING_POS", "place of service is required", field="place_of_service")
        elif pos not in self.catalog.place_of_service_codes:
            self._flag(
                result,
                "ADMIN_INVALID_POS",
                f"place of service '{pos}' is not a recognised code",
                field="place_of_service",
            )

        dos = snapshot.date_of_service
        if dos is None:
            self._flag(result, "ADMIN_MISSING_DOS", "date of service is required", field="date_of_service")
        elif dos > as_of:
            self._flag(
                result,
                "ADMIN_FUTURE_DOS",
                f"date of service {dos.isoformat()} is in the future",
                field="date_of_service",
            )
        elif (as_of - dos).days > self.catalog.timely_filing_days:
            self._flag(
                result,
                "ADMIN_TIMELY_FILING",
                f"date of service is older than {self.catalog.timely_filing_days} days",
                field="date_of_service",
            )

    # =========================================================================
    # Payer-specific
    # =========================================================================

    def _check_payer(self, snapshot: ClaimSnapshot, result: ScrubResult) -> None:
        if snapshot.is_self_pay:
            return
        for field_name in self.catalog.required_fields_for(snapshot.payer_id):
            if not getattr(snapshot, field_name, None):
                self._flag(
                    result,
                    "PAYER_MISSING_FIELD",
                    f"{field_name.replace('_', ' ')} is required for payer {snapshot.payer_id}",
                    field=field_name,
                )


# =============================================================================
# Factory Functions
# =============================================================================


def create_scrub_engine(
    code_reference: CodeReferenceService,
    rules_path: Path,
) -> ScrubEngine:
    """Create a ScrubEngine with a catalog loaded from ``rules_path``."""
    return ScrubEngine(code_reference, ScrubRuleCatalog.load(rules_path))
