"""
Code Reference Service.

Read-only lookup of procedure (CPT) and diagnosis (ICD-10-CM) codes with
descriptions, procedure categories and default charges. Reference data is
loaded once from a JSON file.
"""

import json
import logging
import re
from decimal import Decimal
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from revcycle.core.config import DATA_DIR

logger = logging.getLogger(__name__)


class ProcedureCode(BaseModel):
    """Procedure code reference entry."""

    code: str
    description: str
    category: str
    default_charge: Decimal


class DiagnosisCode(BaseModel):
    """Diagnosis code reference entry."""

    code: str
    description: str

    @property
    def chapter(self) -> str:
        """ICD-10 chapter letter (e.g. ``Z`` for factors influencing health status)."""
        return self.code[0]


class CodeReferenceService:
    """
    Lookup of procedure and diagnosis codes.

    Format checks are independent of the reference subset: a well-formed code
    that is not in the subset is reported as unknown, not malformed.
    """

    CPT_PATTERN = re.compile(r"^\d{5}$")
    ICD10_PATTERN = re.compile(r"^[A-Z]\d{2}(\.[0-9A-Z]{1,4})?$")

    def __init__(self, data_path: Optional[Path] = None):
        """
        Initialize CodeReferenceService.

        Args:
            data_path: Path to the reference JSON file. Defaults to the
                packaged ``data/code_reference.json``.
        """
        self.data_path = data_path or DATA_DIR / "code_reference.json"
        self.version: Optional[str] = None
        self._procedures: dict[str, ProcedureCode] = {}
        self._diagnoses: dict[str, DiagnosisCode] = {}
        self._load()

    def _load(self) -> None:
        with open(self.data_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        self.version = data.get("version")
        for code, entry in data.get("procedures", {}).items():
            self._procedures[code] = ProcedureCode(code=code, **entry)
        for code, entry in data.get("diagnoses", {}).items():
            self._diagnoses[code] = DiagnosisCode(code=code, **entry)

        logger.info(
            f"Loaded code reference {self.version}: "
            f"{len(self._procedures)} procedures, {len(self._diagnoses)} diagnoses"
        )

    @staticmethod
    def normalize(code: str) -> str:
        return code.strip().upper()

    def is_valid_procedure_format(self, code: str) -> bool:
        return bool(self.CPT_PATTERN.match(self.normalize(code)))

    def is_valid_diagnosis_format(self, code: str) -> bool:
        return bool(self.ICD10_PATTERN.match(self.normalize(code)))

    def lookup_procedure(self, code: str) -> Optional[ProcedureCode]:
        return self._procedures.get(self.normalize(code))

    def lookup_diagnosis(self, code: str) -> Optional[DiagnosisCode]:
        return self._diagnoses.get(self.normalize(code))

    def default_charge(self, code: str) -> Optional[Decimal]:
        """Default charge for a procedure code, or None if unknown."""
        entry = self.lookup_procedure(code)
        return entry.default_charge if entry else None

    def search_procedures(self, query: str = "", limit: int = 10) -> list[ProcedureCode]:
        """
        Search procedure codes by code prefix or description substring.

        Args:
            query: Search text; empty returns the first ``limit`` codes
            limit: Maximum results to return

        Returns:
            Matching procedure codes in code order
        """
        query = query.strip().lower()
        results = []
        for code in sorted(self._procedures):
            entry = self._procedures[code]
            if not query or code.startswith(query) or query in entry.description.lower():
                results.append(entry)
                if len(results) >= limit:
                    break
        return results

    def search_diagnoses(self, query: str = "", limit: int = 10) -> list[DiagnosisCode]:
        """Search diagnosis codes by code prefix or description substring."""
        query = query.strip().lower()
        results = []
        for code in sorted(self._diagnoses):
            entry = self._diagnoses[code]
            if not query or code.lower().startswith(query) or query in entry.description.lower():
                results.append(entry)
                if len(results) >= limit:
                    break
        return results


# =============================================================================
# Factory Functions
# =============================================================================


_code_reference: Optional[CodeReferenceService] = None


def get_code_reference(data_path: Optional[Path] = None) -> CodeReferenceService:
    """Get singleton CodeReferenceService instance."""
    global _code_reference
    if _code_reference is None:
        _code_reference = CodeReferenceService(data_path)
    return _code_reference
