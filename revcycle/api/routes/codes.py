"""
Code Reference Endpoints.

Procedure and diagnosis lookups for claim entry.
"""

from fastapi import APIRouter, Depends, Query

from revcycle.api.deps import get_code_reference_service
from revcycle.schemas.codes import DiagnosisCodeResponse, ProcedureCodeResponse
from revcycle.services.code_reference import CodeReferenceService

router = APIRouter(
    prefix="/api/v1/codes",
    tags=["codes"],
)


@router.get("/cpt", response_model=list[ProcedureCodeResponse], summary="Search procedure codes")
async def search_procedure_codes(
    q: str = Query("", max_length=100, description="Code prefix or description text"),
    limit: int = Query(10, ge=1, le=100),
    codes: CodeReferenceService = Depends(get_code_reference_service),
) -> list[ProcedureCodeResponse]:
    """Procedure codes with their default charges."""
    return [ProcedureCodeResponse.model_validate(p) for p in codes.search_procedures(q, limit=limit)]


@router.get("/icd", response_model=list[DiagnosisCodeResponse], summary="Search diagnosis codes")
async def search_diagnosis_codes(
    q: str = Query("", max_length=100, description="Code prefix or description text"),
    limit: int = Query(10, ge=1, le=100),
    codes: CodeReferenceService = Depends(get_code_reference_service),
) -> list[DiagnosisCodeResponse]:
    return [DiagnosisCodeResponse.model_validate(d) for d in codes.search_diagnoses(q, limit=limit)]
