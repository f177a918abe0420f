"""
Claims API Endpoints.

Provides:
- Claim creation, listing and detail
- Line replacement before submission
- Scrub, submission and payer status inquiry
- Operator overrides, appeal and cancellation
- Summary statistics
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from revcycle.api.deps import get_actor, get_lifecycle_service
from revcycle.core.enums import ClaimStatus
from revcycle.schemas.claim import (
    ClaimActionRequest,
    ClaimCreate,
    ClaimLinesReplace,
    ClaimListItem,
    ClaimResponse,
    ClaimsSummaryResponse,
    ClaimStatusUpdate,
    ScrubResultResponse,
    StatusInquiryResponse,
    SubmissionResponse,
)
from revcycle.services.claim_lifecycle import ClaimLifecycleService
from revcycle.services.exceptions import ClaimsServiceError
from revcycle.utils.errors import http_error

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/claims",
    tags=["claims"],
)


@router.post(
    "",
    response_model=ClaimResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create claim",
)
async def create_claim(
    data: ClaimCreate,
    service: ClaimLifecycleService = Depends(get_lifecycle_service),
    actor: Optional[str] = Depends(get_actor),
) -> ClaimResponse:
    """Create a claim in DRAFT from encounter data."""
    try:
        claim = await service.create_claim(data.to_input(), actor=actor)
    except ClaimsServiceError as e:
        raise http_error(e) from e
    return ClaimResponse.model_validate(claim)


@router.get("", response_model=list[ClaimListItem], summary="List claims")
async def list_claims(
    status_filter: Optional[ClaimStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    service: ClaimLifecycleService = Depends(get_lifecycle_service),
) -> list[ClaimListItem]:
    claims = await service.list_claims(status=status_filter, skip=skip, limit=limit)
    return [ClaimListItem.model_validate(c) for c in claims]


@router.get("/summary", response_model=ClaimsSummaryResponse, summary="Claims summary")
async def get_claims_summary(
    service: ClaimLifecycleService = Depends(get_lifecycle_service),
) -> ClaimsSummaryResponse:
    """Counts by status plus charge, paid and outstanding totals."""
    return ClaimsSummaryResponse(**await service.get_claims_summary())


@router.get("/{claim_id}", response_model=ClaimResponse, summary="Get claim")
async def get_claim(
    claim_id: int,
    service: ClaimLifecycleService = Depends(get_lifecycle_service),
) -> ClaimResponse:
    try:
        claim = await service.get_claim(claim_id)
    except ClaimsServiceError as e:
        raise http_error(e) from e
    return ClaimResponse.model_validate(claim)


@router.put("/{claim_id}/lines", response_model=ClaimResponse, summary="Replace claim lines")
async def replace_lines(
    claim_id: int,
    data: ClaimLinesReplace,
    service: ClaimLifecycleService = Depends(get_lifecycle_service),
    actor: Optional[str] = Depends(get_actor),
) -> ClaimResponse:
    """
    Replace all lines of a DRAFT or VALIDATED claim.

    The previous scrub result is discarded; the claim must be scrubbed
    again before it can be submitted.
    """
    try:
        claim = await service.replace_lines(
            claim_id, [line.to_input() for line in data.lines], actor=actor
        )
    except ClaimsServiceError as e:
        raise http_error(e) from e
    return ClaimResponse.model_validate(claim)


@router.post("/{claim_id}/scrub", response_model=ScrubResultResponse, summary="Scrub claim")
async def scrub_claim(
    claim_id: int,
    as_of: Optional[date] = Query(None, description="Evaluate date rules as of this day"),
    service: ClaimLifecycleService = Depends(get_lifecycle_service),
    actor: Optional[str] = Depends(get_actor),
) -> ScrubResultResponse:
    """
    Run the scrub rules.

    A passing scrub moves DRAFT to VALIDATED; a failing scrub returns the
    edits with the claim left in (or returned to) DRAFT.
    """
    try:
        result = await service.scrub_claim(claim_id, as_of=as_of, actor=actor)
    except ClaimsServiceError as e:
        raise http_error(e) from e
    return ScrubResultResponse(**result.to_dict())


@router.post("/{claim_id}/submit", response_model=SubmissionResponse, summary="Submit claim")
async def submit_claim(
    claim_id: int,
    as_of: Optional[date] = Query(None, description="Evaluate date rules as of this day"),
    service: ClaimLifecycleService = Depends(get_lifecycle_service),
    actor: Optional[str] = Depends(get_actor),
) -> SubmissionResponse:
    """
    Submit a claim to the clearinghouse.

    Transitions: VALIDATED -> SUBMITTED (DRAFT claims are scrubbed first).
    A payer rejection answers 422 with the rejection reasons and returns
    the claim to DRAFT; a transport failure answers 502 with the claim
    unchanged.
    """
    try:
        submission = await service.submit_claim(claim_id, as_of=as_of, actor=actor)
    except ClaimsServiceError as e:
        raise http_error(e) from e
    return SubmissionResponse(**submission.to_dict())


@router.post(
    "/{claim_id}/check-status",
    response_model=StatusInquiryResponse,
    summary="Check payer status",
)
async def check_claim_status(
    claim_id: int,
    service: ClaimLifecycleService = Depends(get_lifecycle_service),
    actor: Optional[str] = Depends(get_actor),
) -> StatusInquiryResponse:
    try:
        result = await service.check_claim_status(claim_id, actor=actor)
    except ClaimsServiceError as e:
        raise http_error(e) from e
    return StatusInquiryResponse(**result.to_dict())


@router.put("/{claim_id}/status", response_model=ClaimResponse, summary="Override claim status")
async def set_claim_status(
    claim_id: int,
    data: ClaimStatusUpdate,
    service: ClaimLifecycleService = Depends(get_lifecycle_service),
    actor: Optional[str] = Depends(get_actor),
) -> ClaimResponse:
    """
    Manually acknowledge, pay or deny a claim.

    Only transitions the state machine allows for operators are accepted.
    """
    try:
        claim = await service.set_claim_status(claim_id, data.status, reason=data.reason, actor=actor)
    except ClaimsServiceError as e:
        raise http_error(e) from e
    return ClaimResponse.model_validate(claim)


@router.post("/{claim_id}/appeal", response_model=ClaimResponse, summary="Appeal denied claim")
async def appeal_claim(
    claim_id: int,
    data: ClaimActionRequest,
    service: ClaimLifecycleService = Depends(get_lifecycle_service),
    actor: Optional[str] = Depends(get_actor),
) -> ClaimResponse:
    try:
        claim = await service.appeal_claim(claim_id, reason=data.reason, actor=actor)
    except ClaimsServiceError as e:
        raise http_error(e) from e
    return ClaimResponse.model_validate(claim)


@router.post("/{claim_id}/cancel", response_model=ClaimResponse, summary="Cancel claim")
async def cancel_claim(
    claim_id: int,
    data: ClaimActionRequest,
    service: ClaimLifecycleService = Depends(get_lifecycle_service),
    actor: Optional[str] = Depends(get_actor),
) -> ClaimResponse:
    try:
        claim = await service.cancel_claim(claim_id, reason=data.reason, actor=actor)
    except ClaimsServiceError as e:
        raise http_error(e) from e
    return ClaimResponse.model_validate(claim)
