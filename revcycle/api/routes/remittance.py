"""
Remittance API Endpoints.

Provides:
- Remittance (835) application with per-claim outcomes
- Retained batch headers
- Clearinghouse integration status
"""

import logging

from fastapi import APIRouter, Depends, Query

from revcycle.api.deps import get_actor, get_lifecycle_service, get_reconciliation_service
from revcycle.schemas.remittance import (
    IntegrationStatusResponse,
    RemittanceApplyResponse,
    RemittanceBatchIn,
    RemittanceBatchResponse,
)
from revcycle.services.claim_lifecycle import ClaimLifecycleService
from revcycle.services.remittance_reconciliation import RemittanceReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/remittances",
    tags=["remittances"],
)


@router.post("", response_model=RemittanceApplyResponse, summary="Apply remittance")
async def apply_remittance_batch(
    data: RemittanceBatchIn,
    service: RemittanceReconciliationService = Depends(get_reconciliation_service),
    actor: str | None = Depends(get_actor),
) -> RemittanceApplyResponse:
    """
    Apply a payer remittance to the claims it covers.

    Every remitted claim gets its own outcome (applied, conflict, unmatched
    or failed). Re-posting a batch returns the recorded outcomes with
    ``replayed`` set instead of applying payments twice.
    """
    outcomes = await service.apply_remittance_batch(data.to_domain(), actor=actor)
    return RemittanceApplyResponse.from_outcomes(data.batch_id, outcomes)


@router.get("", response_model=list[RemittanceBatchResponse], summary="List remittances")
async def list_remittance_batches(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    service: RemittanceReconciliationService = Depends(get_reconciliation_service),
) -> list[RemittanceBatchResponse]:
    batches = await service.list_batches(skip=skip, limit=limit)
    return [RemittanceBatchResponse.model_validate(b) for b in batches]


@router.get("/status", response_model=IntegrationStatusResponse, summary="Integration status")
async def integration_status(
    service: ClaimLifecycleService = Depends(get_lifecycle_service),
) -> IntegrationStatusResponse:
    """Whether the live clearinghouse or the simulator is in use."""
    settings = service.settings
    return IntegrationStatusResponse(
        mode=settings.INTEGRATION_MODE,
        source=service.gateway.source,
        api_key_set=bool(settings.CLEARINGHOUSE_API_KEY),
        health=service.gateway.health().to_dict(),
    )
