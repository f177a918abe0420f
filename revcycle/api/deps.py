"""
FastAPI Dependencies
Dependency injection for the claim lifecycle and reconciliation services
Source: https://fastapi.tiangolo.com/tutorial/dependencies/
"""

from typing import Optional

from fastapi import Header

from revcycle.core.config import get_claims_settings
from revcycle.db.connection import get_session_maker
from revcycle.gateways.clearinghouse_gateway import get_clearinghouse_gateway
from revcycle.services.claim_lifecycle import ClaimLifecycleService
from revcycle.services.code_reference import CodeReferenceService, get_code_reference
from revcycle.services.remittance_reconciliation import RemittanceReconciliationService
from revcycle.services.scrub_engine import create_scrub_engine

_lifecycle: Optional[ClaimLifecycleService] = None
_reconciliation: Optional[RemittanceReconciliationService] = None


def get_code_reference_service() -> CodeReferenceService:
    return get_code_reference(get_claims_settings().CODE_REFERENCE_PATH)


def get_lifecycle_service() -> ClaimLifecycleService:
    """
    Get the process-wide claim lifecycle service.

    One instance per process so that its per-claim locks serialize every
    mutation made through the API.
    """
    global _lifecycle
    if _lifecycle is None:
        settings = get_claims_settings()
        _lifecycle = ClaimLifecycleService(
            session_factory=get_session_maker(),
            scrub_engine=create_scrub_engine(get_code_reference_service(), settings.SCRUB_RULES_PATH),
            gateway=get_clearinghouse_gateway(),
            settings=settings,
        )
    return _lifecycle


def get_reconciliation_service() -> RemittanceReconciliationService:
    global _reconciliation
    if _reconciliation is None:
        _reconciliation = RemittanceReconciliationService(get_lifecycle_service())
    return _reconciliation


def reset_services() -> None:
    """Drop cached services (for testing and shutdown)."""
    global _lifecycle, _reconciliation
    _lifecycle = None
    _reconciliation = None


async def get_actor(x_actor: Optional[str] = Header(default=None)) -> Optional[str]:
    """Caller identity recorded on revenue-cycle events."""
    return x_actor
