"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

import os

# Application settings are read at import time
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import date
from decimal import Decimal
from typing import Any, Optional

import pytest
import pytest_asyncio

from revcycle.core.config import DATA_DIR, ClaimsSettings
from revcycle.core.enums import IntegrationMode, RemittanceClaimStatus
from revcycle.db.connection import build_engine, build_session_maker, create_all
from revcycle.gateways.clearinghouse_gateway import SimulatedClearinghouseGateway
from revcycle.models import Claim
from revcycle.services.claim_lifecycle import (
    ClaimInput,
    ClaimLifecycleService,
    ClaimLineInput,
)
from revcycle.services.code_reference import CodeReferenceService
from revcycle.services.remittance_reconciliation import (
    Adjustment,
    RemittanceBatch,
    RemittanceReconciliationService,
    RemittedClaim,
    ServicePayment,
)
from revcycle.services.scrub_engine import create_scrub_engine

SERVICE_DATE = date(2026, 9, 14)
AS_OF = date(2026, 10, 1)
REJECTING_PAYER = "REJECTCO"


# =============================================================================
# Configuration / Reference Data
# =============================================================================


@pytest.fixture
def claims_settings() -> ClaimsSettings:
    """Demo-mode settings with sequential reconciliation."""
    return ClaimsSettings(
        INTEGRATION_MODE=IntegrationMode.DEMO,
        CLEARINGHOUSE_API_KEY=None,
        CLEARINGHOUSE_TIMEOUT_SECONDS=2.0,
        RECONCILIATION_CONCURRENCY=1,
        SIMULATOR_REJECT_PAYERS=[REJECTING_PAYER],
    )


@pytest.fixture(scope="session")
def code_reference() -> CodeReferenceService:
    return CodeReferenceService()


@pytest.fixture(scope="session")
def scrub_engine(code_reference):
    return create_scrub_engine(code_reference, DATA_DIR / "scrub_rules.json")


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite so several sessions can share one database."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'claims.db'}")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_maker(engine)


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def gateway(claims_settings) -> SimulatedClearinghouseGateway:
    return SimulatedClearinghouseGateway(reject_payers=claims_settings.SIMULATOR_REJECT_PAYERS)


@pytest.fixture
def lifecycle(session_factory, scrub_engine, gateway, claims_settings) -> ClaimLifecycleService:
    return ClaimLifecycleService(
        session_factory=session_factory,
        scrub_engine=scrub_engine,
        gateway=gateway,
        settings=claims_settings,
    )


@pytest.fixture
def reconciliation(lifecycle) -> RemittanceReconciliationService:
    return RemittanceReconciliationService(lifecycle)


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def make_claim_input():
    """Factory for a self-pay office visit plus flu vaccine (99213 + 90658)."""

    def _make(**overrides: Any) -> ClaimInput:
        data: dict[str, Any] = {
            "patient_id": "PAT-1001",
            "patient_name": "Jordan Lee",
            "provider_id": "1234567893",
            "provider_name": "Riverside Family Practice",
            "diagnosis_codes": ["Z00.00", "Z23"],
            "date_of_service": SERVICE_DATE,
            "place_of_service": "11",
            "lines": [
                ClaimLineInput(procedure_code="99213", charge_amount=Decimal("120.00")),
                ClaimLineInput(procedure_code="90658", charge_amount=Decimal("35.00")),
            ],
        }
        data.update(overrides)
        return ClaimInput(**data)

    return _make


@pytest.fixture
def submitted_claim(lifecycle, make_claim_input):
    """Factory that creates a claim and drives it to SUBMITTED."""

    async def _submit(**overrides: Any) -> Claim:
        claim = await lifecycle.create_claim(make_claim_input(**overrides), actor="biller")
        await lifecycle.submit_claim(claim.id, as_of=AS_OF, actor="biller")
        return await lifecycle.get_claim(claim.id)

    return _submit


@pytest.fixture
def make_remitted_claim():
    """Factory for one remitted claim paying each line in full by default."""

    def _make(
        claim: Claim,
        paid: Optional[dict[str, Decimal]] = None,
        status: RemittanceClaimStatus = RemittanceClaimStatus.PROCESSED_PRIMARY,
        adjustments: Optional[list[Adjustment]] = None,
        line_adjustments: Optional[dict[str, list[Adjustment]]] = None,
        patient_responsibility: Decimal = Decimal("0.00"),
    ) -> RemittedClaim:
        paid = paid if paid is not None else {
            line.procedure_code: line.line_charge for line in claim.lines
        }
        line_adjustments = line_adjustments or {}
        services = [
            ServicePayment(
                procedure_code=line.procedure_code,
                charge_amount=line.line_charge,
                paid_amount=paid[line.procedure_code],
                units=line.units,
                adjustments=line_adjustments.get(line.procedure_code, []),
            )
            for line in claim.lines
            if line.procedure_code in paid
        ]
        return RemittedClaim(
            patient_control_number=claim.control_number,
            claim_status=status,
            charge_amount=claim.total_charge,
            paid_amount=sum((s.paid_amount for s in services), Decimal("0.00")),
            patient_responsibility=patient_responsibility,
            payer_claim_number="PCN-778812",
            adjustments=adjustments or [],
            service_payments=services,
        )

    return _make


@pytest.fixture
def make_batch():
    def _make(batch_id: str, claims: list[RemittedClaim]) -> RemittanceBatch:
        return RemittanceBatch(
            batch_id=batch_id,
            check_number=f"CHK-{batch_id}",
            payer_id="AETNA",
            payer_name="Aetna",
            payment_amount=sum((c.paid_amount for c in claims), Decimal("0.00")),
            payment_date=AS_OF,
            claims=claims,
        )

    return _make


# =============================================================================
# API
# =============================================================================


@pytest_asyncio.fixture
async def api_client(lifecycle, reconciliation, code_reference):
    """HTTP client against the app with services bound to the test database."""
    from httpx import ASGITransport, AsyncClient

    from revcycle.api.deps import (
        get_code_reference_service,
        get_lifecycle_service,
        get_reconciliation_service,
    )
    from revcycle.api.main import app

    app.dependency_overrides[get_lifecycle_service] = lambda: lifecycle
    app.dependency_overrides[get_reconciliation_service] = lambda: reconciliation
    app.dependency_overrides[get_code_reference_service] = lambda: code_reference

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "api: mark test as an API test"
    )
