"""
Clearinghouse Gateway.

Provides a single interface for claim submission (837) and claim status
inquiry (276/277) with two interchangeable implementations:
- Live: JSON-over-HTTPS clearinghouse API via httpx
- Simulated: deterministic in-process payer network for demo mode

Callers only observe ``source`` on the results. Transport problems
(timeout, connection, authentication, 5xx, malformed payload) raise
TransportFailure; payer rejections come back as ``accepted=False``.
"""

import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from revcycle.core.config import ClaimsSettings, get_claims_settings
from revcycle.core.enums import PayerClaimStatus, ProviderStatus, SubmissionSource
from revcycle.gateways.base import (
    GatewayConfig,
    GatewayError,
    MalformedResponseError,
    ProviderAuthenticationError,
    ProviderHealth,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    with_retry,
)
from revcycle.services.exceptions import TransportFailure
from revcycle.services.scrub_engine import ClaimSnapshot

logger = logging.getLogger(__name__)


# =============================================================================
# Results
# =============================================================================


@dataclass
class SubmissionResult:
    """Outcome of one claim submission attempt."""

    accepted: bool
    source: SubmissionSource
    control_number: Optional[str] = None
    gateway_reference: Optional[str] = None
    message: str = ""
    rejection_reasons: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "accepted": self.accepted,
            "source": self.source.value,
            "control_number": self.control_number,
            "gateway_reference": self.gateway_reference,
            "message": self.message,
            "rejection_reasons": list(self.rejection_reasons),
        }


@dataclass
class CategoryStatus:
    """One 277 STC status segment."""

    category: str
    category_description: str
    status_code: str
    status_description: str

    def to_dict(self) -> dict[str, str]:
        return {
            "category": self.category,
            "category_description": self.category_description,
            "status_code": self.status_code,
            "status_description": self.status_description,
        }


@dataclass
class StatusResult:
    """Outcome of one claim status inquiry."""

    overall_status: PayerClaimStatus
    source: SubmissionSource
    overall_description: str = ""
    category_statuses: list[CategoryStatus] = field(default_factory=list)
    payer_claim_number: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_status": self.overall_status.value,
            "overall_description": self.overall_description,
            "category_statuses": [s.to_dict() for s in self.category_statuses],
            "payer_claim_number": self.payer_claim_number,
            "source": self.source.value,
        }


# =============================================================================
# Gateway Interface
# =============================================================================


class ClearinghouseGateway(ABC):
    """Interface the claim lifecycle service talks to."""

    source: SubmissionSource

    @abstractmethod
    async def submit(self, snapshot: ClaimSnapshot) -> SubmissionResult:
        """Submit a claim; the snapshot must carry its control number."""

    @abstractmethod
    async def check_status(self, snapshot: ClaimSnapshot) -> StatusResult:
        """Inquire about a previously submitted claim."""

    def health(self) -> ProviderHealth:
        return ProviderHealth(status=ProviderStatus.HEALTHY)

    async def close(self) -> None:
        return None


# =============================================================================
# Live Implementation
# =============================================================================


class LiveClearinghouseGateway(ClearinghouseGateway):
    """
    Clearinghouse API over HTTPS.

    Endpoints (relative to ``base_url``):
        POST /claims         submission, answers {"status", "reference", "message", "errors"}
        POST /claims/status  inquiry, answers {"overall_status", "statuses", ...}
    """

    source = SubmissionSource.LIVE

    def __init__(
        self,
        config: GatewayConfig,
        submitter_id: str,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.submitter_id = submitter_id
        self._client = client
        self._owns_client = client is None
        self._health = ProviderHealth()

    @property
    def gateway_name(self) -> str:
        return "Clearinghouse"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout_seconds,
                headers=headers,
            )
        return self._client

    def health(self) -> ProviderHealth:
        return self._health

    async def submit(self, snapshot: ClaimSnapshot) -> SubmissionResult:
        data = await self._call("/claims", self._submission_payload(snapshot))

        status = data.get("status")
        if status not in ("accepted", "rejected"):
            raise self._transport_failure(
                MalformedResponseError(f"Unexpected submission status: {status!r}")
            )

        accepted = status == "accepted"
        reasons = [self._reason_text(e) for e in data.get("errors") or []]
        return SubmissionResult(
            accepted=accepted,
            source=self.source,
            control_number=snapshot.control_number,
            gateway_reference=data.get("reference"),
            message=data.get("message") or ("Claim accepted" if accepted else "Claim rejected"),
            rejection_reasons=[] if accepted else reasons,
        )

    async def check_status(self, snapshot: ClaimSnapshot) -> StatusResult:
        payload = {
            "submitter_id": self.submitter_id,
            "control_number": snapshot.control_number,
            "payer_id": snapshot.payer_id,
            "member_id": snapshot.member_id,
            "date_of_service": snapshot.date_of_service.isoformat() if snapshot.date_of_service else None,
            "total_charge": str(snapshot.total_charge),
        }
        data = await self._call("/claims/status", payload)

        try:
            overall = PayerClaimStatus(data["overall_status"])
            statuses = [
                CategoryStatus(
                    category=s["category"],
                    category_description=s.get("category_description", ""),
                    status_code=s.get("status_code", ""),
                    status_description=s.get("status_description", ""),
                )
                for s in data.get("statuses") or []
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise self._transport_failure(
                MalformedResponseError(f"Malformed status response: {e}", original_error=e)
            )

        return StatusResult(
            overall_status=overall,
            source=self.source,
            overall_description=data.get("overall_description", ""),
            category_statuses=statuses,
            payer_claim_number=data.get("payer_claim_number"),
        )

    async def close(self) -> None:
        """Clean up gateway resources."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
        logger.info(f"{self.gateway_name} gateway closed")

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _call(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST with retry on rate limits; every failure surfaces as TransportFailure."""
        if self._health.is_circuit_open:
            raise self._transport_failure(
                ProviderUnavailableError("Circuit breaker open", provider=self.gateway_name)
            )

        start = time.perf_counter()
        retrying_post = with_retry(
            max_attempts=self.config.retry_attempts,
            delay=self.config.retry_delay_seconds,
        )(self._post)
        try:
            data = await retrying_post(path, payload)
        except GatewayError as e:
            self._health.record_failure(
                str(e),
                self.config.circuit_breaker_threshold,
                self.config.circuit_breaker_timeout_seconds,
            )
            raise self._transport_failure(e)

        self._health.record_success((time.perf_counter() - start) * 1000)
        return data

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._get_client().post(path, json=payload)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                f"Clearinghouse request timed out: {path}", provider=self.gateway_name, original_error=e
            )
        except httpx.TransportError as e:
            raise ProviderUnavailableError(
                f"Could not reach clearinghouse: {e}", provider=self.gateway_name, original_error=e
            )

        if response.status_code in (401, 403):
            raise ProviderAuthenticationError(
                f"Clearinghouse authentication failed ({response.status_code})",
                provider=self.gateway_name,
            )
        if response.status_code == 429:
            raise ProviderRateLimitError("Clearinghouse rate limit exceeded", provider=self.gateway_name)
        if response.status_code >= 500:
            raise ProviderUnavailableError(
                f"Clearinghouse error {response.status_code}", provider=self.gateway_name
            )
        if response.status_code >= 400 and response.status_code != 422:
            raise MalformedResponseError(
                f"Clearinghouse refused request ({response.status_code})", provider=self.gateway_name
            )

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise MalformedResponseError(
                "Clearinghouse returned invalid JSON", provider=self.gateway_name, original_error=e
            )
        if not isinstance(data, dict):
            raise MalformedResponseError("Clearinghouse returned a non-object payload", provider=self.gateway_name)
        return data

    def _transport_failure(self, error: GatewayError) -> TransportFailure:
        logger.warning(f"{self.gateway_name} transport failure: {error}")
        failure = TransportFailure(str(error), source=self.source.value, retryable=error.retryable)
        failure.__cause__ = error
        return failure

    def _submission_payload(self, snapshot: ClaimSnapshot) -> dict[str, Any]:
        return {
            "submitter_id": self.submitter_id,
            "control_number": snapshot.control_number,
            "claim_number": snapshot.claim_number,
            "claim_type": snapshot.claim_type.value,
            "patient_id": snapshot.patient_id,
            "provider_id": snapshot.provider_id,
            "payer": None if snapshot.is_self_pay else {
                "payer_id": snapshot.payer_id,
                "payer_name": snapshot.payer_name,
                "member_id": snapshot.member_id,
                "policy_number": snapshot.policy_number,
                "group_number": snapshot.group_number,
            },
            "diagnosis_codes": list(snapshot.diagnosis_codes),
            "place_of_service": snapshot.place_of_service,
            "date_of_service": snapshot.date_of_service.isoformat() if snapshot.date_of_service else None,
            "total_charge": str(snapshot.total_charge),
            "lines": [
                {
                    "line_number": line.line_number,
                    "procedure_code": line.procedure_code,
                    "modifier": line.modifier,
                    "units": line.units,
                    "charge_amount": str(line.charge_amount),
                    "diagnosis_pointers": list(line.diagnosis_pointers),
                }
                for line in snapshot.lines
            ],
        }

    @staticmethod
    def _reason_text(error: Any) -> str:
        if isinstance(error, dict):
            code = error.get("code")
            message = error.get("message", "")
            return f"{code}: {message}" if code else message
        return str(error)


# =============================================================================
# Simulated Implementation
# =============================================================================


class SimulatedClearinghouseGateway(ClearinghouseGateway):
    """
    Deterministic payer network for demo mode and tests.

    - Claims for payers in ``reject_payers`` are rejected.
    - The first status inquiry for a control number reports the claim as
      acknowledged; later inquiries report it in adjudication.
    """

    source = SubmissionSource.SIMULATED

    def __init__(self, reject_payers: Optional[list[str]] = None):
        self.reject_payers = {p.upper() for p in reject_payers or []}
        self._inquiries: dict[str, int] = {}

    @staticmethod
    def _digest(value: str) -> str:
        return hashlib.sha256(value.encode("utf-8")).hexdigest()

    async def submit(self, snapshot: ClaimSnapshot) -> SubmissionResult:
        control_number = snapshot.control_number or ""
        if snapshot.payer_id and snapshot.payer_id.upper() in self.reject_payers:
            return SubmissionResult(
                accepted=False,
                source=self.source,
                control_number=control_number,
                message=f"Payer {snapshot.payer_id} rejected the claim",
                rejection_reasons=[
                    f"Subscriber {snapshot.member_id or '(missing)'} not found for payer {snapshot.payer_id}"
                ],
            )

        return SubmissionResult(
            accepted=True,
            source=self.source,
            control_number=control_number,
            gateway_reference=f"SIM-{self._digest(control_number)[:12].upper()}",
            message="Claim accepted by simulated clearinghouse",
        )

    async def check_status(self, snapshot: ClaimSnapshot) -> StatusResult:
        control_number = snapshot.control_number
        if not control_number:
            return StatusResult(
                overall_status=PayerClaimStatus.NOT_FOUND,
                source=self.source,
                overall_description="No submission on file",
            )

        count = self._inquiries.get(control_number, 0) + 1
        self._inquiries[control_number] = count
        payer_claim_number = f"PCN{int(self._digest(control_number)[:10], 16) % 10**10:010d}"

        if count == 1:
            return StatusResult(
                overall_status=PayerClaimStatus.ACKNOWLEDGED,
                source=self.source,
                overall_description="Claim received by payer",
                category_statuses=[
                    CategoryStatus("A1", "Acknowledgement/Receipt", "20", "Accepted for processing"),
                ],
                payer_claim_number=payer_claim_number,
            )
        return StatusResult(
            overall_status=PayerClaimStatus.IN_ADJUDICATION,
            source=self.source,
            overall_description="Claim is in adjudication",
            category_statuses=[
                CategoryStatus("P1", "Pending/In Process", "20", "Accepted for processing"),
            ],
            payer_claim_number=payer_claim_number,
        )


# =============================================================================
# Factory Functions
# =============================================================================


def create_clearinghouse_gateway(settings: Optional[ClaimsSettings] = None) -> ClearinghouseGateway:
    """Build the gateway selected by ``INTEGRATION_MODE``."""
    settings = settings or get_claims_settings()
    if settings.is_live_mode:
        logger.info(f"Using live clearinghouse at {settings.CLEARINGHOUSE_BASE_URL}")
        return LiveClearinghouseGateway(
            GatewayConfig(
                base_url=settings.CLEARINGHOUSE_BASE_URL,
                api_key=settings.CLEARINGHOUSE_API_KEY,
                timeout_seconds=settings.CLEARINGHOUSE_TIMEOUT_SECONDS,
                retry_attempts=settings.CLEARINGHOUSE_RETRY_ATTEMPTS,
                retry_delay_seconds=settings.CLEARINGHOUSE_RETRY_DELAY_SECONDS,
            ),
            submitter_id=settings.SUBMITTER_ID,
        )
    logger.info("Using simulated clearinghouse")
    return SimulatedClearinghouseGateway(reject_payers=settings.SIMULATOR_REJECT_PAYERS)


_clearinghouse_gateway: Optional[ClearinghouseGateway] = None


def get_clearinghouse_gateway() -> ClearinghouseGateway:
    """Get or create the singleton clearinghouse gateway."""
    global _clearinghouse_gateway
    if _clearinghouse_gateway is None:
        _clearinghouse_gateway = create_clearinghouse_gateway()
    return _clearinghouse_gateway


async def reset_clearinghouse_gateway() -> None:
    """Reset the clearinghouse gateway (for testing)."""
    global _clearinghouse_gateway
    if _clearinghouse_gateway:
        await _clearinghouse_gateway.close()
    _clearinghouse_gateway = None
