"""
Claims API Routes Tests.
"""

import pytest
from fastapi import status

from revcycle.gateways.clearinghouse_gateway import SimulatedClearinghouseGateway
from revcycle.services.exceptions import TransportFailure

AS_OF = "2026-10-01"


def claim_payload(**overrides):
    payload = {
        "patient_id": "PAT-1001",
        "patient_name": "Jordan Lee",
        "provider_id": "1234567893",
        "diagnosis_codes": ["Z00.00", "Z23", "  "],
        "date_of_service": "2026-09-14",
        "place_of_service": "11",
        "lines": [
            {"procedure_code": "99213", "charge_amount": "120.00"},
            {"procedure_code": "90658", "charge_amount": "35.00"},
        ],
    }
    payload.update(overrides)
    return payload


async def create(client, **overrides) -> dict:
    response = await client.post("/api/v1/claims", json=claim_payload(**overrides))
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


async def submit(client, **overrides) -> dict:
    claim = await create(client, **overrides)
    response = await client.post(f"/api/v1/claims/{claim['id']}/submit", params={"as_of": AS_OF})
    assert response.status_code == status.HTTP_200_OK
    return (await client.get(f"/api/v1/claims/{claim['id']}")).json()


class UnreachableGateway(SimulatedClearinghouseGateway):
    async def submit(self, snapshot):
        raise TransportFailure("Could not reach clearinghouse", source=self.source.value)


@pytest.mark.api
class TestCreateAndRead:
    @pytest.mark.asyncio
    async def test_create_claim(self, api_client):
        response = await api_client.post(
            "/api/v1/claims", json=claim_payload(), headers={"X-Actor": "front-desk"}
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["status"] == "draft"
        assert data["total_charge"] == "155.00"
        assert data["diagnosis_codes"] == ["Z00.00", "Z23"]
        assert [line["line_number"] for line in data["lines"]] == [1, 2]
        assert data["events"][0]["event_type"] == "created"
        assert data["events"][0]["actor"] == "front-desk"
        assert data["status_display"] == "Draft"
        assert data["next_statuses"] == ["cancelled", "validated"]

    @pytest.mark.asyncio
    async def test_negative_charge_rejected_by_schema(self, api_client):
        payload = claim_payload(lines=[{"procedure_code": "99213", "charge_amount": "-5.00"}])
        response = await api_client.post("/api/v1/claims", json=payload)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.asyncio
    async def test_unknown_code_without_charge(self, api_client):
        payload = claim_payload(lines=[{"procedure_code": "00000"}])
        response = await api_client.post("/api/v1/claims", json=payload)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        detail = response.json()["detail"]
        assert detail["error"] == "ClaimValidationError"
        assert "no default charge" in detail["errors"][0]

    @pytest.mark.asyncio
    async def test_get_missing_claim(self, api_client):
        response = await api_client.get("/api/v1/claims/4040")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"]["error"] == "ClaimNotFoundError"

    @pytest.mark.asyncio
    async def test_list_and_summary(self, api_client):
        await create(api_client)
        await submit(api_client)

        drafts = (await api_client.get("/api/v1/claims", params={"status": "draft"})).json()
        assert len(drafts) == 1
        assert drafts[0]["status"] == "draft"
        assert drafts[0]["status_display"] == "Draft"

        summary = (await api_client.get("/api/v1/claims/summary")).json()
        assert summary["total_claims"] == 2
        assert summary["by_status"]["submitted"] == 1
        assert summary["total_charges"] == "310.00"

    @pytest.mark.asyncio
    async def test_replace_lines(self, api_client):
        claim = await create(api_client)
        response = await api_client.put(
            f"/api/v1/claims/{claim['id']}/lines",
            json={"lines": [{"procedure_code": "99214", "units": 1}]},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total_charge"] == "175.00"
        assert data["events"][-1]["event_type"] == "lines_replaced"

    @pytest.mark.asyncio
    async def test_diagnosis_pointers(self, api_client):
        claim = await create(api_client, lines=[
            {"procedure_code": "99213", "charge_amount": "120.00", "diagnosis_pointers": [1]},
            {"procedure_code": "90658", "charge_amount": "35.00", "diagnosis_pointers": [2, 4]},
        ])
        assert [line["diagnosis_pointers"] for line in claim["lines"]] == [[1], [2, 4]]

        scrub = (await api_client.post(f"/api/v1/claims/{claim['id']}/scrub", params={"as_of": AS_OF})).json()
        assert scrub["passed"] is False
        [error] = scrub["errors"]
        assert error["code"] == "CODING_INVALID_POINTER"
        assert error["line_number"] == 2


@pytest.mark.api
class TestScrubAndSubmit:
    @pytest.mark.asyncio
    async def test_scrub_then_submit(self, api_client):
        claim = await create(api_client)

        scrub = await api_client.post(f"/api/v1/claims/{claim['id']}/scrub", params={"as_of": AS_OF})
        assert scrub.status_code == status.HTTP_200_OK
        assert scrub.json()["passed"] is True

        response = await api_client.post(f"/api/v1/claims/{claim['id']}/submit", params={"as_of": AS_OF})
        assert response.status_code == status.HTTP_200_OK
        submission = response.json()
        assert submission["accepted"] is True
        assert submission["source"] == "simulated"

        stored = (await api_client.get(f"/api/v1/claims/{claim['id']}")).json()
        assert stored["status"] == "submitted"
        assert stored["control_number"] == submission["control_number"]

    @pytest.mark.asyncio
    async def test_claim_without_lines(self, api_client):
        claim = await create(api_client, lines=[])

        scrub = (await api_client.post(f"/api/v1/claims/{claim['id']}/scrub", params={"as_of": AS_OF})).json()
        assert scrub["passed"] is False
        assert scrub["errors"][0]["message"] == "claim has no line items"

        response = await api_client.post(f"/api/v1/claims/{claim['id']}/submit", params={"as_of": AS_OF})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert "claim has no line items" in response.json()["detail"]["errors"]

        stored = (await api_client.get(f"/api/v1/claims/{claim['id']}")).json()
        assert stored["status"] == "draft"

    @pytest.mark.asyncio
    async def test_payer_rejection(self, api_client):
        claim = await create(
            api_client, payer_id="REJECTCO", member_id="M-1", policy_number="P-1"
        )
        response = await api_client.post(f"/api/v1/claims/{claim['id']}/submit", params={"as_of": AS_OF})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        detail = response.json()["detail"]
        assert detail["error"] == "PayerRejection"
        assert detail["reasons"]
        assert detail["submission"]["accepted"] is False

    @pytest.mark.asyncio
    async def test_transport_failure(self, api_client, lifecycle, monkeypatch):
        monkeypatch.setattr(lifecycle, "gateway", UnreachableGateway())
        claim = await create(api_client)

        response = await api_client.post(f"/api/v1/claims/{claim['id']}/submit", params={"as_of": AS_OF})

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["detail"]["retryable"] is True
        stored = (await api_client.get(f"/api/v1/claims/{claim['id']}")).json()
        assert stored["status"] == "validated"

    @pytest.mark.asyncio
    async def test_check_status(self, api_client):
        claim = await submit(api_client)
        response = await api_client.post(f"/api/v1/claims/{claim['id']}/check-status")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["overall_status"] == "acknowledged"
        stored = (await api_client.get(f"/api/v1/claims/{claim['id']}")).json()
        assert stored["status"] == "acknowledged"
        assert stored["payer_claim_number"] == response.json()["payer_claim_number"]


@pytest.mark.api
class TestOverrides:
    @pytest.mark.asyncio
    async def test_manual_override_path(self, api_client):
        claim = await submit(api_client)
        url = f"/api/v1/claims/{claim['id']}/status"

        skipped = await api_client.put(url, json={"status": "paid"})
        assert skipped.status_code == status.HTTP_409_CONFLICT
        assert skipped.json()["detail"]["current_status"] == "submitted"

        assert (await api_client.put(url, json={"status": "acknowledged"})).status_code == 200
        response = await api_client.put(url, json={"status": "denied", "reason": "not covered"})
        assert response.json()["status"] == "denied"

        appeal = await api_client.post(f"/api/v1/claims/{claim['id']}/appeal", json={"reason": "records sent"})
        assert appeal.status_code == status.HTTP_200_OK
        assert appeal.json()["status"] == "appealed"

    @pytest.mark.asyncio
    async def test_cancel(self, api_client):
        claim = await create(api_client)
        url = f"/api/v1/claims/{claim['id']}/cancel"

        response = await api_client.post(url, json={"reason": "duplicate"})
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "cancelled"

        again = await api_client.post(url, json={})
        assert again.status_code == status.HTTP_409_CONFLICT
