"""
Remittance API Routes Tests.
"""

import pytest
from fastapi import status

AS_OF = "2026-10-01"


async def submitted_claim(client) -> dict:
    payload = {
        "patient_id": "PAT-2002",
        "diagnosis_codes": ["Z00.00", "Z23"],
        "date_of_service": "2026-09-14",
        "place_of_service": "11",
        "lines": [
            {"procedure_code": "99213", "charge_amount": "120.00"},
            {"procedure_code": "90658", "charge_amount": "35.00"},
        ],
    }
    claim = (await client.post("/api/v1/claims", json=payload)).json()
    await client.post(f"/api/v1/claims/{claim['id']}/submit", params={"as_of": AS_OF})
    return (await client.get(f"/api/v1/claims/{claim['id']}")).json()


def remittance(batch_id: str, *claims: dict) -> dict:
    return {
        "batch_id": batch_id,
        "check_number": f"EFT-{batch_id}",
        "payer_id": "AETNA",
        "payer_name": "Aetna",
        "payment_amount": "155.00",
        "payment_method": "ACH",
        "payment_date": AS_OF,
        "claims": list(claims),
    }


def paid_in_full(control_number: str) -> dict:
    return {
        "patient_control_number": control_number,
        "claim_status": "1",
        "charge_amount": "155.00",
        "paid_amount": "155.00",
        "payer_claim_number": "PCN-1",
        "service_lines": [
            {"procedure_code": "99213", "charge_amount": "120.00", "paid_amount": "120.00"},
            {"procedure_code": "90658", "charge_amount": "35.00", "paid_amount": "35.00"},
        ],
    }


@pytest.mark.api
class TestApplyRemittance:
    @pytest.mark.asyncio
    async def test_apply_and_replay(self, api_client):
        claim = await submitted_claim(api_client)
        body = remittance("ERA-9001", paid_in_full(claim["control_number"]))

        response = await api_client.post("/api/v1/remittances", json=body, headers={"X-Actor": "poster"})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["applied"] == 1
        assert data["conflicts"] == 0
        outcome = data["outcomes"][0]
        assert outcome["new_status"] == "paid"
        assert outcome["paid_amount"] == "155.00"
        assert outcome["replayed"] is False

        replay = (await api_client.post("/api/v1/remittances", json=body)).json()
        assert replay["applied"] == 1
        assert replay["outcomes"][0]["replayed"] is True

        stored = (await api_client.get(f"/api/v1/claims/{claim['id']}")).json()
        assert stored["status"] == "paid"
        assert stored["total_paid"] == "155.00"
        assert stored["events"][-1]["actor"] == "poster"

    @pytest.mark.asyncio
    async def test_mixed_outcomes(self, api_client):
        claim = await submitted_claim(api_client)
        overpaid = paid_in_full(claim["control_number"])
        overpaid["paid_amount"] = "165.00"
        overpaid["service_lines"][0]["paid_amount"] = "130.00"
        stranger = {
            "patient_control_number": "UNKNOWN0001",
            "claim_status": "1",
            "charge_amount": "10.00",
            "paid_amount": "10.00",
        }

        data = (await api_client.post("/api/v1/remittances", json=remittance("ERA-9002", overpaid, stranger))).json()

        assert data["conflicts"] == 1
        assert data["unmatched"] == 1
        assert data["applied"] == 0
        assert data["outcomes"][0]["status"] == "conflict"
        assert data["outcomes"][1]["status"] == "unmatched"

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, api_client):
        response = await api_client.post("/api/v1/remittances", json=remittance("ERA-9003"))
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.asyncio
    async def test_list_batches(self, api_client):
        claim = await submitted_claim(api_client)
        await api_client.post("/api/v1/remittances", json=remittance("ERA-9004", paid_in_full(claim["control_number"])))

        batches = (await api_client.get("/api/v1/remittances")).json()

        assert len(batches) == 1
        assert batches[0]["batch_id"] == "ERA-9004"
        assert batches[0]["payment_method"] == "ACH"
        assert batches[0]["claim_count"] == 1


@pytest.mark.api
class TestIntegrationStatus:
    @pytest.mark.asyncio
    async def test_demo_mode_status(self, api_client):
        response = await api_client.get("/api/v1/remittances/status")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["mode"] == "demo"
        assert data["source"] == "simulated"
        assert data["api_key_set"] is False
        assert data["health"]["status"] == "healthy"
