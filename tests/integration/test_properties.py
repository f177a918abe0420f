"""
Randomized checks of the financial invariants.

Every run uses a fixed seed so failures reproduce.
"""

import random
from datetime import date
from decimal import Decimal

import pytest

from revcycle.core.enums import ClaimStatus, ReconciliationStatus, RemittanceClaimStatus
from revcycle.services.claim_lifecycle import ClaimLineInput
from revcycle.services.claim_state_machine import replay_status
from revcycle.services.remittance_reconciliation import RemittanceBatch, RemittedClaim, ServicePayment

SEEDS = [20261001, 20261002, 20261003]
AS_OF = date(2026, 10, 1)
PROCEDURES = ["99213", "99214", "36415", "80053", "85025", "93000"]
ZERO = Decimal("0.00")


def random_lines(rng: random.Random) -> list[ClaimLineInput]:
    return [
        ClaimLineInput(
            procedure_code=rng.choice(PROCEDURES),
            charge_amount=Decimal(rng.randint(1000, 30000)).scaleb(-2),
            units=rng.randint(1, 3),
        )
        for _ in range(rng.randint(1, 4))
    ]


def random_remittance(rng: random.Random, claim) -> RemittedClaim:
    """Pays, underpays, skips or overpays each line at random."""
    services = []
    for line in claim.lines:
        mode = rng.choice(["full", "partial", "zero", "over"])
        if mode == "full":
            paid = line.line_charge
        elif mode == "partial":
            paid = (line.line_charge * Decimal(rng.randint(10, 90)) / 100).quantize(Decimal("0.01"))
        elif mode == "zero":
            paid = ZERO
        else:
            paid = line.line_charge + Decimal(rng.randint(1, 5000)).scaleb(-2)
        services.append(ServicePayment(line.procedure_code, line.line_charge, paid, units=line.units))

    paid_total = sum((s.paid_amount for s in services), ZERO)
    return RemittedClaim(
        patient_control_number=claim.control_number,
        claim_status=RemittanceClaimStatus.PROCESSED_PRIMARY,
        charge_amount=claim.total_charge,
        paid_amount=paid_total,
        patient_responsibility=Decimal(rng.randint(0, 4000)).scaleb(-2),
        service_payments=services,
    )


def assert_invariants(claim) -> None:
    assert claim.total_charge == sum((line.line_charge for line in claim.lines), ZERO)
    assert ZERO <= claim.total_paid <= claim.total_charge
    assert claim.total_paid + claim.patient_responsibility <= claim.total_charge
    assert claim.total_paid == sum((line.paid_amount for line in claim.lines), ZERO)
    for line in claim.lines:
        assert line.paid_amount <= line.line_charge
    assert replay_status(claim.events) == claim.status


@pytest.mark.integration
class TestFinancialInvariants:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", SEEDS)
    async def test_total_charge_tracks_line_edits(self, lifecycle, make_claim_input, seed):
        rng = random.Random(seed)
        claim = await lifecycle.create_claim(make_claim_input(lines=random_lines(rng)))

        for _ in range(10):
            claim = await lifecycle.replace_lines(claim.id, random_lines(rng))
            assert_invariants(await lifecycle.get_claim(claim.id))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", SEEDS)
    async def test_adversarial_batches_never_overpay(
        self, lifecycle, reconciliation, make_claim_input, seed
    ):
        rng = random.Random(seed)
        claim_ids = []
        for index in range(6):
            claim = await lifecycle.create_claim(make_claim_input(lines=random_lines(rng)))
            await lifecycle.submit_claim(claim.id, as_of=AS_OF)
            if index % 2:
                await lifecycle.check_claim_status(claim.id)
            claim_ids.append(claim.id)

        batches = []
        for number in range(4):
            claims = [await lifecycle.get_claim(claim_id) for claim_id in claim_ids]
            remitted = [random_remittance(rng, claim) for claim in claims if rng.random() < 0.8]
            if not remitted:
                continue
            batch = RemittanceBatch(
                batch_id=f"ERA-PROP-{number}",
                check_number=f"EFT-{number}",
                payment_amount=sum((r.paid_amount for r in remitted), ZERO),
                claims=remitted,
            )
            batches.append(batch)

            outcomes = await reconciliation.apply_remittance_batch(batch)
            assert len(outcomes) == len(remitted)
            assert all(o.status != ReconciliationStatus.FAILED for o in outcomes)

            for claim_id in claim_ids:
                assert_invariants(await lifecycle.get_claim(claim_id))

        before = {claim_id: (await lifecycle.get_claim(claim_id)).total_paid for claim_id in claim_ids}

        for batch in batches:
            for outcome in await reconciliation.apply_remittance_batch(batch):
                if outcome.status == ReconciliationStatus.APPLIED:
                    assert outcome.replayed is True

        for claim_id in claim_ids:
            claim = await lifecycle.get_claim(claim_id)
            assert claim.total_paid == before[claim_id]
            assert_invariants(claim)
            if claim.total_paid == claim.total_charge:
                assert claim.status == ClaimStatus.PAID
