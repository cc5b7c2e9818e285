"""Reputation Aggregator - agent registration, reviews and fraud reports.

Invariants:
    - An invalid rating is rejected before the store or the ledger is touched
    - Reputation figures come from the ledger
    - Only commitments of review and evidence text reach the ledger

Tests:
    - Registration and reputation snapshot
    - Review scoring, duplicate absorption and tokenization precondition
    - Fraud reports by token and by listing
    - A read failing after a confirmed write reports outcome applied
"""

import pytest

from propchain.core.domain_types import Outcome
from propchain.core.errors import InvalidRatingError, NotTokenizedError, ReadError, ValidationError
from propchain.core.identity_codec import hash_commitment
from tests.services.fakes import AGENT, REVIEWER, SpyGateway


async def test_register_agent(reputation, ledger):
    registration = await reputation.register_agent(AGENT)

    assert registration.tx_ref
    assert registration.metadata_uri == f"https://api.propchain.example/agents/{AGENT}/metadata"
    snapshot = await reputation.get_reputation(AGENT)
    assert snapshot.verified
    assert snapshot.review_count == 0
    assert snapshot.average_rating == "0.00"


async def test_unknown_agent_has_empty_reputation(reputation):
    snapshot = await reputation.get_reputation("0xdead")
    assert snapshot.to_dict() == {
        "agent_address": "0xdead",
        "average_rating": "0.00",
        "review_count": 0,
        "verified": False,
        "fraud_report_count": 0,
    }


@pytest.mark.parametrize("rating", [6, 0, 4.5, "5"])
async def test_invalid_rating_touches_nothing(ctx, reputation, ledger, store, rating):
    spy = SpyGateway(ledger)
    ctx.gateway = spy

    with pytest.raises(InvalidRatingError):
        await reputation.add_review(AGENT, REVIEWER, rating, 1, "Six stars")

    assert spy.calls == []
    assert store.gets == 0


async def test_invalid_rating_by_listing_touches_nothing(reputation, ledger, store, listing):
    with pytest.raises(InvalidRatingError):
        await reputation.add_review_for_listing(AGENT, REVIEWER, 6, listing.listing_id, "x")
    assert store.gets == 0
    assert ledger.submitted == []


async def test_reviews_update_ledger_score(reputation, ledger, minted_listing):
    await reputation.add_review(AGENT, REVIEWER, 5, 1, "Great agent")
    result = await reputation.add_review(AGENT, "0x4e71e3e5", 4, 1, "Good agent")

    assert result.reputation.score == 450
    assert result.reputation.average_rating == "4.50"
    assert result.reputation.review_count == 2
    assert result.review_hash == hash_commitment("Good agent")


async def test_review_text_stays_off_ledger(reputation, ledger, minted_listing):
    await reputation.add_review(AGENT, REVIEWER, 5, 1, "Very responsive")

    call = [c for c in ledger.submitted if c.operation == "add_review"][0]
    assert "Very responsive" not in call.args
    assert hash_commitment("Very responsive") in call.args


async def test_duplicate_review_counts_once(reputation, ledger, minted_listing):
    first = await reputation.add_review(AGENT, REVIEWER, 5, 1, "Great agent")
    second = await reputation.add_review(AGENT, REVIEWER, 5, 1, "Great agent")

    assert second.tx_ref == first.tx_ref
    assert second.reputation.review_count == 1


async def test_review_requires_tokenized_property(reputation, ledger, listing):
    with pytest.raises(NotTokenizedError):
        await reputation.add_review(AGENT, REVIEWER, 5, 1, "Great agent")
    with pytest.raises(NotTokenizedError):
        await reputation.add_review_for_listing(AGENT, REVIEWER, 5, listing.listing_id, "x")
    assert ledger.submitted == []


async def test_review_by_listing(reputation, minted_listing, listing):
    result = await reputation.add_review_for_listing(
        AGENT, REVIEWER, 3, listing.listing_id, "",
    )
    assert result.reputation.review_count == 1
    assert result.review_hash == hash_commitment("")


async def test_review_bad_address(reputation, ledger, minted_listing):
    with pytest.raises(ValidationError) as exc:
        await reputation.add_review(AGENT, "reviewer", 5, 1, "x")
    assert exc.value.field == "reviewer_address"


async def test_report_fraud(reputation, ledger, minted_listing):
    result = await reputation.report_fraud(AGENT, 1, "Collected deposit for a sold house")

    assert result.fraud_report_count == 1
    assert result.evidence_hash == hash_commitment("Collected deposit for a sold house")
    snapshot = await reputation.get_reputation(AGENT)
    assert snapshot.fraud_report_count == 1


async def test_report_fraud_by_listing(reputation, minted_listing, listing):
    await reputation.report_fraud_for_listing(AGENT, listing.listing_id, "Fake documents")
    result = await reputation.report_fraud_for_listing(
        AGENT, listing.listing_id, "Second incident",
    )
    assert result.fraud_report_count == 2


async def test_report_fraud_requires_evidence(reputation, ledger, minted_listing):
    with pytest.raises(ValidationError) as exc:
        await reputation.report_fraud(AGENT, 1, "   ")
    assert exc.value.field == "evidence"
    assert [c.operation for c in ledger.submitted] == ["mint_property"]


async def test_report_fraud_requires_tokenized_property(reputation, ledger):
    with pytest.raises(NotTokenizedError):
        await reputation.report_fraud(AGENT, 3, "evidence")


# ─── Failures after confirmation ────────────────────────────────

async def test_review_read_failure_after_confirmation_reports_applied(
    reputation, ledger, minted_listing,
):
    ledger.fail_next_read()

    with pytest.raises(ReadError) as exc:
        await reputation.add_review(AGENT, REVIEWER, 5, 1, "Great agent")

    assert exc.value.outcome is Outcome.APPLIED
    assert exc.value.context.tx_ref is not None
    assert exc.value.context.operation == "add_review"
    snapshot = await reputation.get_reputation(AGENT)
    assert snapshot.review_count == 1

    # Resubmitting the same review is absorbed by the ledger
    retry = await reputation.add_review(AGENT, REVIEWER, 5, 1, "Great agent")
    assert retry.tx_ref == exc.value.context.tx_ref
    assert retry.reputation.review_count == 1


async def test_fraud_read_failure_after_confirmation_reports_applied(
    reputation, ledger, minted_listing,
):
    ledger.fail_next_read()

    with pytest.raises(ReadError) as exc:
        await reputation.report_fraud(AGENT, 1, "Fake documents")

    assert exc.value.outcome is Outcome.APPLIED
    assert exc.value.context.tx_ref is not None
    snapshot = await reputation.get_reputation(AGENT)
    assert snapshot.fraud_report_count == 1
