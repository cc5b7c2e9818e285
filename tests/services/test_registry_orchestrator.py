"""Registry Orchestrator - mint, verify, reconcile and blockchain views.

Invariants:
    - The listing record changes only after the ledger confirms
    - Concurrent mints of one listing produce exactly one token
    - FinalityError with the effect visible on the ledger is committed (reconciled)
    - Preconditions and encoding failures never reach the ledger

Tests:
    - Happy paths for mint and verify, including exact fixed-point price
    - Revert, rejection, lost submission and stalled finality
    - Failures after a confirmed write report outcome applied
    - Reconcile copies ledger facts the local record is missing
    - Blockchain view and paged ownership history
"""

import asyncio
from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

import pytest

from propchain.core.domain_types import Outcome, PropertyType, TokenState
from propchain.core.errors import (
    AlreadyMintedError,
    AlreadyVerifiedError,
    AmountOverflowError,
    DatabaseError,
    FinalityError,
    MintFailedError,
    NotTokenizedError,
    ReadError,
    ResourceNotFoundError,
    SubmissionError,
    ValidationError,
)
from propchain.core.identity_codec import encode_listing_key, from_scalar_pair, location_hash
from propchain.core.token_state import ListingTokenRecord
from tests.services.fakes import LEDGER_NOW, OWNER, FailingReads

VERIFIER = "0xad"


def _operations(ledger):
    return [call.operation for call in ledger.submitted]


def _forget_locally(store, listing_id):
    """Drop the local token mirror, leaving the ledger untouched."""
    record = store.records[listing_id]
    store.records[listing_id] = replace(record, token=ListingTokenRecord(listing_id=listing_id))


# ─── Mint ───────────────────────────────────────────────────────

async def test_mint_commits_confirmed_token(registry, ledger, store, listing):
    result = await registry.mint(listing.listing_id, OWNER)

    assert result.token_id == 1
    assert result.tx_ref and result.tx_ref.startswith("0x")
    assert not result.reconciled
    record = store.records[listing.listing_id].token
    assert record.state is TokenState.MINTED
    assert record.token_id == 1
    assert record.mint_tx_ref == result.tx_ref
    assert record.owner_wallet_address == OWNER


async def test_mint_encodes_house_price_as_fixed_point(registry, ledger, listing):
    await registry.mint(listing.listing_id, OWNER)

    call = ledger.submitted[0]
    property_id, owner, uri, price_low, price_high, type_code, loc = call.args
    assert property_id == encode_listing_key(listing.listing_id)
    assert owner == OWNER
    assert from_scalar_pair(price_low, price_high) == 15_000_000 * 10**18
    assert type_code == 1
    assert loc == location_hash("Kololo, Kampala", "Central", "Kampala")
    assert uri == f"https://api.propchain.example/metadata/{listing.listing_id}"
    assert call.idempotency_key == f"mint:{listing.listing_id}"


async def test_mint_overrides(registry, ledger, listing):
    await registry.mint(
        listing.listing_id, OWNER,
        metadata_uri="ipfs://meta", price="2.5",
        property_type=PropertyType.VILLA, location_commitment="0xabc",
    )
    _, _, uri, price_low, price_high, type_code, loc = ledger.submitted[0].args
    assert uri == "ipfs://meta"
    assert from_scalar_pair(price_low, price_high) == 25 * 10**17
    assert type_code == PropertyType.VILLA.code
    assert loc == "0xabc"


async def test_concurrent_mints_produce_one_token(registry, ledger, listing):
    results = await asyncio.gather(
        registry.mint(listing.listing_id, OWNER),
        registry.mint(listing.listing_id, OWNER),
        return_exceptions=True,
    )
    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]

    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], AlreadyMintedError)
    assert _operations(ledger).count("mint_property") == 1


async def test_second_mint_is_refused_before_ledger(registry, ledger, listing):
    await registry.mint(listing.listing_id, OWNER)
    reads_before = len(ledger.reads)

    with pytest.raises(AlreadyMintedError) as exc:
        await registry.mint(listing.listing_id, OWNER)

    assert exc.value.token_id == 1
    assert len(ledger.submitted) == 1
    assert len(ledger.reads) == reads_before


async def test_mint_adopts_token_already_on_ledger(registry, ledger, store, listing):
    await registry.mint(listing.listing_id, OWNER)
    _forget_locally(store, listing.listing_id)

    with pytest.raises(AlreadyMintedError):
        await registry.mint(listing.listing_id, OWNER)

    record = store.records[listing.listing_id].token
    assert record.state is TokenState.MINTED
    assert record.token_id == 1
    assert record.owner_wallet_address == OWNER
    assert _operations(ledger) == ["mint_property"]


async def test_mint_revert_leaves_listing_unminted(registry, ledger, store, listing):
    ledger.revert_next("Out of resources")

    with pytest.raises(MintFailedError) as exc:
        await registry.mint(listing.listing_id, OWNER)

    assert "Out of resources" in exc.value.message
    assert exc.value.context.listing_id == str(listing.listing_id)
    assert store.records[listing.listing_id].token.state is TokenState.UNMINTED
    assert store.puts == []


async def test_mint_after_revert_can_retry(registry, ledger, listing):
    ledger.revert_next()
    with pytest.raises(MintFailedError):
        await registry.mint(listing.listing_id, OWNER)

    result = await registry.mint(listing.listing_id, OWNER)
    assert result.token_id == 1


async def test_mint_rejection_is_not_applied(registry, ledger, store, listing):
    ledger.reject_next_submit()

    with pytest.raises(SubmissionError) as exc:
        await registry.mint(listing.listing_id, OWNER)

    assert exc.value.outcome is Outcome.NOT_APPLIED
    assert store.puts == []


async def test_stalled_finality_is_reconciled(registry, ledger, store, listing):
    ledger.stall_finality()

    result = await registry.mint(listing.listing_id, OWNER)

    assert result.reconciled
    assert result.token_id == 1
    assert result.tx_ref is not None
    assert store.records[listing.listing_id].token.state is TokenState.MINTED


async def test_lost_submission_propagates_unknown_outcome(registry, ledger, store, listing):
    ledger.reject_next_submit(FinalityError("relay unreachable"))

    with pytest.raises(FinalityError) as exc:
        await registry.mint(listing.listing_id, OWNER)

    assert exc.value.outcome is Outcome.UNKNOWN
    assert exc.value.context.operation == "mint_property"
    assert store.records[listing.listing_id].token.state is TokenState.UNMINTED


async def test_store_failure_after_mint_reports_applied(registry, ledger, store, listing):
    store.fail_next_put(DatabaseError("connection reset", "update"))

    with pytest.raises(DatabaseError) as exc:
        await registry.mint(listing.listing_id, OWNER)

    assert exc.value.outcome is Outcome.APPLIED
    assert exc.value.context.tx_ref is not None
    assert _operations(ledger) == ["mint_property"]
    assert store.records[listing.listing_id].token.state is TokenState.UNMINTED

    # A retry adopts the landed token instead of minting again
    with pytest.raises(AlreadyMintedError):
        await registry.mint(listing.listing_id, OWNER)
    assert _operations(ledger) == ["mint_property"]
    assert store.records[listing.listing_id].token.token_id == 1


async def test_owner_read_failure_after_reconciled_mint_reports_applied(
    registry, ledger, ctx, store, listing,
):
    ledger.stall_finality()
    ctx.gateway = FailingReads(ledger, "get_property_owner")

    with pytest.raises(ReadError) as exc:
        await registry.mint(listing.listing_id, OWNER)

    assert exc.value.outcome is Outcome.APPLIED
    assert exc.value.context.tx_ref is not None
    assert exc.value.context.operation == "mint_property"
    assert store.records[listing.listing_id].token.state is TokenState.UNMINTED


async def test_mint_zero_price_never_reaches_ledger(registry, ledger, store):
    listing = store.add(price=Decimal("0"))

    with pytest.raises(ValidationError) as exc:
        await registry.mint(listing.listing_id, OWNER)

    assert exc.value.field == "price"
    assert ledger.submitted == []
    assert ledger.reads == []


async def test_mint_overflowing_price_never_reaches_ledger(registry, ledger, listing):
    with pytest.raises(AmountOverflowError):
        await registry.mint(listing.listing_id, OWNER, price=10**60)
    assert ledger.submitted == []


async def test_mint_unknown_type_rejected(registry, ledger, listing):
    with pytest.raises(ValidationError) as exc:
        await registry.mint(listing.listing_id, OWNER, property_type="castle")
    assert exc.value.field == "property_type"
    assert ledger.submitted == []


async def test_mint_bad_owner_rejected_before_store(registry, ledger, store, listing):
    with pytest.raises(ValidationError):
        await registry.mint(listing.listing_id, "alice")
    assert store.gets == 0
    assert ledger.submitted == []


async def test_mint_missing_listing(registry, ledger):
    with pytest.raises(ResourceNotFoundError):
        await registry.mint(uuid4(), OWNER)
    assert ledger.submitted == []


async def test_mint_releases_listing_lock(registry, ctx, listing):
    await registry.mint(listing.listing_id, OWNER)
    assert len(ctx.locks) == 0


# ─── Verify ─────────────────────────────────────────────────────

async def test_verify_uses_block_timestamp(registry, store, minted_listing, listing):
    result = await registry.verify(listing.listing_id, VERIFIER)

    assert result.verified_at == LEDGER_NOW
    assert not result.reconciled
    record = store.records[listing.listing_id].token
    assert record.state is TokenState.VERIFIED
    assert record.verification_tx_ref == result.tx_ref


async def test_verify_unminted_is_refused(registry, ledger, listing):
    with pytest.raises(NotTokenizedError):
        await registry.verify(listing.listing_id, VERIFIER)
    assert ledger.submitted == []


async def test_verify_twice_is_refused(registry, minted_listing, listing):
    await registry.verify(listing.listing_id, VERIFIER)
    with pytest.raises(AlreadyVerifiedError):
        await registry.verify(listing.listing_id, VERIFIER)


async def test_verify_without_admin_rights(registry, ledger, store, minted_listing, listing):
    ledger.admin_authority = False

    with pytest.raises(SubmissionError) as exc:
        await registry.verify(listing.listing_id, VERIFIER)

    assert exc.value.code == "INSUFFICIENT_AUTHORITY"
    assert exc.value.context.token_id == 1
    assert store.records[listing.listing_id].token.state is TokenState.MINTED


async def test_verify_stalled_finality_is_reconciled(registry, ledger, minted_listing, listing):
    ledger.stall_finality()

    result = await registry.verify(listing.listing_id, VERIFIER)

    assert result.reconciled
    assert result.verified_at == LEDGER_NOW


async def test_verify_adopts_ledger_verification(registry, ledger, store, minted_listing, listing):
    await registry.verify(listing.listing_id, VERIFIER)
    record = store.records[listing.listing_id]
    store.records[listing.listing_id] = replace(record, token=replace(
        record.token, verified=False, verification_tx_ref=None, verified_at=None,
    ))

    result = await registry.verify(listing.listing_id, VERIFIER)

    assert result.reconciled
    assert result.tx_ref is None
    assert _operations(ledger).count("verify_property") == 1
    assert store.records[listing.listing_id].token.state is TokenState.VERIFIED


async def test_store_failure_after_verify_reports_applied(
    registry, ledger, store, minted_listing, listing,
):
    store.fail_next_put(DatabaseError("connection reset", "update"))

    with pytest.raises(DatabaseError) as exc:
        await registry.verify(listing.listing_id, VERIFIER)

    assert exc.value.outcome is Outcome.APPLIED
    assert exc.value.context.tx_ref is not None
    assert store.records[listing.listing_id].token.state is TokenState.MINTED

    result = await registry.reconcile(listing.listing_id)
    assert result.changed == ["verified"]
    assert _operations(ledger).count("verify_property") == 1


# ─── Reconcile ──────────────────────────────────────────────────

async def test_reconcile_nothing_on_ledger(registry, listing):
    result = await registry.reconcile(listing.listing_id)
    assert result.changed == []
    assert result.record.state is TokenState.UNMINTED


async def test_reconcile_copies_mint_and_verification(registry, store, minted_listing, listing):
    await registry.verify(listing.listing_id, VERIFIER)
    _forget_locally(store, listing.listing_id)

    result = await registry.reconcile(listing.listing_id)

    assert result.changed == ["minted", "verified"]
    assert result.record.state is TokenState.VERIFIED
    assert result.record.token_id == 1
    assert result.record.verified_at == LEDGER_NOW


async def test_reconcile_in_sync_changes_nothing(registry, store, minted_listing, listing):
    puts_before = len(store.puts)
    result = await registry.reconcile(listing.listing_id)
    assert result.changed == []
    assert len(store.puts) == puts_before


# ─── Reads ──────────────────────────────────────────────────────

async def test_blockchain_view(registry, ledger, minted_listing):
    ledger.transfer_property(1, "0xb0b")

    view = await registry.get_blockchain_view(1)

    assert view.owner == "0xb0b"
    assert view.price == Decimal("15000000")
    assert view.price_units == 15_000_000 * 10**18
    assert not view.verified
    assert view.verified_at is None
    assert [e.owner for e in view.history] == [OWNER, "0xb0b"]
    assert view.history[0].timestamp == LEDGER_NOW


async def test_view_for_unminted_listing(registry, listing):
    with pytest.raises(NotTokenizedError):
        await registry.get_view_for_listing(listing.listing_id)


async def test_view_for_listing_after_verify(registry, minted_listing, listing):
    await registry.verify(listing.listing_id, VERIFIER)
    view = await registry.get_view_for_listing(listing.listing_id)
    assert view.verified
    assert view.verified_at == LEDGER_NOW


async def test_history_is_paged(registry, ledger, ctx, minted_listing):
    ctx.history_page_size = 2
    for owner in ("0xb1", "0xb2", "0xb3", "0xb4"):
        ledger.transfer_property(1, owner)

    entries = [e async for e in registry.iter_ownership_history(1)]

    assert [e.owner for e in entries] == [OWNER, "0xb1", "0xb2", "0xb3", "0xb4"]
    pages = [q for q in ledger.reads if q.operation == "get_property_history"]
    assert len(pages) == 3


async def test_history_limit(registry, ledger, minted_listing):
    for owner in ("0xb1", "0xb2", "0xb3"):
        ledger.transfer_property(1, owner)
    view = await registry.get_blockchain_view(1, history_limit=2)
    assert len(view.history) == 2


async def test_read_failure_surfaces(registry, ledger, minted_listing):
    ledger.fail_next_read()
    with pytest.raises(ReadError):
        await registry.get_blockchain_view(1)
