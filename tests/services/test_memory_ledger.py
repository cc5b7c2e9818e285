"""In-Memory Ledger - contract rules and LedgerGateway semantics of the local backend.

Tests:
    - Idempotency keys absorb duplicate submissions; reverted keys may be reused
    - Contract rule violations revert at finality
    - Escrow moves by other parties follow the allowed transitions
"""

import pytest

from propchain.core.errors import FinalityError, ReadError, TransactionRevertedError
from propchain.core.identity_codec import to_scalar_pair
from propchain.core.ledger_calls import OperationTable, PendingRef
from propchain.infrastructure.memory_ledger import DEFAULT_ADDRESSES, InMemoryLedger
from tests.services.fakes import BUYER, LEDGER_NOW, OWNER

OPS = OperationTable(DEFAULT_ADDRESSES)


def _mint_call(property_id=11, price=10**18, key="mint:a"):
    low, high = to_scalar_pair(price)
    return OPS.call(
        "mint_property", (property_id, OWNER, "uri", low, high, 1, "0xabc"),
        idempotency_key=key,
    )


async def _confirm(ledger, call):
    return await ledger.await_finality(await ledger.submit(call))


async def test_mint_assigns_sequential_tokens():
    ledger = InMemoryLedger()
    first = await _confirm(ledger, _mint_call(11, key="mint:a"))
    second = await _confirm(ledger, _mint_call(12, key="mint:b"))
    assert first.return_values == {"token_id": 1}
    assert second.return_values == {"token_id": 2}
    assert second.block_number == first.block_number + 1


async def test_duplicate_key_is_absorbed():
    ledger = InMemoryLedger()
    first = await ledger.submit(_mint_call())
    second = await ledger.submit(_mint_call())
    assert first.tx_ref == second.tx_ref
    assert await ledger.read(OPS.query("get_token_by_property", (11,))) == 1


async def test_minting_same_property_twice_reverts():
    ledger = InMemoryLedger()
    await _confirm(ledger, _mint_call(key="mint:a"))
    with pytest.raises(TransactionRevertedError, match="already minted"):
        await _confirm(ledger, _mint_call(key="mint:b"))


async def test_zero_price_reverts():
    ledger = InMemoryLedger()
    with pytest.raises(TransactionRevertedError, match="Price"):
        await _confirm(ledger, _mint_call(price=0))


async def test_reverted_key_can_be_resubmitted():
    ledger = InMemoryLedger()
    ledger.revert_next()
    with pytest.raises(TransactionRevertedError):
        await _confirm(ledger, _mint_call())
    result = await _confirm(ledger, _mint_call())
    assert result.return_values == {"token_id": 1}


async def test_block_timestamp_from_clock():
    ledger = InMemoryLedger(clock=lambda: LEDGER_NOW)
    result = await _confirm(ledger, _mint_call())
    assert result.block_timestamp == LEDGER_NOW


async def test_stall_applies_effect_but_times_out():
    ledger = InMemoryLedger()
    ledger.stall_finality()
    with pytest.raises(FinalityError):
        await _confirm(ledger, _mint_call())
    assert await ledger.read(OPS.query("get_token_by_property", (11,))) == 1


async def test_unknown_transaction():
    ledger = InMemoryLedger()
    with pytest.raises(FinalityError):
        await ledger.await_finality(PendingRef("0xnope", _mint_call()))


async def test_reading_missing_token_is_read_error():
    ledger = InMemoryLedger()
    with pytest.raises(ReadError):
        await ledger.read(OPS.query("get_property_owner", (9, 0)))


async def test_injected_read_failure():
    ledger = InMemoryLedger()
    ledger.fail_next_read()
    with pytest.raises(ReadError):
        await ledger.read(OPS.query("get_agent_score", ("0x1",)))
    assert await ledger.read(OPS.query("get_agent_score", ("0x1",))) == 0


async def test_escrow_moves_follow_rules():
    ledger = InMemoryLedger()
    await _confirm(ledger, _mint_call())
    await _confirm(ledger, OPS.call(
        "create_escrow", (1, 0, BUYER, 100, 0, 0, "conditions"), idempotency_key="e1",
    ))
    with pytest.raises(ValueError):
        ledger.release_escrow(1)
    ledger.fund_escrow(1)
    ledger.release_escrow(1)
    with pytest.raises(ValueError):
        ledger.refund_escrow(1)
    assert await ledger.read(OPS.query("get_escrow_status", (1, 0))) == 2
    assert await ledger.read(OPS.query("get_escrow_parties", (1, 0))) == (OWNER, BUYER)


async def test_review_out_of_range_reverts():
    ledger = InMemoryLedger()
    await _confirm(ledger, _mint_call())
    with pytest.raises(TransactionRevertedError, match="Rating"):
        await _confirm(ledger, OPS.call(
            "add_review", ("0xa", "0xb", 9, 1, 0, "0xh"), idempotency_key="r1",
        ))
