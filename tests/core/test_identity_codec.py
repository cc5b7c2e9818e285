"""Identity Codec - deterministic encodings between off-chain values and ledger scalars.

Tests:
    - Short-id packing: big-endian, 31-byte truncation, empty rejected
    - Listing keys: all 128 UUID bits survive
    - Commitments: deterministic, 0x + 62 hex digits
    - Fixed point: exact scaling, excess precision and overflow rejected,
      extreme exponents rejected without building the power of ten
    - u256 halves and read-result normalization
"""

import time
from decimal import Decimal
from uuid import UUID

import pytest

from propchain.core.errors import AmountOverflowError, EncodingError, ValidationError
from propchain.core.identity_codec import (
    as_int, as_u256, decode_short_id, encode_listing_key, encode_short_id, format_address,
    from_fixed_point, from_scalar_pair, hash_commitment, location_hash,
    normalize_address, to_fixed_point, to_scalar_pair,
)


# ─── Short strings ──────────────────────────────────────────────

def test_encode_short_id_is_big_endian():
    assert encode_short_id("AB") == 0x4142


def test_encode_short_id_truncates_to_31_bytes():
    long_id = "x" * 40
    assert encode_short_id(long_id) == encode_short_id("x" * 31)
    assert encode_short_id(long_id).bit_length() <= 31 * 8


def test_encode_short_id_rejects_empty():
    with pytest.raises(EncodingError):
        encode_short_id("")


def test_decode_short_id_inverts_encode():
    assert decode_short_id(encode_short_id("listing-42")) == "listing-42"


def test_listing_key_keeps_every_uuid_bit():
    first = UUID("3f2504e0-4f89-11d3-9a0c-0305e82c3300")
    second = UUID("3f2504e0-4f89-11d3-9a0c-0305e82c3301")
    assert encode_listing_key(first) != encode_listing_key(second)
    assert encode_listing_key(second) == second.int
    assert encode_listing_key(UUID(int=2**128 - 1)).bit_length() == 128


# ─── Commitments ────────────────────────────────────────────────

def test_hash_commitment_shape():
    digest = hash_commitment("Great agent")
    assert digest.startswith("0x")
    assert len(digest) == 64
    assert int(digest, 16) < 2**252


def test_hash_commitment_is_deterministic():
    assert hash_commitment("same text") == hash_commitment("same text")
    assert hash_commitment("same text") != hash_commitment("same text.")


def test_location_hash_concatenates_fields():
    assert location_hash("Kololo", "Central", "Kampala") == hash_commitment(
        "KololoCentralKampala",
    )
    assert location_hash("Kololo", "Central") == hash_commitment("KololoCentral")


# ─── Fixed point ────────────────────────────────────────────────

def test_fifteen_million_scales_to_18_decimals():
    assert to_fixed_point(Decimal("15000000")) == 15_000_000 * 10**18


def test_fractional_amount_is_exact():
    assert to_fixed_point("0.1") == 10**17
    assert to_fixed_point(0.1) == 10**17


def test_custom_scale():
    assert to_fixed_point(Decimal("12.34"), 2) == 1234


def test_trailing_zero_precision_is_not_an_error():
    assert to_fixed_point(Decimal("15000000.0000")) == 15_000_000 * 10**18


def test_excess_precision_rejected():
    with pytest.raises(EncodingError):
        to_fixed_point(Decimal("1.001"), 2)


def test_negative_and_non_numeric_rejected():
    with pytest.raises(EncodingError):
        to_fixed_point(Decimal("-1"))
    with pytest.raises(EncodingError):
        to_fixed_point("ten")
    with pytest.raises(EncodingError):
        to_fixed_point(Decimal("Infinity"))


def test_overflow_rejected():
    with pytest.raises(AmountOverflowError):
        to_fixed_point(10**60)


def test_largest_u256_amount_still_encodes():
    assert to_fixed_point(2**256 - 1, 0) == 2**256 - 1
    with pytest.raises(AmountOverflowError):
        to_fixed_point(2**256, 0)
    with pytest.raises(AmountOverflowError):
        to_fixed_point(10**78, 0)


@pytest.mark.parametrize("amount, error", [
    ("1e20000000", AmountOverflowError),
    ("1e2000000", AmountOverflowError),
    ("1e-2000000", EncodingError),
    ("123456e-20000000", EncodingError),
])
def test_extreme_exponents_fail_fast(amount, error):
    started = time.perf_counter()
    with pytest.raises(error):
        to_fixed_point(amount)
    assert time.perf_counter() - started < 0.1


def test_zero_with_extreme_exponent_is_zero():
    assert to_fixed_point("0e-2000000") == 0
    assert to_fixed_point("0e2000000") == 0


def test_from_fixed_point_restores_decimal():
    assert from_fixed_point(15_000_000 * 10**18) == Decimal("15000000")
    assert from_fixed_point(10**17) == Decimal("0.1")


# ─── u256 halves ────────────────────────────────────────────────

@pytest.mark.parametrize("value", [0, 1, 2**128 - 1, 2**128, 2**256 - 1])
def test_scalar_pair_round_trip(value):
    low, high = to_scalar_pair(value)
    assert 0 <= low < 2**128 and 0 <= high < 2**128
    assert from_scalar_pair(low, high) == value


def test_scalar_pair_split():
    assert to_scalar_pair(2**128 + 5) == (5, 1)


def test_scalar_pair_rejects_out_of_range():
    with pytest.raises(AmountOverflowError):
        to_scalar_pair(2**256)
    with pytest.raises(AmountOverflowError):
        to_scalar_pair(-1)
    with pytest.raises(AmountOverflowError):
        from_scalar_pair(2**128, 0)


# ─── Read normalization ─────────────────────────────────────────

def test_as_int_accepts_hex_decimal_and_bool():
    assert as_int("0x1f") == 31
    assert as_int("42") == 42
    assert as_int(True) == 1
    with pytest.raises(EncodingError):
        as_int("0xzz")
    with pytest.raises(EncodingError):
        as_int(None)


def test_as_u256_accepts_pairs_and_mappings():
    assert as_u256((5, 1)) == 2**128 + 5
    assert as_u256({"low": "0x5", "high": "0x1"}) == 2**128 + 5
    assert as_u256("0x10") == 16


def test_addresses_are_canonical():
    assert format_address("0x00AbC") == "0xabc"
    assert normalize_address("0x0042", "owner") == "0x42"


@pytest.mark.parametrize("bad", [None, "", "42", "0x", "0xnothex", "0x" + "1" * 65])
def test_normalize_address_rejects_malformed(bad):
    with pytest.raises(ValidationError) as exc:
        normalize_address(bad, "buyer_address")
    assert exc.value.field == "buyer_address"
