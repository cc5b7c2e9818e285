"""Identity Codec - deterministic conversion between off-chain values and ledger encodings.

Invariants:
    - All functions are PURE: no IO, no async, no randomness
    - encode_short_id packs at most 31 UTF-8 bytes big-endian into one scalar
    - encode_listing_key is injective over listing UUIDs (128 bits, no truncation)
    - hash_commitment is SHA-256 truncated to 62 hex digits, 0x-prefixed
    - to_fixed_point is lossless: digits beyond the scale raise EncodingError
    - to_scalar_pair / from_scalar_pair round-trip exactly for [0, 2**256)

Design Decisions:
    - Decimal for currency input: floats are converted through str() so 0.1 stays 0.1
    - Overflow raised as AmountOverflowError (EncodingError subclass), before submission
"""

import hashlib
import re
from decimal import Decimal, InvalidOperation, localcontext
from uuid import UUID

from propchain.core.domain_types import (
    COMMITMENT_HEX_DIGITS,
    DEFAULT_PRICE_SCALE_EXPONENT,
    MAX_SHORT_STRING_BYTES,
    U128_BITS,
    U256_BITS,
    U256_DECIMAL_DIGITS,
)
from propchain.core.errors import AmountOverflowError, EncodingError, ValidationError

_U128_MASK = (1 << U128_BITS) - 1
_U256_LIMIT = 1 << U256_BITS
_DECIMAL_PRECISION = 100
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")


# ─── Short strings ──────────────────────────────────────────────

def encode_short_id(text: str) -> int:
    """Pack text into a single ledger scalar, truncating to 31 bytes."""
    if not text:
        raise EncodingError("Cannot encode an empty identifier")
    raw = text.encode("utf-8")[:MAX_SHORT_STRING_BYTES]
    return int.from_bytes(raw, "big")


def decode_short_id(value: int) -> str:
    if value < 0:
        raise EncodingError("Short string scalar cannot be negative")
    length = (value.bit_length() + 7) // 8
    return value.to_bytes(length, "big").decode("utf-8", errors="replace")


def encode_listing_key(listing_id: UUID) -> int:
    """Registry property key: the listing UUID's 16 bytes, big-endian."""
    return int.from_bytes(listing_id.bytes, "big")


# ─── Commitments ────────────────────────────────────────────────

def hash_commitment(text: str) -> str:
    """One-way commitment to free text; same input always yields the same hash."""
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return "0x" + digest[:COMMITMENT_HEX_DIGITS]


def location_hash(location: str, region: str, district: str = "") -> str:
    """Commitment over a listing's location fields, as anchored at mint time."""
    return hash_commitment(f"{location}{region}{district or ''}")


# ─── Fixed point ────────────────────────────────────────────────

def to_fixed_point(
    amount: Decimal | int | float | str,
    scale_exponent: int = DEFAULT_PRICE_SCALE_EXPONENT,
) -> int:
    """Scale a decimal amount up to the ledger's smallest unit."""
    try:
        value = Decimal(str(amount)) if isinstance(amount, float) else Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise EncodingError(f"Amount {amount!r} is not a decimal number")
    if not value.is_finite():
        raise EncodingError(f"Amount {amount!r} is not finite")
    if value < 0:
        raise EncodingError("Fixed-point amounts cannot be negative")

    # Integer arithmetic: Decimal context precision would round long amounts
    _, digits, exponent = value.as_tuple()
    coefficient = int("".join(map(str, digits)) or "0")
    if coefficient == 0:
        return 0
    # Bounds come from the exponent alone; 10 ** shift is never built out of range
    if value.adjusted() + scale_exponent >= U256_DECIMAL_DIGITS:
        raise AmountOverflowError(None, U256_BITS)
    shift = exponent + scale_exponent
    if -shift > len(digits):
        raise EncodingError(
            f"Amount {amount} has more than {scale_exponent} decimal places",
        )
    if shift >= 0:
        result = coefficient * 10 ** shift
    else:
        result, remainder = divmod(coefficient, 10 ** -shift)
        if remainder:
            raise EncodingError(
                f"Amount {amount} has more than {scale_exponent} decimal places",
            )
    if result >= _U256_LIMIT:
        raise AmountOverflowError(result, U256_BITS)
    return result


def from_fixed_point(
    value: int, scale_exponent: int = DEFAULT_PRICE_SCALE_EXPONENT,
) -> Decimal:
    """Inverse of to_fixed_point."""
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PRECISION
        return Decimal(value) / Decimal(10) ** scale_exponent


# ─── u256 halves ────────────────────────────────────────────────

def to_scalar_pair(value: int) -> tuple[int, int]:
    """Split a u256 into (low, high) 128-bit halves."""
    if value < 0 or value >= _U256_LIMIT:
        raise AmountOverflowError(value, U256_BITS)
    return value & _U128_MASK, value >> U128_BITS


def from_scalar_pair(low: int, high: int) -> int:
    for half in (low, high):
        if half < 0 or half > _U128_MASK:
            raise AmountOverflowError(half, U128_BITS)
    return (high << U128_BITS) | low


# ─── Read-result normalization ──────────────────────────────────

def as_int(value: int | str | bool) -> int:
    """Ledger scalars arrive as ints or 0x-hex strings."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError:
            raise EncodingError(f"Ledger value {value!r} is not an integer")
    raise EncodingError(f"Ledger value {value!r} is not an integer")


def as_u256(value) -> int:
    """Accept a (low, high) pair, a {"low", "high"} mapping, or a plain scalar."""
    if isinstance(value, dict):
        return from_scalar_pair(as_int(value["low"]), as_int(value["high"]))
    if isinstance(value, (list, tuple)):
        low, high = value
        return from_scalar_pair(as_int(low), as_int(high))
    return as_int(value)


def format_address(value: int | str) -> str:
    """Canonical 0x-prefixed lowercase address without leading zeros."""
    return hex(as_int(value))


def normalize_address(value: str | None, field: str = "address") -> str:
    """Validate a 0x-hex ledger address and return its canonical form."""
    if not value or not _ADDRESS_RE.match(value):
        raise ValidationError(f"{field} must be a 0x-prefixed hex address", field)
    return format_address(value)
