"""Domain Types - rich types that replace bare primitives across the codebase.

Invariants:
    - ListingId wraps UUID; TokenId and EscrowId wrap ledger integers (u256)
    - AgentAddress and TxRef are 0x-prefixed hex strings
    - All valid states encoded as Enums, each carrying its ledger code where one exists

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders
"""

from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

ListingId = NewType("ListingId", UUID)
TokenId = NewType("TokenId", int)
EscrowId = NewType("EscrowId", int)
AgentAddress = NewType("AgentAddress", str)
TxRef = NewType("TxRef", str)


# ─── Ledger Constants ────────────────────────────────────────────

MAX_SHORT_STRING_BYTES = 31
COMMITMENT_HEX_DIGITS = 62          # 248 bits, below the 252-bit scalar field
U256_BITS = 256
U256_DECIMAL_DIGITS = 78           # 2**256 has 78 decimal digits
U128_BITS = 128
DEFAULT_PRICE_SCALE_EXPONENT = 18

MIN_RATING = 1
MAX_RATING = 5
SCORE_SCALE = 100                   # 450 == 4.50


# ─── Enums ───────────────────────────────────────────────────────

class TokenState(str, Enum):
    """Mint/verify lifecycle of a listing's tokenized representation."""
    UNMINTED = "unminted"
    MINTED = "minted"
    VERIFIED = "verified"


class PropertyType(str, Enum):
    """Listing types. Ledger code is the declaration index."""
    APARTMENT = "apartment"
    HOUSE = "house"
    VILLA = "villa"
    COMMERCIAL = "commercial"
    LAND = "land"
    STUDIO = "studio"

    @property
    def code(self) -> int:
        return list(PropertyType).index(self)


class ListingPurpose(str, Enum):
    RENT = "rent"
    SALE = "sale"
    SHORT_STAY = "short_stay"


class EscrowKind(str, Enum):
    """Escrow purposes accepted by the escrow contract."""
    BOOKING = "booking"
    DEPOSIT = "deposit"
    FULL_PAYMENT = "full_payment"

    @property
    def code(self) -> int:
        return list(EscrowKind).index(self)


class EscrowStatus(str, Enum):
    """Escrow lifecycle states. Ledger status code is the declaration index."""
    PENDING = "pending"
    FUNDED = "funded"
    RELEASED = "released"
    REFUNDED = "refunded"
    DISPUTED = "disputed"

    @property
    def code(self) -> int:
        return list(EscrowStatus).index(self)

    @property
    def is_terminal(self) -> bool:
        return self in (EscrowStatus.RELEASED, EscrowStatus.REFUNDED)


class Contract(str, Enum):
    """Ledger contracts the orchestrators call."""
    PROPERTY_REGISTRY = "property_registry"
    ESCROW = "escrow"
    REPUTATION = "reputation"


class Outcome(str, Enum):
    """What a failed call means for the ledger."""
    NOT_APPLIED = "not_applied"     # definitely did not happen
    UNKNOWN = "unknown"             # re-read before retrying
    APPLIED = "applied"             # confirmed on the ledger; a later local step failed
