"""Token State - pure mint/verify state machine for a listing's tokenized record.

Invariants:
    - All functions are PURE: no IO, no async, no DB, no side effects
    - States move forward only: UNMINTED -> MINTED -> VERIFIED
    - verified implies on_chain; verification_tx_ref implies token_id
    - Patches written back to the listing store contain only TOKEN_PATCH_FIELDS

Design Decisions:
    - Precondition checks raise typed PreconditionErrors: orchestrators let them
      propagate unchanged to the API layer
    - Patch builders return plain dicts: the store contract is get/put(patch)
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal

from propchain.core.domain_types import ListingId, PropertyType, TokenId, TokenState, TxRef
from propchain.core.errors import (
    AlreadyMintedError,
    AlreadyVerifiedError,
    NotTokenizedError,
)

TOKEN_PATCH_FIELDS = frozenset({
    "token_id",
    "mint_tx_ref",
    "on_chain",
    "verified",
    "verification_tx_ref",
    "verified_at",
    "owner_wallet_address",
})


@dataclass(frozen=True)
class ListingTokenRecord:
    """Off-chain mirror of a listing's confirmed ledger state."""
    listing_id: ListingId
    token_id: TokenId | None = None
    mint_tx_ref: TxRef | None = None
    on_chain: bool = False
    verified: bool = False
    verification_tx_ref: TxRef | None = None
    verified_at: datetime | None = None
    owner_wallet_address: str | None = None

    @property
    def state(self) -> TokenState:
        if self.verified:
            return TokenState.VERIFIED
        if self.on_chain and self.token_id is not None:
            return TokenState.MINTED
        return TokenState.UNMINTED

    def apply(self, patch: dict) -> "ListingTokenRecord":
        validate_token_patch(patch)
        return replace(self, **patch)


@dataclass(frozen=True)
class ListingRecord:
    """What the listing store hands the core: token record plus mint inputs."""
    token: ListingTokenRecord
    price: Decimal
    property_type: PropertyType
    location: str
    region: str
    district: str = ""

    @property
    def listing_id(self) -> ListingId:
        return self.token.listing_id


def validate_token_patch(patch: dict) -> None:
    unknown = set(patch) - TOKEN_PATCH_FIELDS
    if unknown:
        raise ValueError(
            f"Listing patch may only touch token fields, got {sorted(unknown)}",
        )


def check_invariants(record: ListingTokenRecord) -> None:
    """Raise AssertionError if the record violates the token invariants."""
    if record.verified and not record.on_chain:
        raise AssertionError(f"Listing {record.listing_id}: verified but not on chain")
    if record.verification_tx_ref and record.token_id is None:
        raise AssertionError(
            f"Listing {record.listing_id}: verification recorded without token",
        )
    if record.on_chain and record.token_id is None:
        raise AssertionError(f"Listing {record.listing_id}: on chain without token id")


# ─── Preconditions ──────────────────────────────────────────────

def check_mintable(record: ListingTokenRecord) -> None:
    if record.state is not TokenState.UNMINTED or record.token_id is not None:
        raise AlreadyMintedError(str(record.listing_id), record.token_id)


def check_verifiable(record: ListingTokenRecord) -> None:
    if record.state is TokenState.UNMINTED:
        raise NotTokenizedError(f"Listing '{record.listing_id}'")
    if record.state is TokenState.VERIFIED:
        raise AlreadyVerifiedError(str(record.listing_id))


def check_tokenized(record: ListingTokenRecord | None, subject: str) -> int:
    """Return the token id of a minted/verified record or raise NotTokenizedError."""
    if record is None or record.state is TokenState.UNMINTED:
        raise NotTokenizedError(subject)
    return record.token_id


# ─── Transitions ────────────────────────────────────────────────

def minted_patch(token_id: int, tx_ref: str | None, owner_address: str) -> dict:
    return {
        "token_id": token_id,
        "mint_tx_ref": tx_ref,
        "on_chain": True,
        "verified": False,
        "owner_wallet_address": owner_address,
    }


def verified_patch(tx_ref: str | None, verified_at: datetime) -> dict:
    return {
        "verified": True,
        "verification_tx_ref": tx_ref,
        "verified_at": verified_at,
    }
