"""Registry Orchestrator - mint and verify listings on the property registry.

Invariants:
    - UNMINTED -> MINTED -> VERIFIED, forward only; the listing record changes
      only after the ledger confirms the transaction
    - One mint in flight per listing (listing lock spans check, submit, await, commit)
    - Preconditions and encoding run before any ledger call
    - FinalityError triggers one reconciliation read: a confirmed effect is
      committed, otherwise the error propagates with outcome unknown
    - Once the ledger confirms, a failing owner read or store write is reported
      as outcome applied with the confirmed tx_ref
    - The ledger is authoritative: reconcile() copies confirmed facts the local
      record is missing, never the other way round

Design Decisions:
    - Mint idempotency key derives from the listing id: a client retry after a
      lost response cannot mint twice
    - The ledger's own property->token index is read before minting, so a mint
      that landed after a crash is adopted instead of reverted
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncIterator
from uuid import UUID

from propchain.core.domain_types import PropertyType, TokenId, TokenState, TxRef
from propchain.core.errors import (
    AlreadyMintedError,
    ErrorContext,
    FinalityError,
    MintFailedError,
    NotTokenizedError,
    ReadError,
    TransactionRevertedError,
    ValidationError,
)
from propchain.core.identity_codec import (
    as_int,
    as_u256,
    encode_listing_key,
    format_address,
    from_fixed_point,
    location_hash,
    normalize_address,
    to_fixed_point,
    to_scalar_pair,
)
from propchain.core.token_state import (
    ListingTokenRecord,
    check_invariants,
    check_mintable,
    check_verifiable,
    minted_patch,
    verified_patch,
)
from propchain.services.context import LedgerContext
from propchain.services.ledger_flow import after_confirmation, load_listing, submit_and_confirm

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MintResult:
    token_id: TokenId
    tx_ref: TxRef | None
    record: ListingTokenRecord
    reconciled: bool = False


@dataclass(frozen=True)
class VerifyResult:
    tx_ref: TxRef | None
    verified_at: datetime
    record: ListingTokenRecord
    reconciled: bool = False


@dataclass(frozen=True)
class ReconcileResult:
    record: ListingTokenRecord
    changed: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class OwnershipEntry:
    owner: str
    timestamp: datetime
    tx_ref: TxRef | None = None


@dataclass(frozen=True)
class BlockchainView:
    """Ledger-side facts about one token, read fresh."""
    token_id: TokenId
    owner: str
    metadata_uri: str
    price: Decimal
    price_units: int
    verified: bool
    verified_at: datetime | None
    history: list[OwnershipEntry] = field(default_factory=list)


class RegistryOrchestrator:
    """Mint, verify and reconcile listings against the property registry."""

    def __init__(self, ctx: LedgerContext):
        self._ctx = ctx

    # ─── Mint ───────────────────────────────────────────────────

    async def mint(
        self,
        listing_id: UUID,
        owner_address: str,
        *,
        metadata_uri: str | None = None,
        price: Decimal | int | str | None = None,
        property_type: PropertyType | str | None = None,
        location_commitment: str | None = None,
    ) -> MintResult:
        """Tokenize a listing. Price, type and location default to the listing's own."""
        owner = normalize_address(owner_address, "owner_address")
        context = ErrorContext(listing_id=str(listing_id), operation="mint_property")

        async with self._ctx.locks.hold("listing", listing_id):
            listing = await load_listing(self._ctx.listings, listing_id)
            check_mintable(listing.token)

            property_key = encode_listing_key(listing_id)
            price_units = to_fixed_point(
                listing.price if price is None else price, self._ctx.price_scale_exponent,
            )
            if price_units == 0:
                raise ValidationError("Listing price must be positive to mint", "price")
            price_low, price_high = to_scalar_pair(price_units)
            uri = metadata_uri or f"{self._ctx.metadata_base_url}/metadata/{listing_id}"
            call = self._ctx.operations.call(
                "mint_property",
                (
                    property_key, owner, uri, price_low, price_high,
                    _type_code(property_type or listing.property_type),
                    location_commitment
                    or location_hash(listing.location, listing.region, listing.district),
                ),
                idempotency_key=f"mint:{listing_id}",
            )

            existing = await self._token_for_property(property_key)
            if existing:
                await self._commit_mint(listing_id, existing, None, context)
                raise AlreadyMintedError(str(listing_id), existing, context)

            try:
                result = await submit_and_confirm(self._ctx.gateway, call, context)
            except TransactionRevertedError as e:
                raise MintFailedError(str(listing_id), e.reason, context) from e
            except FinalityError as e:
                token_id = await self._reconcile_after_timeout(property_key, context)
                if token_id is None:
                    raise
                with after_confirmation(e.tx_ref, context):
                    record = await self._commit_mint(listing_id, token_id, e.tx_ref, context)
                return MintResult(token_id, e.tx_ref, record, reconciled=True)

            with after_confirmation(result.tx_ref, context):
                token_id = TokenId(as_u256(result.return_values["token_id"]))
                record = await self._commit_mint(
                    listing_id, token_id, result.tx_ref, context, owner=owner,
                )
            return MintResult(token_id, result.tx_ref, record)

    # ─── Verify ─────────────────────────────────────────────────

    async def verify(self, listing_id: UUID, verifier_address: str) -> VerifyResult:
        verifier = normalize_address(verifier_address, "verifier_address")
        context = ErrorContext(listing_id=str(listing_id), operation="verify_property")

        async with self._ctx.locks.hold("listing", listing_id):
            listing = await load_listing(self._ctx.listings, listing_id)
            check_verifiable(listing.token)
            token_id = listing.token.token_id
            context.token_id = token_id
            token_low, token_high = to_scalar_pair(token_id)
            call = self._ctx.operations.call(
                "verify_property", (token_low, token_high, verifier),
                idempotency_key=f"verify:{token_id}",
            )

            ledger_verified_at = await self._ledger_verification(token_id)
            if ledger_verified_at is not None:
                record = await self._commit_verified(listing_id, None, ledger_verified_at, context)
                return VerifyResult(None, ledger_verified_at, record, reconciled=True)

            try:
                result = await submit_and_confirm(self._ctx.gateway, call, context)
            except FinalityError as e:
                ledger_verified_at = await self._safe_read(
                    self._ledger_verification(token_id), context,
                )
                if ledger_verified_at is None:
                    raise
                with after_confirmation(e.tx_ref, context):
                    record = await self._commit_verified(
                        listing_id, e.tx_ref, ledger_verified_at, context,
                    )
                return VerifyResult(e.tx_ref, ledger_verified_at, record, reconciled=True)

            verified_at = result.block_timestamp or datetime.now(timezone.utc)
            with after_confirmation(result.tx_ref, context):
                record = await self._commit_verified(
                    listing_id, result.tx_ref, verified_at, context,
                )
            return VerifyResult(result.tx_ref, verified_at, record)

    # ─── Reconcile ──────────────────────────────────────────────

    async def reconcile(self, listing_id: UUID) -> ReconcileResult:
        """Bring the local record up to the ledger's confirmed state."""
        context = ErrorContext(listing_id=str(listing_id), operation="reconcile")
        changed: list[str] = []

        async with self._ctx.locks.hold("listing", listing_id):
            listing = await load_listing(self._ctx.listings, listing_id)
            record = listing.token
            token_id = await self._token_for_property(encode_listing_key(listing_id))

            if not token_id:
                if record.state is not TokenState.UNMINTED:
                    logger.error(
                        "Local record is tokenized but the ledger has no token",
                        extra={"listing_id": str(listing_id), "token_id": record.token_id},
                    )
                return ReconcileResult(record, changed)

            if record.state is TokenState.UNMINTED:
                record = await self._commit_mint(listing_id, token_id, None, context)
                changed.append("minted")
            elif record.token_id != token_id:
                logger.error(
                    f"Ledger token {token_id} differs from local token {record.token_id}",
                    extra={"listing_id": str(listing_id)},
                )
                return ReconcileResult(record, changed)

            if record.state is not TokenState.VERIFIED:
                verified_at = await self._ledger_verification(token_id)
                if verified_at is not None:
                    record = await self._commit_verified(listing_id, None, verified_at, context)
                    changed.append("verified")

        if changed:
            logger.info(
                f"Reconciled listing: {', '.join(changed)}",
                extra={"listing_id": str(listing_id), "operation": "reconcile"},
            )
        return ReconcileResult(record, changed)

    # ─── Reads ──────────────────────────────────────────────────

    async def get_blockchain_view(
        self, token_id: TokenId, *, history_limit: int | None = None,
    ) -> BlockchainView:
        ops = self._ctx.operations
        args = to_scalar_pair(token_id)
        owner, metadata, price, verified, verified_ts = await asyncio.gather(
            self._ctx.gateway.read(ops.query("get_property_owner", args)),
            self._ctx.gateway.read(ops.query("get_property_metadata", args)),
            self._ctx.gateway.read(ops.query("get_property_price", args)),
            self._ctx.gateway.read(ops.query("is_verified", args)),
            self._ctx.gateway.read(ops.query("get_verification_timestamp", args)),
        )
        history = [
            entry async for entry in self.iter_ownership_history(token_id, limit=history_limit)
        ]
        price_units = as_u256(price)
        is_verified = bool(as_int(verified))
        return BlockchainView(
            token_id=token_id,
            owner=format_address(owner),
            metadata_uri=metadata,
            price=from_fixed_point(price_units, self._ctx.price_scale_exponent),
            price_units=price_units,
            verified=is_verified,
            verified_at=_from_epoch(verified_ts) if is_verified else None,
            history=history,
        )

    async def get_view_for_listing(
        self, listing_id: UUID, *, history_limit: int | None = None,
    ) -> BlockchainView:
        listing = await load_listing(self._ctx.listings, listing_id)
        if listing.token.state is TokenState.UNMINTED:
            raise NotTokenizedError(f"Listing '{listing_id}'")
        return await self.get_blockchain_view(
            listing.token.token_id, history_limit=history_limit,
        )

    async def iter_ownership_history(
        self, token_id: TokenId, *, limit: int | None = None,
    ) -> AsyncIterator[OwnershipEntry]:
        """Ownership entries oldest first, fetched page by page."""
        page_size = self._ctx.history_page_size
        token_low, token_high = to_scalar_pair(token_id)
        offset: int | None = 0
        yielded = 0
        while offset is not None:
            page = await self._ctx.gateway.read(self._ctx.operations.query(
                "get_property_history", (token_low, token_high, offset, page_size),
            ))
            for raw in page.get("entries", []):
                if limit is not None and yielded >= limit:
                    return
                yield OwnershipEntry(
                    owner=format_address(raw["owner"]),
                    timestamp=_from_epoch(raw["timestamp"]),
                    tx_ref=raw.get("tx_ref"),
                )
                yielded += 1
            next_offset = page.get("next_offset")
            offset = as_int(next_offset) if next_offset is not None else None

    # ─── Helpers ────────────────────────────────────────────────

    async def _token_for_property(self, property_key: int) -> int:
        raw = await self._ctx.gateway.read(
            self._ctx.operations.query("get_token_by_property", (property_key,)),
        )
        return as_u256(raw)

    async def _ledger_verification(self, token_id: int) -> datetime | None:
        """Verification time if the ledger shows the token verified, else None."""
        args = to_scalar_pair(token_id)
        verified = await self._ctx.gateway.read(self._ctx.operations.query("is_verified", args))
        if not as_int(verified):
            return None
        ts = await self._ctx.gateway.read(
            self._ctx.operations.query("get_verification_timestamp", args),
        )
        return _from_epoch(ts) if as_int(ts) else datetime.now(timezone.utc)

    async def _reconcile_after_timeout(
        self, property_key: int, context: ErrorContext,
    ) -> int | None:
        token_id = await self._safe_read(self._token_for_property(property_key), context)
        return token_id or None

    async def _safe_read(self, read, context: ErrorContext):
        try:
            return await read
        except ReadError as e:
            logger.warning(
                f"Reconciliation read failed: {e.message}",
                extra={"listing_id": context.listing_id, "operation": context.operation},
            )
            return None

    async def _commit_mint(
        self,
        listing_id: UUID,
        token_id: int,
        tx_ref: str | None,
        context: ErrorContext,
        *,
        owner: str | None = None,
    ) -> ListingTokenRecord:
        if owner is None:
            raw_owner = await self._ctx.gateway.read(self._ctx.operations.query(
                "get_property_owner", to_scalar_pair(token_id),
            ))
            owner = format_address(raw_owner)
        listing = await self._ctx.listings.put(
            listing_id, minted_patch(token_id, tx_ref, owner),
        )
        check_invariants(listing.token)
        logger.info(
            f"Listing minted as token {token_id}",
            extra={
                "listing_id": str(listing_id), "token_id": token_id,
                "tx_ref": tx_ref, "operation": context.operation,
            },
        )
        return listing.token

    async def _commit_verified(
        self,
        listing_id: UUID,
        tx_ref: str | None,
        verified_at: datetime,
        context: ErrorContext,
    ) -> ListingTokenRecord:
        listing = await self._ctx.listings.put(listing_id, verified_patch(tx_ref, verified_at))
        check_invariants(listing.token)
        logger.info(
            "Listing verified",
            extra={
                "listing_id": str(listing_id), "token_id": listing.token.token_id,
                "tx_ref": tx_ref, "operation": context.operation,
            },
        )
        return listing.token


def _from_epoch(value) -> datetime:
    return datetime.fromtimestamp(as_int(value), tz=timezone.utc)


def _type_code(property_type: PropertyType | str) -> int:
    try:
        return PropertyType(property_type).code
    except ValueError:
        allowed = ", ".join(t.value for t in PropertyType)
        raise ValidationError(f"Property type must be one of: {allowed}", "property_type")
