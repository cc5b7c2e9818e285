"""Escrow Orchestrator - open escrows against tokenized listings and read their status.

Invariants:
    - Escrows open only against a token whose listing record is on chain
    - At most one open (pending, funded or disputed) escrow per token; checked
      against a fresh ledger read under the token lock
    - Status always comes from the ledger; observe() never lets a cached status
      move backwards or leave a terminal state
    - Amount, kind and buyer are validated before any ledger call
    - A failure after the create call is confirmed reports outcome applied

Design Decisions:
    - No local escrow table: the ledger is the only copy, this layer reads through
    - Creation idempotency key is token + caller request id, so a client retry
      with the same request id cannot open a second escrow
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from uuid import UUID, uuid4

from propchain.core.domain_types import EscrowId, EscrowKind, EscrowStatus, TokenId, TxRef
from propchain.core.errors import (
    ErrorContext,
    EscrowEncumberedError,
    FinalityError,
    ReadError,
    ValidationError,
)
from propchain.core.escrow_state import (
    OPEN_STATUSES,
    EscrowRecord,
    kind_from_code,
    reconcile_status,
    status_from_code,
)
from propchain.core.identity_codec import (
    as_int,
    as_u256,
    format_address,
    normalize_address,
    to_fixed_point,
    to_scalar_pair,
)
from propchain.core.token_state import check_tokenized
from propchain.services.context import LedgerContext
from propchain.services.ledger_flow import after_confirmation, load_listing, submit_and_confirm

logger = logging.getLogger(__name__)

DEFAULT_RELEASE_CONDITIONS = "Release upon property handover confirmation"


@dataclass(frozen=True)
class EscrowCreated:
    escrow: EscrowRecord
    tx_ref: TxRef | None
    reconciled: bool = False


class EscrowOrchestrator:
    """Escrow creation and read-through status for tokenized listings."""

    def __init__(self, ctx: LedgerContext):
        self._ctx = ctx

    async def create_escrow(
        self,
        token_id: TokenId,
        buyer_address: str,
        amount: Decimal | int | str,
        kind: EscrowKind | str,
        release_conditions: str | None = None,
        *,
        request_id: str | None = None,
    ) -> EscrowCreated:
        buyer = normalize_address(buyer_address, "buyer_address")
        escrow_kind = _parse_kind(kind)
        amount_value = _parse_amount(amount)
        amount_units = to_fixed_point(amount_value, self._ctx.price_scale_exponent)
        conditions = release_conditions or DEFAULT_RELEASE_CONDITIONS
        context = ErrorContext(token_id=token_id, operation="create_escrow")

        async with self._ctx.locks.hold("escrow-token", token_id):
            listing = await self._ctx.listings.get_by_token(token_id)
            check_tokenized(listing.token if listing else None, f"Token {token_id}")
            context.listing_id = str(listing.listing_id)

            open_escrow = await self.find_open_escrow(token_id)
            if open_escrow is not None:
                raise EscrowEncumberedError(token_id, open_escrow.escrow_id, context)

            token_low, token_high = to_scalar_pair(token_id)
            amount_low, amount_high = to_scalar_pair(amount_units)
            call = self._ctx.operations.call(
                "create_escrow",
                (token_low, token_high, buyer, amount_low, amount_high,
                 escrow_kind.code, conditions),
                idempotency_key=f"escrow:{token_id}:{request_id or uuid4().hex}",
            )
            try:
                result = await submit_and_confirm(self._ctx.gateway, call, context)
            except FinalityError as e:
                found = await self._find_created(token_id, buyer, amount_units)
                if found is None:
                    raise
                self.observe(found.escrow_id, found.status)
                return EscrowCreated(found, e.tx_ref, reconciled=True)

            with after_confirmation(result.tx_ref, context):
                escrow_id = EscrowId(as_u256(result.return_values["escrow_id"]))
                context.escrow_id = escrow_id
                seller = listing.token.owner_wallet_address or await self._read_owner(token_id)
            record = EscrowRecord(
                escrow_id=escrow_id,
                property_token_id=token_id,
                buyer_address=buyer,
                seller_address=seller,
                amount=amount_units,
                kind=escrow_kind,
                status=EscrowStatus.PENDING,
                release_conditions=conditions,
            )
            self.observe(escrow_id, EscrowStatus.PENDING)
            logger.info(
                f"Escrow {escrow_id} opened",
                extra={"token_id": token_id, "escrow_id": escrow_id, "tx_ref": result.tx_ref},
            )
            return EscrowCreated(record, result.tx_ref)

    async def create_escrow_for_listing(
        self,
        listing_id: UUID,
        buyer_address: str,
        amount: Decimal | int | str,
        kind: EscrowKind | str,
        release_conditions: str | None = None,
        *,
        request_id: str | None = None,
    ) -> EscrowCreated:
        listing = await load_listing(self._ctx.listings, listing_id)
        token_id = check_tokenized(listing.token, f"Listing '{listing_id}'")
        return await self.create_escrow(
            token_id, buyer_address, amount, kind, release_conditions,
            request_id=request_id,
        )

    async def get_status(self, escrow_id: EscrowId) -> EscrowRecord:
        """Current escrow state read from the ledger, folded through observe()."""
        ops = self._ctx.operations
        args = to_scalar_pair(escrow_id)
        status_code, amount, parties, details, disputed = await asyncio.gather(
            self._ctx.gateway.read(ops.query("get_escrow_status", args)),
            self._ctx.gateway.read(ops.query("get_escrow_amount", args)),
            self._ctx.gateway.read(ops.query("get_escrow_parties", args)),
            self._ctx.gateway.read(ops.query("get_escrow_details", args)),
            self._ctx.gateway.read(ops.query("is_disputed", args)),
        )
        status, _ = self.observe(escrow_id, status_from_code(as_int(status_code)))
        seller, buyer = parties
        return EscrowRecord(
            escrow_id=escrow_id,
            property_token_id=TokenId(as_u256(details["property_token_id"])),
            buyer_address=format_address(buyer),
            seller_address=format_address(seller),
            amount=as_u256(amount),
            kind=kind_from_code(as_int(details["escrow_type"])),
            status=status,
            release_conditions=details.get("release_conditions", ""),
            disputed=bool(as_int(disputed)),
        )

    async def list_for_token(self, token_id: TokenId) -> list[EscrowRecord]:
        raw_ids = await self._ctx.gateway.read(
            self._ctx.operations.query("get_property_escrows", to_scalar_pair(token_id)),
        )
        return [await self.get_status(EscrowId(as_u256(raw))) for raw in raw_ids]

    async def find_open_escrow(self, token_id: TokenId) -> EscrowRecord | None:
        for record in await self.list_for_token(token_id):
            if record.status in OPEN_STATUSES:
                return record
        return None

    def observe(self, escrow_id: EscrowId, status: EscrowStatus) -> tuple[EscrowStatus, bool]:
        """Fold a ledger observation into the per-escrow cache.

        Returns the status to report and whether the observation was accepted.
        """
        cached = self._ctx.escrow_observations.get(escrow_id)
        kept, accepted = reconcile_status(cached, status)
        if accepted:
            self._ctx.escrow_observations[escrow_id] = kept
        else:
            logger.warning(
                f"Ignoring escrow status regression {cached.value} -> {status.value}",
                extra={"escrow_id": escrow_id, "operation": "observe_escrow"},
            )
        return kept, accepted

    async def _find_created(
        self, token_id: int, buyer: str, amount_units: int,
    ) -> EscrowRecord | None:
        try:
            records = await self.list_for_token(token_id)
        except ReadError as e:
            logger.warning(
                f"Escrow reconciliation read failed: {e.message}",
                extra={"token_id": token_id},
            )
            return None
        for record in reversed(records):
            if (record.status in OPEN_STATUSES and record.buyer_address == buyer
                    and record.amount == amount_units):
                return record
        return None

    async def _read_owner(self, token_id: int) -> str:
        raw = await self._ctx.gateway.read(
            self._ctx.operations.query("get_property_owner", to_scalar_pair(token_id)),
        )
        return format_address(raw)


def _parse_kind(kind: EscrowKind | str) -> EscrowKind:
    try:
        return EscrowKind(kind)
    except ValueError:
        allowed = ", ".join(k.value for k in EscrowKind)
        raise ValidationError(f"Escrow kind must be one of: {allowed}", "kind")


def _parse_amount(amount: Decimal | int | str) -> Decimal:
    if isinstance(amount, bool):
        raise ValidationError("Escrow amount must be a number", "amount")
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValidationError("Escrow amount must be a number", "amount")
    if not value.is_finite() or value <= 0:
        raise ValidationError("Escrow amount must be positive", "amount")
    return value
