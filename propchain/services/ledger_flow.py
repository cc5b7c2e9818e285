"""Ledger Flow - submit-then-confirm helper shared by the orchestrators.

Invariants:
    - A call is reported successful only after await_finality returns
    - Errors leave here with the caller's correlation fields attached
    - Errors raised inside after_confirmation() carry Outcome.APPLIED and the
      confirmed tx_ref: the write landed, only the local follow-up failed
"""

import logging
from contextlib import contextmanager
from dataclasses import fields
from typing import Iterator
from uuid import UUID

from propchain.core.domain_types import Outcome
from propchain.core.errors import ErrorContext, PropChainError, ResourceNotFoundError
from propchain.core.ledger_calls import CallSpec, ConfirmedResult
from propchain.core.repository_protocols import LedgerGateway, ListingStore
from propchain.core.token_state import ListingRecord

logger = logging.getLogger(__name__)


async def submit_and_confirm(
    gateway: LedgerGateway, call: CallSpec, context: ErrorContext,
) -> ConfirmedResult:
    log_extra = _log_fields(context)
    try:
        pending = await gateway.submit(call)
        logger.info(
            f"Awaiting finality for {call.operation}",
            extra={**log_extra, "tx_ref": pending.tx_ref},
        )
        result = await gateway.await_finality(pending)
    except PropChainError as e:
        enrich(e, context)
        logger.warning(
            f"{call.operation} failed: {e.message}",
            extra={**log_extra, "error_code": e.code, "tx_ref": e.context.tx_ref},
        )
        raise
    logger.info(
        f"{call.operation} confirmed",
        extra={**log_extra, "tx_ref": result.tx_ref},
    )
    return result


@contextmanager
def after_confirmation(tx_ref: str | None, context: ErrorContext) -> Iterator[None]:
    """Wrap the steps that run once the ledger has confirmed a write."""
    try:
        yield
    except PropChainError as e:
        enrich(e, context)
        e.outcome = Outcome.APPLIED
        e.context.tx_ref = tx_ref or e.context.tx_ref
        logger.error(
            f"{context.operation} confirmed on the ledger but a follow-up step failed: {e.message}",
            extra={**_log_fields(context), "error_code": e.code, "tx_ref": e.context.tx_ref},
        )
        raise


def enrich(error: PropChainError, context: ErrorContext) -> None:
    """Copy correlation fields the error does not already carry."""
    for f in fields(ErrorContext):
        if f.name == "timestamp":
            continue
        if getattr(error.context, f.name) is None:
            setattr(error.context, f.name, getattr(context, f.name))


async def load_listing(store: ListingStore, listing_id: UUID) -> ListingRecord:
    listing = await store.get(listing_id)
    if listing is None:
        raise ResourceNotFoundError("Listing", str(listing_id))
    return listing


def _log_fields(context: ErrorContext) -> dict:
    return {
        "listing_id": context.listing_id,
        "token_id": context.token_id,
        "escrow_id": context.escrow_id,
        "agent_address": context.agent_address,
        "operation": context.operation,
    }
