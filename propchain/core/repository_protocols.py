"""Boundary Protocols - contracts between core and shell.

Invariants:
    - Core NEVER imports from shell: dependency arrows point inward only
    - The ledger and the listing store are reached only through these Protocols
    - Implementations provided by shell via dependency injection (LedgerContext)

Design Decisions:
    - Protocol over ABC: structural subtyping, test doubles need no inheritance
    - Async in Protocol: boundary methods do IO; the pure rules in core/ stay sync
"""

from typing import Any, Protocol

from propchain.core.domain_types import ListingId, TokenId
from propchain.core.ledger_calls import CallSpec, ConfirmedResult, PendingRef, QuerySpec
from propchain.core.token_state import ListingRecord


class LedgerGateway(Protocol):
    """The only way the core talks to the ledger.

    submit() returns once the call is accepted for inclusion and raises
    SubmissionError on outright rejection. await_finality() suspends until the
    transaction is final: TransactionRevertedError if execution reverted,
    FinalityError after the bounded wait. read() raises ReadError.
    Resubmitting a CallSpec with the same idempotency_key yields the same
    transaction, never a second effect.
    """
    async def submit(self, call: CallSpec) -> PendingRef: ...
    async def await_finality(self, pending: PendingRef) -> ConfirmedResult: ...
    async def read(self, query: QuerySpec) -> Any: ...


class ListingStore(Protocol):
    """Contract for listing persistence as seen by the orchestrators."""
    async def get(self, listing_id: ListingId) -> ListingRecord | None: ...
    async def get_by_token(self, token_id: TokenId) -> ListingRecord | None: ...
    async def put(self, listing_id: ListingId, patch: dict) -> ListingRecord: ...
