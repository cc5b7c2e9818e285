"""Test doubles and shared constants for the orchestrator boundaries."""

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from propchain.core.domain_types import ListingId, PropertyType
from propchain.core.errors import ReadError, ResourceNotFoundError
from propchain.core.ledger_calls import CallSpec, ConfirmedResult, PendingRef, QuerySpec
from propchain.core.token_state import ListingRecord, ListingTokenRecord, validate_token_patch

LEDGER_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
OWNER = "0xa11ce"
BUYER = "0xb0b"
AGENT = "0xa9e47"
REVIEWER = "0x4e71e3e4"


class FakeListingStore:
    """Dict-backed ListingStore. Records every put for assertions."""

    def __init__(self):
        self.records: dict = {}
        self.puts: list[tuple] = []
        self.gets = 0
        self._put_failure: Exception | None = None

    def add(
        self,
        price: Decimal = Decimal("15000000"),
        property_type: PropertyType = PropertyType.HOUSE,
        location: str = "Kololo, Kampala",
        region: str = "Central",
        district: str = "Kampala",
        **token_fields,
    ) -> ListingRecord:
        listing_id = ListingId(uuid4())
        record = ListingRecord(
            token=ListingTokenRecord(listing_id=listing_id, **token_fields),
            price=price,
            property_type=property_type,
            location=location,
            region=region,
            district=district,
        )
        self.records[listing_id] = record
        return record

    async def get(self, listing_id):
        self.gets += 1
        return self.records.get(listing_id)

    async def get_by_token(self, token_id):
        self.gets += 1
        for record in self.records.values():
            if record.token.token_id == token_id:
                return record
        return None

    def fail_next_put(self, error: Exception) -> None:
        self._put_failure = error

    async def put(self, listing_id, patch: dict) -> ListingRecord:
        if self._put_failure is not None:
            error, self._put_failure = self._put_failure, None
            raise error
        validate_token_patch(patch)
        record = self.records.get(listing_id)
        if record is None:
            raise ResourceNotFoundError("Listing", str(listing_id))
        updated = replace(record, token=record.token.apply(patch))
        self.records[listing_id] = updated
        self.puts.append((listing_id, dict(patch)))
        return updated


class SpyGateway:
    """Wraps a LedgerGateway and records every call made through it."""

    def __init__(self, inner):
        self.inner = inner
        self.calls: list[tuple[str, Any]] = []

    async def submit(self, call: CallSpec) -> PendingRef:
        self.calls.append(("submit", call))
        return await self.inner.submit(call)

    async def await_finality(self, pending: PendingRef) -> ConfirmedResult:
        self.calls.append(("await_finality", pending))
        return await self.inner.await_finality(pending)

    async def read(self, query: QuerySpec) -> Any:
        self.calls.append(("read", query))
        return await self.inner.read(query)


class FailingReads(SpyGateway):
    """Reads fail for the named operations (all, when none are named).

    With after_submit, reads only start failing once a submit went through.
    """

    def __init__(self, inner, *operations: str, after_submit: bool = False):
        super().__init__(inner)
        self.operations = set(operations)
        self.after_submit = after_submit

    async def read(self, query: QuerySpec) -> Any:
        targeted = not self.operations or query.operation in self.operations
        armed = not self.after_submit or any(kind == "submit" for kind, _ in self.calls)
        if targeted and armed:
            self.calls.append(("read", query))
            raise ReadError(f"Ledger node unavailable for {query.operation}")
        return await super().read(query)
