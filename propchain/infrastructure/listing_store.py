"""SQL Listing Store - ListingStore over the properties table.

Invariants:
    - Each call opens and closes its own session: orchestrators hold no DB session
      across ledger waits
    - put() writes token fields only (validate_token_patch) and commits before returning
    - token_id round-trips as decimal text

Design Decisions:
    - Session factory injected, not the request session: orchestrator writes must
      commit independently of the HTTP request that triggered them
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from propchain.core.domain_types import ListingId, PropertyType
from propchain.core.errors import ResourceNotFoundError
from propchain.core.token_state import ListingRecord, ListingTokenRecord, validate_token_patch
from propchain.infrastructure.database import translate_db_errors
from propchain.models.property import Property

logger = logging.getLogger(__name__)


def to_listing_record(row: Property) -> ListingRecord:
    token = ListingTokenRecord(
        listing_id=ListingId(row.id),
        token_id=int(row.token_id) if row.token_id else None,
        mint_tx_ref=row.mint_tx_ref,
        on_chain=bool(row.on_chain),
        verified=bool(row.verified),
        verification_tx_ref=row.verification_tx_ref,
        verified_at=row.verified_at,
        owner_wallet_address=row.owner_wallet_address,
    )
    return ListingRecord(
        token=token,
        price=row.price,
        property_type=PropertyType(row.type),
        location=row.location,
        region=row.region,
        district=row.district or "",
    )


class SqlListingStore:
    """Listing store backed by the async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, listing_id: UUID) -> ListingRecord | None:
        async with translate_db_errors(self._session_factory()) as db:
            row = await db.get(Property, listing_id)
            return to_listing_record(row) if row else None

    async def get_by_token(self, token_id: int) -> ListingRecord | None:
        async with translate_db_errors(self._session_factory()) as db:
            result = await db.execute(
                select(Property).where(Property.token_id == str(token_id)),
            )
            row = result.scalar_one_or_none()
            return to_listing_record(row) if row else None

    async def put(self, listing_id: UUID, patch: dict) -> ListingRecord:
        validate_token_patch(patch)
        async with translate_db_errors(self._session_factory()) as db:
            row = await db.get(Property, listing_id)
            if row is None:
                raise ResourceNotFoundError("Listing", str(listing_id))
            for key, value in patch.items():
                if key == "token_id" and value is not None:
                    value = str(value)
                setattr(row, key, value)
            await db.commit()
            logger.info(
                "Listing token fields updated",
                extra={"listing_id": str(listing_id), "operation": ",".join(sorted(patch))},
            )
            return to_listing_record(row)
