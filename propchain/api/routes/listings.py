"""Listing Routes - CRUD, search and engagement counters for property listings.

Invariants:
    - Ledger mirror columns are never written here (ListingUpdate forbids them)
    - A tokenized listing cannot be deleted (ListingTokenizedError, 409)
    - GET /{id} increments views; favorite and rating mutate counters only

Design Decisions:
    - Amenity filter matches every requested amenity against the JSON column
      as text: portable across PostgreSQL and SQLite
    - Star rating is an off-ledger running average; agent reputation lives on the ledger
"""

import logging
import math
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import String, cast, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from propchain.core.domain_types import ListingPurpose, PropertyType, TokenState
from propchain.core.errors import ListingTokenizedError, ResourceNotFoundError
from propchain.core.reputation_rules import running_average
from propchain.infrastructure.database import get_db
from propchain.infrastructure.listing_store import to_listing_record
from propchain.models.property import Property
from propchain.schemas.listing import (
    ListingCreate,
    ListingPage,
    ListingResponse,
    ListingUpdate,
    Pagination,
    RatingSubmit,
    SortField,
    SortOrder,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/listings", tags=["listings"])

_SORT_COLUMNS = {
    "date_posted": Property.date_posted,
    "price": Property.price,
    "views": Property.views,
    "rating": Property.rating,
    "favorites": Property.favorites,
}


async def get_listing_or_404(listing_id: UUID, db: AsyncSession) -> Property:
    """Get listing row or raise ResourceNotFoundError. Shared with appointments."""
    listing = await db.get(Property, listing_id)
    if listing is None:
        raise ResourceNotFoundError("Listing", str(listing_id))
    return listing


@router.get("", response_model=ListingPage)
async def list_listings(
    type: PropertyType | None = Query(None),
    purpose: ListingPurpose | None = Query(None),
    min_price: Decimal | None = Query(None, ge=0),
    max_price: Decimal | None = Query(None, ge=0),
    location: str | None = Query(None, max_length=300),
    amenities: str | None = Query(None, description="Comma-separated, all must match"),
    sort_by: SortField = Query("date_posted"),
    sort_order: SortOrder = Query("desc"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """List listings with filters, sorting and pagination."""
    query = select(Property)
    if type:
        query = query.where(Property.type == type.value)
    if purpose:
        query = query.where(Property.purpose == purpose.value)
    if min_price is not None:
        query = query.where(Property.price >= min_price)
    if max_price is not None:
        query = query.where(Property.price <= max_price)
    if location:
        query = query.where(Property.location.ilike(f"%{location}%"))
    if amenities:
        for amenity in filter(None, (a.strip() for a in amenities.split(","))):
            query = query.where(cast(Property.amenities, String).like(f'%"{amenity}"%'))

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    column = _SORT_COLUMNS[sort_by]
    query = (
        query.order_by(column.desc() if sort_order == "desc" else column.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(query)
    return ListingPage(
        listings=[ListingResponse.model_validate(p) for p in result.scalars().all()],
        pagination=Pagination(
            page=page, limit=limit, total=total or 0,
            pages=math.ceil((total or 0) / limit),
        ),
    )


@router.get("/featured", response_model=list[ListingResponse])
async def featured_listings(
    limit: int = Query(10, ge=1, le=100), db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Property)
        .where(Property.is_featured.is_(True))
        .order_by(Property.date_posted.desc())
        .limit(limit),
    )
    return result.scalars().all()


@router.get("/recent", response_model=list[ListingResponse])
async def recent_listings(
    limit: int = Query(20, ge=1, le=100), db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Property).order_by(Property.date_posted.desc()).limit(limit),
    )
    return result.scalars().all()


@router.get("/{listing_id}", response_model=ListingResponse)
async def get_listing(listing_id: UUID, db: AsyncSession = Depends(get_db)):
    """Get one listing. Counts as a view."""
    listing = await get_listing_or_404(listing_id, db)
    listing.views += 1
    await db.commit()
    return listing


@router.post("", response_model=ListingResponse, status_code=status.HTTP_201_CREATED)
async def create_listing(body: ListingCreate, db: AsyncSession = Depends(get_db)):
    listing = Property(**body.model_dump(mode="python"))
    db.add(listing)
    await db.commit()
    await db.refresh(listing)
    logger.info("Listing created", extra={"listing_id": str(listing.id)})
    return listing


@router.patch("/{listing_id}", response_model=ListingResponse)
async def update_listing(
    listing_id: UUID, body: ListingUpdate, db: AsyncSession = Depends(get_db),
):
    listing = await get_listing_or_404(listing_id, db)
    for key, value in body.model_dump(exclude_unset=True, mode="python").items():
        setattr(listing, key, value)
    await db.commit()
    await db.refresh(listing)
    return listing


@router.delete("/{listing_id}")
async def delete_listing(listing_id: UUID, db: AsyncSession = Depends(get_db)):
    """Delete an untokenized listing and its appointments."""
    listing = await get_listing_or_404(listing_id, db)
    if to_listing_record(listing).token.state is not TokenState.UNMINTED:
        raise ListingTokenizedError(str(listing_id))
    await db.delete(listing)
    await db.commit()
    logger.info("Listing deleted", extra={"listing_id": str(listing_id)})
    return {"message": "Listing deleted", "id": str(listing_id)}


@router.patch("/{listing_id}/featured", response_model=ListingResponse)
async def toggle_featured(listing_id: UUID, db: AsyncSession = Depends(get_db)):
    listing = await get_listing_or_404(listing_id, db)
    listing.is_featured = not listing.is_featured
    await db.commit()
    return listing


@router.patch("/{listing_id}/favorite", response_model=ListingResponse)
async def add_favorite(listing_id: UUID, db: AsyncSession = Depends(get_db)):
    listing = await get_listing_or_404(listing_id, db)
    listing.favorites += 1
    await db.commit()
    return listing


@router.patch("/{listing_id}/rating", response_model=ListingResponse)
async def rate_listing(
    listing_id: UUID, body: RatingSubmit, db: AsyncSession = Depends(get_db),
):
    """Fold one star rating into the listing's running average."""
    listing = await get_listing_or_404(listing_id, db)
    listing.rating, listing.review_count = running_average(
        listing.rating, listing.review_count, body.rating,
    )
    await db.commit()
    return listing
