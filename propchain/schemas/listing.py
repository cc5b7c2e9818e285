"""Listing Schemas - Pydantic models with field-level validation for the listings API.

Invariants:
    - ListingCreate.price > 0; appointment_fee >= 0
    - ListingUpdate forbids unknown fields, which keeps the ledger mirror
      (token_id, on_chain, verified, ...) out of reach of PATCH
    - Listing star rating: 0..5, off-ledger

Design Decisions:
    - Decimal prices: the mint call scales them exactly, floats would not
    - token_id serialized as text: u256 ids exceed JSON-safe integers
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from propchain.core.domain_types import ListingPurpose, PropertyType


class SizeInfo(BaseModel):
    total_area: float | None = Field(None, ge=0)
    bedrooms: int | None = Field(None, ge=0)
    bathrooms: int | None = Field(None, ge=0)
    parking: int | None = Field(None, ge=0)
    dimensions: str | None = Field(None, max_length=100)


class AgentInfo(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    phone: str = Field(min_length=3, max_length=50)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    photo: str | None = None
    company: str | None = None
    position: str | None = None


class ListingCreate(BaseModel):
    """Listing creation: everything except the ledger mirror."""
    model_config = ConfigDict(use_enum_values=True)

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=10_000)
    location: str = Field(min_length=1, max_length=300)
    type: PropertyType
    purpose: ListingPurpose
    price: Decimal = Field(gt=0)
    appointment_fee: Decimal = Field(Decimal("0"), ge=0)
    size: SizeInfo = Field(default_factory=SizeInfo)
    images: list[str] = Field(default_factory=list)
    videos: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    amenities: list[str] = Field(default_factory=list)
    agent: AgentInfo
    is_featured: bool = False
    additional_details: dict | None = None
    region: str = Field(min_length=1, max_length=100)
    district: str = Field("", max_length=100)
    area: str = Field("", max_length=100)

    @field_validator("title", "location", "region")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty or whitespace")
        return v


class ListingUpdate(BaseModel):
    """Partial update. Token fields are not accepted."""
    model_config = ConfigDict(extra="forbid", use_enum_values=True)

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, min_length=1, max_length=10_000)
    location: str | None = Field(None, min_length=1, max_length=300)
    type: PropertyType | None = None
    purpose: ListingPurpose | None = None
    price: Decimal | None = Field(None, gt=0)
    appointment_fee: Decimal | None = Field(None, ge=0)
    size: SizeInfo | None = None
    images: list[str] | None = None
    videos: list[str] | None = None
    tags: list[str] | None = None
    amenities: list[str] | None = None
    agent: AgentInfo | None = None
    additional_details: dict | None = None
    region: str | None = Field(None, min_length=1, max_length=100)
    district: str | None = Field(None, max_length=100)
    area: str | None = Field(None, max_length=100)


class RatingSubmit(BaseModel):
    rating: float = Field(ge=0, le=5)


class ListingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str
    location: str
    type: PropertyType
    purpose: ListingPurpose
    price: Decimal
    appointment_fee: Decimal
    size: dict
    images: list[str]
    videos: list[str]
    tags: list[str]
    amenities: list[str]
    agent: dict
    is_featured: bool
    additional_details: dict | None = None
    date_posted: datetime
    views: int
    favorites: int
    rating: float | None = None
    review_count: int
    region: str
    district: str
    area: str
    token_id: str | None = None
    mint_tx_ref: str | None = None
    on_chain: bool
    verified: bool
    verification_tx_ref: str | None = None
    verified_at: datetime | None = None
    owner_wallet_address: str | None = None

    @field_serializer("price", "appointment_fee")
    def serialize_amount(self, value: Decimal) -> str:
        return format(value.normalize(), "f")


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ListingPage(BaseModel):
    listings: list[ListingResponse]
    pagination: Pagination


SortField = Literal["date_posted", "price", "views", "rating", "favorites"]
SortOrder = Literal["asc", "desc"]
