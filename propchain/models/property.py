"""Property ORM - persists listings and the mirrored ledger token state.

Invariants:
    - id is UUID primary key
    - token_id stored as decimal text: ledger ids are u256 and exceed BIGINT
    - Token columns (token_id .. owner_wallet_address) are written only through
      the listing store's put(), never by listing CRUD routes
    - verified implies on_chain

Design Decisions:
    - JSON columns for size, agent, media and amenities: read whole, never queried by key
    - Numeric price: the mint call scales it losslessly to fixed point
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    String, Text, Integer, Float, Boolean, DateTime, Numeric, JSON, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from propchain.db.base import Base


class Property(Base):
    """A property listing and its tokenized mirror."""
    __tablename__ = "properties"
    __table_args__ = (
        CheckConstraint("NOT verified OR on_chain", name="ck_properties_verified_on_chain"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str] = mapped_column(String(300), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    purpose: Mapped[str] = mapped_column(String(20), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(24, 4), nullable=False)
    appointment_fee: Mapped[Decimal] = mapped_column(
        Numeric(24, 4), nullable=False, default=Decimal("0"),
    )
    size: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    videos: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    amenities: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    agent: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    additional_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    date_posted: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    favorites: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    review_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    region: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    district: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    area: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    # Ledger mirror
    token_id: Mapped[str | None] = mapped_column(
        String(80), nullable=True, unique=True, index=True,
    )
    mint_tx_ref: Mapped[str | None] = mapped_column(String(80), nullable=True)
    on_chain: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True,
    )
    verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True,
    )
    verification_tx_ref: Mapped[str | None] = mapped_column(String(80), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    owner_wallet_address: Mapped[str | None] = mapped_column(String(80), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    appointments: Mapped[list["Appointment"]] = relationship(
        "Appointment", back_populates="property",
        cascade="all, delete-orphan", lazy="select",
    )
