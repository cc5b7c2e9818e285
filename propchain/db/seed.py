"""Sample listings for local development: python -m propchain.db.seed

Inserts listings whose titles are not present yet; never touches existing rows,
so tokenized listings survive a re-seed.
"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from propchain.config import get_settings
from propchain.db.session import create_session_factory
from propchain.infrastructure.observability import setup_logging
from propchain.models.property import Property

logger = logging.getLogger(__name__)

SAMPLE_LISTINGS = [
    {
        "title": "Luxury Villa in Kololo",
        "description": (
            "Stunning 5-bedroom villa with panoramic views of Kampala. Features a "
            "private pool, landscaped gardens, and modern amenities."
        ),
        "location": "Kololo, Kampala",
        "type": "villa",
        "purpose": "rent",
        "price": Decimal("15000000"),
        "appointment_fee": Decimal("50000"),
        "size": {"bedrooms": 5, "bathrooms": 4, "parking": 3, "total_area": 450},
        "images": ["https://images.unsplash.com/photo-1613977257363-707ba9348227?w=800&q=80"],
        "tags": ["Luxury", "Pool", "Garden", "Security"],
        "amenities": [
            "Swimming Pool", "Garden", "Security", "Parking",
            "Air Conditioning", "Backup Power",
        ],
        "agent": {
            "name": "Sarah Johnson",
            "phone": "+256 700 123456",
            "email": "sarah@realestate.ug",
        },
        "is_featured": True,
        "date_posted": datetime(2024, 2, 15, tzinfo=timezone.utc),
        "region": "Central",
        "district": "Kampala",
        "area": "Kololo",
    },
    {
        "title": "Modern Apartment in Nakasero",
        "description": (
            "Contemporary 3-bedroom apartment in the heart of Nakasero. Walking "
            "distance to restaurants and shopping centers."
        ),
        "location": "Nakasero, Kampala",
        "type": "apartment",
        "purpose": "rent",
        "price": Decimal("8000000"),
        "appointment_fee": Decimal("30000"),
        "size": {"bedrooms": 3, "bathrooms": 2, "parking": 2, "total_area": 180},
        "images": ["https://images.unsplash.com/photo-1522708323590-d24dbb6b0267?w=800&q=80"],
        "tags": ["Modern", "Central", "Furnished"],
        "amenities": ["Security", "Parking", "Air Conditioning", "Backup Power", "Gym"],
        "agent": {
            "name": "David Mukasa",
            "phone": "+256 700 234567",
            "email": "david@realestate.ug",
        },
        "date_posted": datetime(2024, 2, 20, tzinfo=timezone.utc),
        "region": "Central",
        "district": "Kampala",
        "area": "Nakasero",
    },
    {
        "title": "Family House in Bugolobi",
        "description": "Spacious 4-bedroom family home in a quiet, secure neighbourhood.",
        "location": "Bugolobi, Kampala",
        "type": "house",
        "purpose": "sale",
        "price": Decimal("650000000"),
        "appointment_fee": Decimal("20000"),
        "size": {"bedrooms": 4, "bathrooms": 3, "parking": 2, "total_area": 320},
        "amenities": ["Garden", "Security", "Parking"],
        "agent": {
            "name": "Grace Nambi",
            "phone": "+256 700 345678",
            "email": "grace@realestate.ug",
        },
        "date_posted": datetime(2024, 3, 1, tzinfo=timezone.utc),
        "region": "Central",
        "district": "Kampala",
        "area": "Bugolobi",
    },
]


async def seed(session_factory: async_sessionmaker[AsyncSession]) -> int:
    """Insert missing sample listings. Returns the number inserted."""
    async with session_factory() as db:
        existing = set(
            (await db.execute(select(Property.title))).scalars().all(),
        )
        added = [Property(**data) for data in SAMPLE_LISTINGS if data["title"] not in existing]
        db.add_all(added)
        await db.commit()
    return len(added)


async def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, "text")
    count = await seed(create_session_factory(settings.database_url))
    logger.info(f"Seeded {count} listings")


if __name__ == "__main__":
    asyncio.run(main())
