"""Seed script - inserts sample listings once."""

from sqlalchemy import func, select

from propchain.db.seed import SAMPLE_LISTINGS, seed
from propchain.models.property import Property


async def test_seed_is_idempotent(test_session_factory, test_db):
    assert await seed(test_session_factory) == len(SAMPLE_LISTINGS)
    assert await seed(test_session_factory) == 0

    count = await test_db.scalar(select(func.count()).select_from(Property))
    assert count == len(SAMPLE_LISTINGS)
