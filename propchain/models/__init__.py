"""ORM Models - SQLAlchemy declarative models for persisted entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Property is the aggregate root; appointments are scoped by property_id

Design Decisions:
    - One file per entity
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from propchain.models.property import Property  # noqa: F401
from propchain.models.appointment import Appointment  # noqa: F401
