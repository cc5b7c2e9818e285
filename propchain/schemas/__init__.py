"""Pydantic Schemas - request/response validation for API endpoints.

Invariants:
    - Schemas validate at the system boundary (user input, API responses)
    - Domain types from core/ used for enum fields
    - Ledger identifiers and fixed-point amounts serialize as strings

Design Decisions:
    - Separate from models: schemas are API contracts, models are persistence
"""
