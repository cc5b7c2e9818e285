"""Route Modules - one file per resource.

Invariants:
    - Each module defines its own APIRouter with prefix and tags
    - Routes never write ledger mirror fields directly; only orchestrators do
"""
