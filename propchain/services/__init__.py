"""Services Layer - ledger orchestrators, per-entity locks and the ledger context.

Invariants:
    - Mirror fields on a listing change only after ledger finality
    - Writes to one token, listing or agent are serialized by an entity lock

Design Decisions:
    - One orchestrator per contract (registry, escrow, reputation)
    - Boundaries injected through LedgerContext, never imported as singletons
"""
