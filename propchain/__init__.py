"""PropChain Backend - keeps property listings consistent with an append-only ledger.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""
