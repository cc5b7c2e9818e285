"""Infrastructure Layer - database, listing store, ledger gateways and logging.

Invariants:
    - Infrastructure imports core/ types, errors and protocols, never services/
    - Every ledger call is wrapped with retry, timeout and error mapping

Design Decisions:
    - Resilient wrapper over the raw JSON-RPC client; the in-memory ledger
      implements the same LedgerGateway protocol for local runs and tests
"""
