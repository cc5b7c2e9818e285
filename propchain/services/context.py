"""Ledger Context - everything the orchestrators share, built once at startup.

Invariants:
    - One LedgerContext per process: locks and escrow observations are only
      meaningful when every request sees the same instance
    - Orchestrators receive the context explicitly; there is no module-level gateway

Design Decisions:
    - Plain dataclass, wired in the FastAPI lifespan and stored on app.state
    - Escrow observations are an LRU bounded by settings.escrow_observation_cache_size;
      an evicted escrow is judged afresh on its next read
    - Backend chosen by settings.ledger_backend; the memory backend fills in
      placeholder contract addresses so the service starts with no ledger configured
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from propchain.config import Settings
from propchain.core.domain_types import DEFAULT_PRICE_SCALE_EXPONENT, EscrowStatus
from propchain.core.ledger_calls import OperationTable
from propchain.core.repository_protocols import LedgerGateway, ListingStore
from propchain.infrastructure.ledger_gateway import ResilientLedgerGateway
from propchain.infrastructure.listing_store import SqlListingStore
from propchain.infrastructure.memory_ledger import DEFAULT_ADDRESSES, InMemoryLedger
from propchain.services.entity_locks import EntityLocks

logger = logging.getLogger(__name__)

DEFAULT_OBSERVATION_CACHE_SIZE = 10_000


class EscrowObservations:
    """escrow_id -> last accepted status, least recently used evicted first."""

    def __init__(self, max_entries: int = DEFAULT_OBSERVATION_CACHE_SIZE):
        self.max_entries = max_entries
        self._statuses: "OrderedDict[int, EscrowStatus]" = OrderedDict()

    def get(self, escrow_id: int) -> EscrowStatus | None:
        status = self._statuses.get(escrow_id)
        if status is not None:
            self._statuses.move_to_end(escrow_id)
        return status

    def __getitem__(self, escrow_id: int) -> EscrowStatus:
        return self._statuses[escrow_id]

    def __setitem__(self, escrow_id: int, status: EscrowStatus) -> None:
        self._statuses[escrow_id] = status
        self._statuses.move_to_end(escrow_id)
        while len(self._statuses) > self.max_entries:
            self._statuses.popitem(last=False)

    def __contains__(self, escrow_id: object) -> bool:
        return escrow_id in self._statuses

    def __len__(self) -> int:
        return len(self._statuses)


@dataclass
class LedgerContext:
    gateway: LedgerGateway
    listings: ListingStore
    operations: OperationTable
    locks: EntityLocks = field(default_factory=EntityLocks)
    price_scale_exponent: int = DEFAULT_PRICE_SCALE_EXPONENT
    metadata_base_url: str = "https://api.propchain.example"
    history_page_size: int = 50
    escrow_observations: EscrowObservations = field(default_factory=EscrowObservations)


def build_ledger_context(
    settings: Settings, session_factory: async_sessionmaker[AsyncSession],
) -> LedgerContext:
    addresses = settings.contract_addresses()
    if settings.ledger_backend == "memory":
        gateway: LedgerGateway = InMemoryLedger()
        addresses = {c: a or DEFAULT_ADDRESSES[c] for c, a in addresses.items()}
    else:
        gateway = ResilientLedgerGateway(
            settings.ledger_rpc_url,
            api_key=settings.ledger_api_key,
            max_retries=settings.ledger_max_retries,
            base_delay_ms=settings.ledger_base_delay_ms,
            max_delay_ms=settings.ledger_max_delay_ms,
            request_timeout_seconds=settings.ledger_request_timeout_seconds,
            finality_timeout_seconds=settings.ledger_finality_timeout_seconds,
            poll_interval_ms=settings.ledger_finality_poll_interval_ms,
        )

    operations = OperationTable(addresses)
    missing = sorted(c.value for c in addresses if c not in operations.configured_contracts)
    if missing:
        logger.warning(f"Ledger contracts not configured: {', '.join(missing)}")
    logger.info(f"Ledger backend: {settings.ledger_backend}")

    return LedgerContext(
        gateway=gateway,
        listings=SqlListingStore(session_factory),
        operations=operations,
        price_scale_exponent=settings.price_scale_exponent,
        metadata_base_url=settings.metadata_base_url.rstrip("/"),
        history_page_size=settings.ledger_history_page_size,
        escrow_observations=EscrowObservations(settings.escrow_observation_cache_size),
    )


async def close_ledger_context(ctx: LedgerContext) -> None:
    aclose = getattr(ctx.gateway, "aclose", None)
    if aclose is not None:
        await aclose()
