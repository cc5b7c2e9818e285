"""Escrow State - pure transition rules for observed escrow status.

Invariants:
    - All functions are PURE: no IO, no async
    - Allowed: pending -> funded -> {released, refunded}
               pending|funded -> disputed -> {released, refunded}
    - Terminal states (released, refunded) never change
    - Re-observing the current status is always allowed

Design Decisions:
    - The ledger moves escrows; these rules only judge observations, so a stale
      or regressing read is detected here instead of being cached
"""

from dataclasses import dataclass

from propchain.core.domain_types import EscrowId, EscrowKind, EscrowStatus, TokenId
from propchain.core.errors import ReadError

ALLOWED_TRANSITIONS: dict[EscrowStatus, frozenset[EscrowStatus]] = {
    EscrowStatus.PENDING: frozenset({EscrowStatus.FUNDED, EscrowStatus.DISPUTED}),
    EscrowStatus.FUNDED: frozenset({
        EscrowStatus.RELEASED, EscrowStatus.REFUNDED, EscrowStatus.DISPUTED,
    }),
    EscrowStatus.DISPUTED: frozenset({EscrowStatus.RELEASED, EscrowStatus.REFUNDED}),
    EscrowStatus.RELEASED: frozenset(),
    EscrowStatus.REFUNDED: frozenset(),
}

# Statuses that still encumber the property
OPEN_STATUSES = frozenset(s for s in EscrowStatus if not s.is_terminal)


@dataclass(frozen=True)
class EscrowRecord:
    """Read-through snapshot of one ledger escrow."""
    escrow_id: EscrowId
    property_token_id: TokenId
    buyer_address: str
    seller_address: str
    amount: int
    kind: EscrowKind
    status: EscrowStatus
    release_conditions: str = ""
    disputed: bool = False


def status_from_code(code: int) -> EscrowStatus:
    """Map the ledger's numeric status code (0..4) to the named state."""
    statuses = list(EscrowStatus)
    if not 0 <= code < len(statuses):
        raise ReadError(f"Ledger returned unknown escrow status code {code}")
    return statuses[code]


def kind_from_code(code: int) -> EscrowKind:
    kinds = list(EscrowKind)
    if not 0 <= code < len(kinds):
        raise ReadError(f"Ledger returned unknown escrow type code {code}")
    return kinds[code]


def is_valid_transition(previous: EscrowStatus, observed: EscrowStatus) -> bool:
    if previous is observed:
        return True
    return observed in ALLOWED_TRANSITIONS[previous]


def is_reachable(previous: EscrowStatus, observed: EscrowStatus) -> bool:
    """True if observed can follow previous through one or more allowed steps."""
    frontier = [previous]
    seen = {previous}
    while frontier:
        current = frontier.pop()
        if current is observed:
            return True
        for nxt in ALLOWED_TRANSITIONS[current]:
            if nxt not in seen:
                seen.add(nxt)
                frontier.append(nxt)
    return False


def reconcile_status(
    cached: EscrowStatus | None, observed: EscrowStatus,
) -> tuple[EscrowStatus, bool]:
    """Fold a new observation into the cached status.

    Returns (status_to_keep, accepted). Observations that skip intermediate
    states (pending -> released seen across two reads) are accepted when
    reachable; regressions, including any move out of a terminal state, are
    rejected and the cached status is kept.
    """
    if cached is None:
        return observed, True
    if is_reachable(cached, observed):
        return observed, True
    return cached, False
