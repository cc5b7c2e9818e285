"""Ledger Call Table - static mapping from logical operation name to contract call signature.

Invariants:
    - Every state-changing call and every read the core performs is listed here
    - Argument count is checked against the signature before anything is submitted
    - The table is resolved once at startup against configured contract addresses
    - Every CallSpec carries an idempotency key; resubmitting the same key never
      produces a second ledger effect

Design Decisions:
    - Static table over runtime ABI loading: the signatures are configuration,
      adding an entrypoint requires editing this module
    - Frozen dataclasses: call specs are values, safe to log and compare
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from propchain.core.domain_types import Contract, TxRef
from propchain.core.errors import EncodingError, LedgerNotConfiguredError


@dataclass(frozen=True)
class OperationSignature:
    """Call signature of one contract entrypoint."""
    contract: Contract
    entrypoint: str
    arg_names: tuple[str, ...]


@dataclass(frozen=True)
class ResolvedOperation:
    """OperationSignature bound to a deployed contract address."""
    name: str
    contract_address: str
    signature: OperationSignature


@dataclass(frozen=True)
class CallSpec:
    """A state-changing ledger call, ready for submission."""
    operation: str
    contract_address: str
    entrypoint: str
    args: tuple[Any, ...]
    idempotency_key: str


@dataclass(frozen=True)
class QuerySpec:
    """A read-only ledger call."""
    operation: str
    contract_address: str
    entrypoint: str
    args: tuple[Any, ...] = ()


@dataclass(frozen=True)
class PendingRef:
    """Handle for a submitted, not yet final, transaction."""
    tx_ref: TxRef
    call: CallSpec


@dataclass(frozen=True)
class ConfirmedResult:
    """A transaction included in a finalized block with successful execution."""
    tx_ref: TxRef
    return_values: dict[str, Any] = field(default_factory=dict)
    block_number: int | None = None
    block_timestamp: datetime | None = None


# ─── Write operations ───────────────────────────────────────────

LEDGER_OPERATIONS: dict[str, OperationSignature] = {
    "mint_property": OperationSignature(
        Contract.PROPERTY_REGISTRY, "mint_property",
        ("property_id", "owner", "metadata_uri", "price_low", "price_high",
         "property_type", "location_hash"),
    ),
    "verify_property": OperationSignature(
        Contract.PROPERTY_REGISTRY, "verify_property",
        ("token_low", "token_high", "verifier"),
    ),
    "create_escrow": OperationSignature(
        Contract.ESCROW, "create_escrow",
        ("token_low", "token_high", "buyer", "amount_low", "amount_high",
         "escrow_type", "release_conditions"),
    ),
    "register_agent": OperationSignature(
        Contract.REPUTATION, "register_agent",
        ("agent", "metadata_uri"),
    ),
    "add_review": OperationSignature(
        Contract.REPUTATION, "add_review",
        ("agent", "reviewer", "rating", "token_low", "token_high", "review_hash"),
    ),
    "report_fraud": OperationSignature(
        Contract.REPUTATION, "report_fraud",
        ("agent", "token_low", "token_high", "evidence_hash"),
    ),
}


# ─── Read operations ────────────────────────────────────────────

LEDGER_QUERIES: dict[str, OperationSignature] = {
    # Registry
    "get_token_by_property": OperationSignature(
        Contract.PROPERTY_REGISTRY, "get_token_by_property", ("property_id",),
    ),
    "get_property_owner": OperationSignature(
        Contract.PROPERTY_REGISTRY, "get_property_owner", ("token_low", "token_high"),
    ),
    "get_property_metadata": OperationSignature(
        Contract.PROPERTY_REGISTRY, "get_property_metadata", ("token_low", "token_high"),
    ),
    "get_property_price": OperationSignature(
        Contract.PROPERTY_REGISTRY, "get_property_price", ("token_low", "token_high"),
    ),
    "is_verified": OperationSignature(
        Contract.PROPERTY_REGISTRY, "is_verified", ("token_low", "token_high"),
    ),
    "get_verification_timestamp": OperationSignature(
        Contract.PROPERTY_REGISTRY, "get_verification_timestamp",
        ("token_low", "token_high"),
    ),
    "get_property_history": OperationSignature(
        Contract.PROPERTY_REGISTRY, "get_property_history",
        ("token_low", "token_high", "offset", "limit"),
    ),
    # Escrow
    "get_escrow_status": OperationSignature(
        Contract.ESCROW, "get_escrow_status", ("escrow_low", "escrow_high"),
    ),
    "get_escrow_amount": OperationSignature(
        Contract.ESCROW, "get_escrow_amount", ("escrow_low", "escrow_high"),
    ),
    "get_escrow_parties": OperationSignature(
        Contract.ESCROW, "get_escrow_parties", ("escrow_low", "escrow_high"),
    ),
    "get_escrow_details": OperationSignature(
        Contract.ESCROW, "get_escrow_details", ("escrow_low", "escrow_high"),
    ),
    "is_disputed": OperationSignature(
        Contract.ESCROW, "is_disputed", ("escrow_low", "escrow_high"),
    ),
    "get_property_escrows": OperationSignature(
        Contract.ESCROW, "get_property_escrows", ("token_low", "token_high"),
    ),
    # Reputation
    "get_agent_score": OperationSignature(
        Contract.REPUTATION, "get_agent_score", ("agent",),
    ),
    "get_agent_review_count": OperationSignature(
        Contract.REPUTATION, "get_agent_review_count", ("agent",),
    ),
    "is_agent_verified": OperationSignature(
        Contract.REPUTATION, "is_agent_verified", ("agent",),
    ),
    "get_fraud_reports": OperationSignature(
        Contract.REPUTATION, "get_fraud_reports", ("agent",),
    ),
}


class OperationTable:
    """LEDGER_OPERATIONS and LEDGER_QUERIES bound to contract addresses."""

    def __init__(self, addresses: dict[Contract, str | None]):
        self._addresses = dict(addresses)
        self._resolved: dict[str, ResolvedOperation] = {}
        for table in (LEDGER_OPERATIONS, LEDGER_QUERIES):
            for name, signature in table.items():
                address = self._addresses.get(signature.contract)
                if address:
                    self._resolved[name] = ResolvedOperation(name, address, signature)

    @property
    def configured_contracts(self) -> set[Contract]:
        return {c for c, address in self._addresses.items() if address}

    def resolve(self, name: str) -> ResolvedOperation:
        if name not in LEDGER_OPERATIONS and name not in LEDGER_QUERIES:
            raise KeyError(f"Unknown ledger operation '{name}'")
        resolved = self._resolved.get(name)
        if resolved is None:
            raise LedgerNotConfiguredError(name)
        return resolved

    def call(self, name: str, args: tuple, idempotency_key: str) -> CallSpec:
        """Build a CallSpec for a write operation."""
        if name not in LEDGER_OPERATIONS:
            raise KeyError(f"'{name}' is not a write operation")
        op = self.resolve(name)
        _check_arity(op, args)
        return CallSpec(
            operation=name,
            contract_address=op.contract_address,
            entrypoint=op.signature.entrypoint,
            args=tuple(args),
            idempotency_key=idempotency_key,
        )

    def query(self, name: str, args: tuple = ()) -> QuerySpec:
        """Build a QuerySpec for a read operation."""
        if name not in LEDGER_QUERIES:
            raise KeyError(f"'{name}' is not a read operation")
        op = self.resolve(name)
        _check_arity(op, args)
        return QuerySpec(
            operation=name,
            contract_address=op.contract_address,
            entrypoint=op.signature.entrypoint,
            args=tuple(args),
        )


def _check_arity(op: ResolvedOperation, args: tuple) -> None:
    expected = len(op.signature.arg_names)
    if len(args) != expected:
        raise EncodingError(
            f"{op.name} expects {expected} arguments "
            f"({', '.join(op.signature.arg_names)}), got {len(args)}",
        )
