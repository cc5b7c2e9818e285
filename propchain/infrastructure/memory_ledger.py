"""In-Memory Ledger - process-local implementation of the LedgerGateway contract.

Runs the property registry, escrow and reputation contract rules in memory so
the service can start without a ledger node (LEDGER_BACKEND=memory) and so
tests can drive the orchestrators end to end.

Invariants:
    - Effects apply at submit time, exactly once per idempotency key; a key whose
      transaction reverted may be submitted again
    - Contract-rule violations revert (raised from await_finality);
      authority violations are rejected outright (raised from submit)
    - Escrow status changes made by other parties follow ALLOWED_TRANSITIONS
    - Agent score is the mean rating x100, rounded half up

Design Decisions:
    - Explicit entrypoint -> handler dicts, same as the operation table
    - Fault injection (reject_next_submit, revert_next, stall_finality,
      fail_next_read) lets tests reproduce the ambiguous-outcome paths without timing tricks
"""

import asyncio
import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from propchain.core.domain_types import Contract, EscrowKind, EscrowStatus, MAX_RATING, MIN_RATING
from propchain.core.errors import (
    FinalityError,
    PropChainError,
    ReadError,
    SubmissionError,
    TransactionRevertedError,
)
from propchain.core.escrow_state import is_valid_transition
from propchain.core.identity_codec import format_address, from_scalar_pair, to_scalar_pair
from propchain.core.ledger_calls import CallSpec, ConfirmedResult, PendingRef, QuerySpec
from propchain.core.reputation_rules import mean_score

logger = logging.getLogger(__name__)

DEFAULT_ADDRESSES = {
    Contract.PROPERTY_REGISTRY: "0x1001",
    Contract.ESCROW: "0x1002",
    Contract.REPUTATION: "0x1003",
}


class _Revert(Exception):
    """Contract execution failure."""


@dataclass
class _Token:
    property_id: int
    owner: str
    metadata_uri: str
    price: int
    property_type: int
    location_hash: str
    verified: bool = False
    verification_timestamp: int = 0
    history: list[dict] = field(default_factory=list)


@dataclass
class _Escrow:
    token_id: int
    buyer: str
    seller: str
    amount: int
    escrow_type: int
    release_conditions: str
    status: EscrowStatus = EscrowStatus.PENDING
    disputed: bool = False


@dataclass
class _Agent:
    metadata_uri: str = ""
    verified: bool = False
    ratings: list[int] = field(default_factory=list)
    review_hashes: list[str] = field(default_factory=list)
    fraud_evidence: list[str] = field(default_factory=list)


@dataclass
class _Transaction:
    tx_ref: str
    call: CallSpec
    reverted: bool
    return_values: dict
    revert_reason: str | None
    block_number: int
    block_timestamp: datetime


class InMemoryLedger:
    """Registry, escrow and reputation contracts behind the LedgerGateway contract."""

    def __init__(
        self,
        *,
        admin_authority: bool = True,
        finality_delay_seconds: float = 0.0,
        clock: Callable[[], datetime] | None = None,
    ):
        self.admin_authority = admin_authority
        self.finality_delay_seconds = finality_delay_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.submitted: list[CallSpec] = []
        self.reads: list[QuerySpec] = []
        self._transactions: dict[str, _Transaction] = {}
        self._tx_by_key: dict[str, str] = {}
        self._block_number = 0

        self._tokens: dict[int, _Token] = {}
        self._token_by_property: dict[int, int] = {}
        self._escrows: dict[int, _Escrow] = {}
        self._escrows_by_token: dict[int, list[int]] = {}
        self._agents: dict[str, _Agent] = {}

        self._rejections: list[PropChainError] = []
        self._stalls = 0
        self._forced_reverts: list[str] = []
        self._read_failures = 0

        self._executors: dict[str, Callable[..., dict]] = {
            "mint_property": self._mint_property,
            "verify_property": self._verify_property,
            "create_escrow": self._create_escrow,
            "register_agent": self._register_agent,
            "add_review": self._add_review,
            "report_fraud": self._report_fraud,
        }
        self._readers: dict[str, Callable[..., Any]] = {
            "get_token_by_property": self._get_token_by_property,
            "get_property_owner": lambda lo, hi: self._token(lo, hi).owner,
            "get_property_metadata": lambda lo, hi: self._token(lo, hi).metadata_uri,
            "get_property_price": lambda lo, hi: to_scalar_pair(self._token(lo, hi).price),
            "is_verified": lambda lo, hi: self._token(lo, hi).verified,
            "get_verification_timestamp": (
                lambda lo, hi: self._token(lo, hi).verification_timestamp
            ),
            "get_property_history": self._get_property_history,
            "get_escrow_status": lambda lo, hi: self._escrow(lo, hi).status.code,
            "get_escrow_amount": lambda lo, hi: to_scalar_pair(self._escrow(lo, hi).amount),
            "get_escrow_parties": (
                lambda lo, hi: (self._escrow(lo, hi).seller, self._escrow(lo, hi).buyer)
            ),
            "get_escrow_details": self._get_escrow_details,
            "is_disputed": lambda lo, hi: self._escrow(lo, hi).disputed,
            "get_property_escrows": (
                lambda lo, hi: list(self._escrows_by_token.get(from_scalar_pair(lo, hi), []))
            ),
            "get_agent_score": lambda a: mean_score(self._agent_view(a).ratings),
            "get_agent_review_count": lambda a: len(self._agent_view(a).ratings),
            "is_agent_verified": lambda a: self._agent_view(a).verified,
            "get_fraud_reports": lambda a: len(self._agent_view(a).fraud_evidence),
        }

    # ─── LedgerGateway ──────────────────────────────────────────

    async def submit(self, call: CallSpec) -> PendingRef:
        self.submitted.append(call)
        if self._rejections:
            raise self._rejections.pop(0)

        existing = self._tx_by_key.get(call.idempotency_key)
        if existing and not self._transactions[existing].reverted:
            logger.info(
                "Duplicate submission absorbed",
                extra={"tx_ref": existing, "operation": call.operation},
            )
            return PendingRef(existing, call)

        if call.entrypoint == "verify_property" and not self.admin_authority:
            raise SubmissionError(
                "Submitting account lacks admin rights for verify_property",
                "INSUFFICIENT_AUTHORITY",
            )
        executor = self._executors.get(call.entrypoint)
        if executor is None:
            raise SubmissionError(f"Unknown entrypoint '{call.entrypoint}'")

        self._block_number += 1
        tx_ref = self._tx_ref(call)
        try:
            if self._forced_reverts:
                raise _Revert(self._forced_reverts.pop(0))
            return_values, reverted, reason = executor(*call.args), False, None
        except _Revert as e:
            return_values, reverted, reason = {}, True, str(e)
        self._transactions[tx_ref] = _Transaction(
            tx_ref=tx_ref,
            call=call,
            reverted=reverted,
            return_values=return_values,
            revert_reason=reason,
            block_number=self._block_number,
            block_timestamp=self._clock(),
        )
        self._tx_by_key[call.idempotency_key] = tx_ref
        return PendingRef(tx_ref, call)

    async def await_finality(self, pending: PendingRef) -> ConfirmedResult:
        tx = self._transactions.get(pending.tx_ref)
        if tx is None:
            raise FinalityError(
                f"Transaction {pending.tx_ref} is unknown to the ledger", pending.tx_ref,
            )
        if self.finality_delay_seconds:
            await asyncio.sleep(self.finality_delay_seconds)
        if self._stalls:
            self._stalls -= 1
            raise FinalityError(
                f"Transaction {tx.tx_ref} not final within the wait bound", tx.tx_ref,
            )
        if tx.reverted:
            raise TransactionRevertedError(tx.tx_ref, tx.revert_reason)
        return ConfirmedResult(
            tx_ref=tx.tx_ref,
            return_values=dict(tx.return_values),
            block_number=tx.block_number,
            block_timestamp=tx.block_timestamp,
        )

    async def read(self, query: QuerySpec) -> Any:
        self.reads.append(query)
        if self._read_failures:
            self._read_failures -= 1
            raise ReadError(f"Ledger read {query.entrypoint} failed")
        reader = self._readers.get(query.entrypoint)
        if reader is None:
            raise ReadError(f"Unknown view '{query.entrypoint}'")
        try:
            return reader(*query.args)
        except _Revert as e:
            raise ReadError(f"{query.entrypoint}: {e}")

    # ─── Fault injection ────────────────────────────────────────

    def reject_next_submit(self, error: PropChainError | None = None) -> None:
        self._rejections.append(error or SubmissionError("Call rejected by the ledger"))

    def revert_next(self, reason: str = "Execution reverted") -> None:
        self._forced_reverts.append(reason)

    def stall_finality(self, times: int = 1) -> None:
        """Next await_finality calls time out although the effect is applied."""
        self._stalls += times

    def fail_next_read(self, times: int = 1) -> None:
        self._read_failures += times

    # ─── Other parties ──────────────────────────────────────────

    def fund_escrow(self, escrow_id: int) -> None:
        self._move_escrow(escrow_id, EscrowStatus.FUNDED)

    def release_escrow(self, escrow_id: int) -> None:
        self._move_escrow(escrow_id, EscrowStatus.RELEASED)

    def refund_escrow(self, escrow_id: int) -> None:
        self._move_escrow(escrow_id, EscrowStatus.REFUNDED)

    def dispute_escrow(self, escrow_id: int) -> None:
        self._move_escrow(escrow_id, EscrowStatus.DISPUTED)
        self._escrows[escrow_id].disputed = True

    def force_escrow_status(self, escrow_id: int, status: EscrowStatus) -> None:
        """Overwrite status without rule checks (simulates a lagging or faulty node)."""
        self._escrows[escrow_id].status = status

    def transfer_property(self, token_id: int, new_owner: str) -> None:
        token = self._tokens[token_id]
        token.owner = format_address(new_owner)
        token.history.append({
            "owner": token.owner,
            "timestamp": int(self._clock().timestamp()),
        })

    def _move_escrow(self, escrow_id: int, status: EscrowStatus) -> None:
        escrow = self._escrows[escrow_id]
        if not is_valid_transition(escrow.status, status):
            raise ValueError(
                f"Escrow {escrow_id} cannot move {escrow.status.value} -> {status.value}",
            )
        escrow.status = status

    # ─── Registry contract ──────────────────────────────────────

    def _mint_property(
        self, property_id, owner, metadata_uri, price_low, price_high,
        property_type, location_hash,
    ) -> dict:
        if property_id in self._token_by_property:
            raise _Revert("Property already minted")
        price = from_scalar_pair(price_low, price_high)
        if price == 0:
            raise _Revert("Price must be positive")
        token_id = len(self._tokens) + 1
        owner = format_address(owner)
        self._tokens[token_id] = _Token(
            property_id=property_id,
            owner=owner,
            metadata_uri=metadata_uri,
            price=price,
            property_type=property_type,
            location_hash=location_hash,
            history=[{"owner": owner, "timestamp": int(self._clock().timestamp())}],
        )
        self._token_by_property[property_id] = token_id
        return {"token_id": token_id}

    def _verify_property(self, token_low, token_high, verifier) -> dict:
        token = self._token(token_low, token_high)
        if token.verified:
            raise _Revert("Property already verified")
        token.verified = True
        token.verification_timestamp = int(self._clock().timestamp())
        return {"verifier": format_address(verifier)}

    def _get_token_by_property(self, property_id) -> int:
        return self._token_by_property.get(property_id, 0)

    def _get_property_history(self, token_low, token_high, offset, limit) -> dict:
        history = self._token(token_low, token_high).history
        page = history[offset:offset + limit]
        next_offset = offset + limit if offset + limit < len(history) else None
        return {"entries": [dict(e) for e in page], "next_offset": next_offset}

    def _token(self, token_low, token_high) -> _Token:
        token = self._tokens.get(from_scalar_pair(token_low, token_high))
        if token is None:
            raise _Revert("Token does not exist")
        return token

    # ─── Escrow contract ────────────────────────────────────────

    def _create_escrow(
        self, token_low, token_high, buyer, amount_low, amount_high,
        escrow_type, release_conditions,
    ) -> dict:
        token = self._token(token_low, token_high)
        amount = from_scalar_pair(amount_low, amount_high)
        if amount == 0:
            raise _Revert("Escrow amount must be positive")
        if not 0 <= escrow_type < len(EscrowKind):
            raise _Revert("Unknown escrow type")
        token_id = from_scalar_pair(token_low, token_high)
        escrow_id = len(self._escrows) + 1
        self._escrows[escrow_id] = _Escrow(
            token_id=token_id,
            buyer=format_address(buyer),
            seller=token.owner,
            amount=amount,
            escrow_type=escrow_type,
            release_conditions=release_conditions,
        )
        self._escrows_by_token.setdefault(token_id, []).append(escrow_id)
        return {"escrow_id": escrow_id}

    def _get_escrow_details(self, escrow_low, escrow_high) -> dict:
        escrow = self._escrow(escrow_low, escrow_high)
        return {
            "property_token_id": to_scalar_pair(escrow.token_id),
            "escrow_type": escrow.escrow_type,
            "release_conditions": escrow.release_conditions,
        }

    def _escrow(self, escrow_low, escrow_high) -> _Escrow:
        escrow = self._escrows.get(from_scalar_pair(escrow_low, escrow_high))
        if escrow is None:
            raise _Revert("Escrow does not exist")
        return escrow

    # ─── Reputation contract ────────────────────────────────────

    def _register_agent(self, agent, metadata_uri) -> dict:
        record = self._agents.setdefault(format_address(agent), _Agent())
        record.metadata_uri = metadata_uri
        record.verified = True
        return {}

    def _add_review(self, agent, reviewer, rating, token_low, token_high, review_hash) -> dict:
        if not MIN_RATING <= rating <= MAX_RATING:
            raise _Revert("Rating out of range")
        self._token(token_low, token_high)
        record = self._agents.setdefault(format_address(agent), _Agent())
        record.ratings.append(rating)
        record.review_hashes.append(review_hash)
        return {"score": mean_score(record.ratings), "review_count": len(record.ratings)}

    def _report_fraud(self, agent, token_low, token_high, evidence_hash) -> dict:
        self._token(token_low, token_high)
        record = self._agents.setdefault(format_address(agent), _Agent())
        record.fraud_evidence.append(evidence_hash)
        return {"fraud_report_count": len(record.fraud_evidence)}

    def _agent_view(self, agent) -> _Agent:
        return self._agents.get(format_address(agent), _Agent())

    # ─── Helpers ────────────────────────────────────────────────

    def _tx_ref(self, call: CallSpec) -> str:
        seed = f"{call.idempotency_key}:{self._block_number}"
        return "0x" + hashlib.sha256(seed.encode("utf-8")).hexdigest()[:63]
