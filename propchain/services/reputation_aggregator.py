"""Reputation Aggregator - agent registration, reviews and fraud reports on the reputation contract.

Invariants:
    - Rating validated (integer 1..5) before any store or ledger access
    - Reviews and fraud reports are tied to a tokenized property
    - Review and evidence text never reach the ledger; only their commitments do
    - Reputation figures are read from the ledger, never computed or cached locally

Design Decisions:
    - Review idempotency key includes the review commitment: resubmitting the
      same review after a lost confirmation cannot count it twice
    - FinalityError on a review propagates as outcome unknown; resubmission with
      the same content is the safe recovery
    - A failed read after a confirmed review or report surfaces as outcome applied,
      never as not applied
"""

import asyncio
import logging
from dataclasses import dataclass
from uuid import UUID

from propchain.core.domain_types import AgentAddress, TokenId, TxRef
from propchain.core.errors import ErrorContext
from propchain.core.identity_codec import as_int, hash_commitment, normalize_address, to_scalar_pair
from propchain.core.reputation_rules import ReputationSnapshot, validate_rating, validate_text
from propchain.core.token_state import check_tokenized
from propchain.services.context import LedgerContext
from propchain.services.ledger_flow import after_confirmation, load_listing, submit_and_confirm

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentRegistration:
    agent_address: AgentAddress
    metadata_uri: str
    tx_ref: TxRef


@dataclass(frozen=True)
class ReviewResult:
    tx_ref: TxRef
    review_hash: str
    reputation: ReputationSnapshot


@dataclass(frozen=True)
class FraudReportResult:
    tx_ref: TxRef
    evidence_hash: str
    fraud_report_count: int


class ReputationAggregator:
    """Agent reputation backed by the reputation contract."""

    def __init__(self, ctx: LedgerContext):
        self._ctx = ctx

    async def register_agent(
        self, agent_address: str, metadata_uri: str | None = None,
    ) -> AgentRegistration:
        agent = AgentAddress(normalize_address(agent_address, "agent_address"))
        uri = metadata_uri or f"{self._ctx.metadata_base_url}/agents/{agent}/metadata"
        context = ErrorContext(agent_address=agent, operation="register_agent")
        call = self._ctx.operations.call(
            "register_agent", (agent, uri), idempotency_key=f"register:{agent}",
        )
        async with self._ctx.locks.hold("agent", agent):
            result = await submit_and_confirm(self._ctx.gateway, call, context)
        return AgentRegistration(agent, uri, result.tx_ref)

    async def add_review(
        self,
        agent_address: str,
        reviewer_address: str,
        rating: object,
        property_token_id: TokenId,
        review_text: str,
    ) -> ReviewResult:
        rating = validate_rating(rating)
        agent = normalize_address(agent_address, "agent_address")
        reviewer = normalize_address(reviewer_address, "reviewer_address")
        review_hash = hash_commitment(review_text or "")
        context = ErrorContext(
            agent_address=agent, token_id=property_token_id, operation="add_review",
        )

        listing = await self._ctx.listings.get_by_token(property_token_id)
        check_tokenized(listing.token if listing else None, f"Token {property_token_id}")

        token_low, token_high = to_scalar_pair(property_token_id)
        call = self._ctx.operations.call(
            "add_review",
            (agent, reviewer, rating, token_low, token_high, review_hash),
            idempotency_key=f"review:{agent}:{reviewer}:{property_token_id}:{review_hash}",
        )
        async with self._ctx.locks.hold("agent", agent):
            result = await submit_and_confirm(self._ctx.gateway, call, context)
            with after_confirmation(result.tx_ref, context):
                reputation = await self.get_reputation(agent)
        return ReviewResult(result.tx_ref, review_hash, reputation)

    async def add_review_for_listing(
        self,
        agent_address: str,
        reviewer_address: str,
        rating: object,
        listing_id: UUID,
        review_text: str,
    ) -> ReviewResult:
        rating = validate_rating(rating)
        listing = await load_listing(self._ctx.listings, listing_id)
        token_id = check_tokenized(listing.token, f"Listing '{listing_id}'")
        return await self.add_review(
            agent_address, reviewer_address, rating, token_id, review_text,
        )

    async def report_fraud(
        self, agent_address: str, property_token_id: TokenId, evidence_text: str,
    ) -> FraudReportResult:
        agent = normalize_address(agent_address, "agent_address")
        evidence_hash = hash_commitment(validate_text(evidence_text, "evidence"))
        context = ErrorContext(
            agent_address=agent, token_id=property_token_id, operation="report_fraud",
        )

        listing = await self._ctx.listings.get_by_token(property_token_id)
        check_tokenized(listing.token if listing else None, f"Token {property_token_id}")

        token_low, token_high = to_scalar_pair(property_token_id)
        call = self._ctx.operations.call(
            "report_fraud", (agent, token_low, token_high, evidence_hash),
            idempotency_key=f"fraud:{agent}:{property_token_id}:{evidence_hash}",
        )
        async with self._ctx.locks.hold("agent", agent):
            result = await submit_and_confirm(self._ctx.gateway, call, context)
            with after_confirmation(result.tx_ref, context):
                count = as_int(await self._ctx.gateway.read(
                    self._ctx.operations.query("get_fraud_reports", (agent,)),
                ))
        logger.warning(
            "Fraud report recorded",
            extra={"agent_address": agent, "token_id": property_token_id, "tx_ref": result.tx_ref},
        )
        return FraudReportResult(result.tx_ref, evidence_hash, count)

    async def report_fraud_for_listing(
        self, agent_address: str, listing_id: UUID, evidence_text: str,
    ) -> FraudReportResult:
        validate_text(evidence_text, "evidence")
        listing = await load_listing(self._ctx.listings, listing_id)
        token_id = check_tokenized(listing.token, f"Listing '{listing_id}'")
        return await self.report_fraud(agent_address, token_id, evidence_text)

    async def get_reputation(self, agent_address: str) -> ReputationSnapshot:
        agent = AgentAddress(normalize_address(agent_address, "agent_address"))
        ops = self._ctx.operations
        score, review_count, verified, fraud_reports = await asyncio.gather(
            self._ctx.gateway.read(ops.query("get_agent_score", (agent,))),
            self._ctx.gateway.read(ops.query("get_agent_review_count", (agent,))),
            self._ctx.gateway.read(ops.query("is_agent_verified", (agent,))),
            self._ctx.gateway.read(ops.query("get_fraud_reports", (agent,))),
        )
        return ReputationSnapshot(
            agent_address=agent,
            score=as_int(score),
            review_count=as_int(review_count),
            verified=bool(as_int(verified)),
            fraud_report_count=as_int(fraud_reports),
        )
