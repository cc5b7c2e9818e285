"""Ledger Schemas - request/response models for the /api/v1/chain endpoints.

Invariants:
    - Token ids, escrow ids and fixed-point amounts are serialized as decimal text
    - Requests naming a property give exactly one of listing_id / token_id
    - Rating, amount and address rules are enforced by the orchestrators, not
      here, so the same typed errors surface over HTTP and in-process

Design Decisions:
    - from_* classmethods build responses from core dataclasses: routes stay thin
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from propchain.core.domain_types import PropertyType
from propchain.core.escrow_state import EscrowRecord
from propchain.core.reputation_rules import ReputationSnapshot
from propchain.core.token_state import ListingTokenRecord


class _PropertyRef(BaseModel):
    listing_id: UUID | None = None
    token_id: int | None = Field(None, ge=1)

    @model_validator(mode="after")
    def one_reference(self):
        if (self.listing_id is None) == (self.token_id is None):
            raise ValueError("give exactly one of listing_id or token_id")
        return self


# ─── Registry ───────────────────────────────────────────────────

class MintRequest(BaseModel):
    owner_address: str
    metadata_uri: str | None = Field(None, max_length=500)
    price: Decimal | None = None
    property_type: PropertyType | None = None
    location_hash: str | None = Field(None, pattern=r"^0x[0-9a-fA-F]{1,62}$")


class VerifyRequest(BaseModel):
    verifier_address: str


class TokenRecordResponse(BaseModel):
    listing_id: UUID
    state: str
    token_id: str | None = None
    mint_tx_ref: str | None = None
    on_chain: bool
    verified: bool
    verification_tx_ref: str | None = None
    verified_at: datetime | None = None
    owner_wallet_address: str | None = None

    @classmethod
    def from_record(cls, record: ListingTokenRecord) -> "TokenRecordResponse":
        return cls(
            listing_id=record.listing_id,
            state=record.state.value,
            token_id=None if record.token_id is None else str(record.token_id),
            mint_tx_ref=record.mint_tx_ref,
            on_chain=record.on_chain,
            verified=record.verified,
            verification_tx_ref=record.verification_tx_ref,
            verified_at=record.verified_at,
            owner_wallet_address=record.owner_wallet_address,
        )


class MintResponse(BaseModel):
    token_id: str
    tx_ref: str | None = None
    reconciled: bool
    record: TokenRecordResponse


class VerifyResponse(BaseModel):
    tx_ref: str | None = None
    verified_at: datetime
    reconciled: bool
    record: TokenRecordResponse


class ReconcileResponse(BaseModel):
    changed: list[str]
    record: TokenRecordResponse


class OwnershipEntryResponse(BaseModel):
    owner: str
    timestamp: datetime
    tx_ref: str | None = None


class BlockchainViewResponse(BaseModel):
    token_id: str
    owner: str
    metadata_uri: str
    price: str
    price_units: str
    verified: bool
    verified_at: datetime | None = None
    history: list[OwnershipEntryResponse]


# ─── Escrow ─────────────────────────────────────────────────────

class EscrowCreateRequest(_PropertyRef):
    buyer_address: str
    amount: Decimal
    kind: str
    release_conditions: str | None = Field(None, max_length=2000)
    request_id: str | None = Field(None, max_length=100)


class EscrowResponse(BaseModel):
    escrow_id: str
    property_token_id: str
    buyer_address: str
    seller_address: str
    amount: str
    kind: str
    status: str
    release_conditions: str
    disputed: bool

    @classmethod
    def from_record(cls, record: EscrowRecord) -> "EscrowResponse":
        return cls(
            escrow_id=str(record.escrow_id),
            property_token_id=str(record.property_token_id),
            buyer_address=record.buyer_address,
            seller_address=record.seller_address,
            amount=str(record.amount),
            kind=record.kind.value,
            status=record.status.value,
            release_conditions=record.release_conditions,
            disputed=record.disputed,
        )


class EscrowCreatedResponse(BaseModel):
    escrow: EscrowResponse
    tx_ref: str | None = None
    reconciled: bool


# ─── Reputation ─────────────────────────────────────────────────

class AgentRegisterRequest(BaseModel):
    agent_address: str
    metadata_uri: str | None = Field(None, max_length=500)


class AgentRegistrationResponse(BaseModel):
    agent_address: str
    metadata_uri: str
    tx_ref: str


class ReviewCreate(_PropertyRef):
    reviewer_address: str
    rating: int
    review_text: str = Field("", max_length=5000)


class ReputationResponse(BaseModel):
    agent_address: str
    average_rating: str
    review_count: int
    verified: bool
    fraud_report_count: int

    @classmethod
    def from_snapshot(cls, snapshot: ReputationSnapshot) -> "ReputationResponse":
        return cls(**snapshot.to_dict())


class ReviewResponse(BaseModel):
    tx_ref: str
    review_hash: str
    reputation: ReputationResponse


class FraudReportCreate(_PropertyRef):
    evidence: str = Field(max_length=10_000)


class FraudReportResponse(BaseModel):
    tx_ref: str
    evidence_hash: str
    fraud_report_count: int
