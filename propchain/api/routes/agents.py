"""Agent Routes - registration, reviews, fraud reports and reputation reads.

Invariants:
    - Reputation figures in responses are read back from the ledger
"""

from fastapi import APIRouter, Depends, status

from propchain.api.dependencies import get_reputation
from propchain.schemas.ledger import (
    AgentRegisterRequest,
    AgentRegistrationResponse,
    FraudReportCreate,
    FraudReportResponse,
    ReputationResponse,
    ReviewCreate,
    ReviewResponse,
)
from propchain.services.reputation_aggregator import ReputationAggregator

router = APIRouter(prefix="/api/v1/chain/agents", tags=["chain"])


@router.post("", response_model=AgentRegistrationResponse, status_code=status.HTTP_201_CREATED)
async def register_agent(
    body: AgentRegisterRequest, reputation: ReputationAggregator = Depends(get_reputation),
):
    registration = await reputation.register_agent(body.agent_address, body.metadata_uri)
    return AgentRegistrationResponse(
        agent_address=registration.agent_address,
        metadata_uri=registration.metadata_uri,
        tx_ref=registration.tx_ref,
    )


@router.post(
    "/{agent_address}/reviews", response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_review(
    agent_address: str, body: ReviewCreate,
    reputation: ReputationAggregator = Depends(get_reputation),
):
    if body.listing_id is not None:
        result = await reputation.add_review_for_listing(
            agent_address, body.reviewer_address, body.rating,
            body.listing_id, body.review_text,
        )
    else:
        result = await reputation.add_review(
            agent_address, body.reviewer_address, body.rating,
            body.token_id, body.review_text,
        )
    return ReviewResponse(
        tx_ref=result.tx_ref,
        review_hash=result.review_hash,
        reputation=ReputationResponse.from_snapshot(result.reputation),
    )


@router.post(
    "/{agent_address}/fraud-reports", response_model=FraudReportResponse,
    status_code=status.HTTP_201_CREATED,
)
async def report_fraud(
    agent_address: str, body: FraudReportCreate,
    reputation: ReputationAggregator = Depends(get_reputation),
):
    if body.listing_id is not None:
        result = await reputation.report_fraud_for_listing(
            agent_address, body.listing_id, body.evidence,
        )
    else:
        result = await reputation.report_fraud(agent_address, body.token_id, body.evidence)
    return FraudReportResponse(
        tx_ref=result.tx_ref,
        evidence_hash=result.evidence_hash,
        fraud_report_count=result.fraud_report_count,
    )


@router.get("/{agent_address}/reputation", response_model=ReputationResponse)
async def get_agent_reputation(
    agent_address: str, reputation: ReputationAggregator = Depends(get_reputation),
):
    return ReputationResponse.from_snapshot(await reputation.get_reputation(agent_address))
