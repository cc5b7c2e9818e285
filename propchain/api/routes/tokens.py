"""Token Routes - mint, verify, reconcile and inspect listings on the property registry.

Invariants:
    - Success responses are returned only after ledger finality
    - 504 responses carry outcome "unknown": call /reconcile before retrying

Design Decisions:
    - Routes keyed by listing id; the orchestrator resolves the token
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from propchain.api.dependencies import get_registry
from propchain.schemas.ledger import (
    BlockchainViewResponse,
    MintRequest,
    MintResponse,
    OwnershipEntryResponse,
    ReconcileResponse,
    TokenRecordResponse,
    VerifyRequest,
    VerifyResponse,
)
from propchain.services.registry_orchestrator import BlockchainView, RegistryOrchestrator

router = APIRouter(prefix="/api/v1/chain", tags=["chain"])


@router.post("/listings/{listing_id}/mint", response_model=MintResponse)
async def mint_listing(
    listing_id: UUID, body: MintRequest,
    registry: RegistryOrchestrator = Depends(get_registry),
):
    """Tokenize a listing on the property registry."""
    result = await registry.mint(
        listing_id, body.owner_address,
        metadata_uri=body.metadata_uri,
        price=body.price,
        property_type=body.property_type,
        location_commitment=body.location_hash,
    )
    return MintResponse(
        token_id=str(result.token_id),
        tx_ref=result.tx_ref,
        reconciled=result.reconciled,
        record=TokenRecordResponse.from_record(result.record),
    )


@router.post("/listings/{listing_id}/verify", response_model=VerifyResponse)
async def verify_listing(
    listing_id: UUID, body: VerifyRequest,
    registry: RegistryOrchestrator = Depends(get_registry),
):
    result = await registry.verify(listing_id, body.verifier_address)
    return VerifyResponse(
        tx_ref=result.tx_ref,
        verified_at=result.verified_at,
        reconciled=result.reconciled,
        record=TokenRecordResponse.from_record(result.record),
    )


@router.post("/listings/{listing_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_listing(
    listing_id: UUID, registry: RegistryOrchestrator = Depends(get_registry),
):
    """Copy confirmed ledger facts missing from the local record."""
    result = await registry.reconcile(listing_id)
    return ReconcileResponse(
        changed=result.changed, record=TokenRecordResponse.from_record(result.record),
    )


@router.get("/listings/{listing_id}/blockchain", response_model=BlockchainViewResponse)
async def listing_blockchain_view(
    listing_id: UUID,
    history_limit: int | None = Query(None, ge=1, le=1000),
    registry: RegistryOrchestrator = Depends(get_registry),
):
    view = await registry.get_view_for_listing(listing_id, history_limit=history_limit)
    return _view_response(view)


@router.get("/tokens/{token_id}", response_model=BlockchainViewResponse)
async def token_blockchain_view(
    token_id: int,
    history_limit: int | None = Query(None, ge=1, le=1000),
    registry: RegistryOrchestrator = Depends(get_registry),
):
    view = await registry.get_blockchain_view(token_id, history_limit=history_limit)
    return _view_response(view)


def _view_response(view: BlockchainView) -> BlockchainViewResponse:
    return BlockchainViewResponse(
        token_id=str(view.token_id),
        owner=view.owner,
        metadata_uri=view.metadata_uri,
        price=format(view.price.normalize(), "f"),
        price_units=str(view.price_units),
        verified=view.verified,
        verified_at=view.verified_at,
        history=[
            OwnershipEntryResponse(owner=e.owner, timestamp=e.timestamp, tx_ref=e.tx_ref)
            for e in view.history
        ],
    )
