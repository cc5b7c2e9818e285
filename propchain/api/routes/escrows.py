"""Escrow Routes - open escrows and read their status from the ledger.

Invariants:
    - Status responses are read-through; nothing is served from a local table
"""

from fastapi import APIRouter, Depends, status

from propchain.api.dependencies import get_escrows
from propchain.schemas.ledger import EscrowCreateRequest, EscrowCreatedResponse, EscrowResponse
from propchain.services.escrow_orchestrator import EscrowOrchestrator

router = APIRouter(prefix="/api/v1/chain/escrows", tags=["chain"])


@router.post("", response_model=EscrowCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_escrow(
    body: EscrowCreateRequest, escrows: EscrowOrchestrator = Depends(get_escrows),
):
    """Open an escrow against a tokenized listing."""
    if body.listing_id is not None:
        created = await escrows.create_escrow_for_listing(
            body.listing_id, body.buyer_address, body.amount, body.kind,
            body.release_conditions, request_id=body.request_id,
        )
    else:
        created = await escrows.create_escrow(
            body.token_id, body.buyer_address, body.amount, body.kind,
            body.release_conditions, request_id=body.request_id,
        )
    return EscrowCreatedResponse(
        escrow=EscrowResponse.from_record(created.escrow),
        tx_ref=created.tx_ref,
        reconciled=created.reconciled,
    )


@router.get("/{escrow_id}", response_model=EscrowResponse)
async def get_escrow(escrow_id: int, escrows: EscrowOrchestrator = Depends(get_escrows)):
    return EscrowResponse.from_record(await escrows.get_status(escrow_id))


@router.get("/token/{token_id}", response_model=list[EscrowResponse])
async def list_token_escrows(
    token_id: int, escrows: EscrowOrchestrator = Depends(get_escrows),
):
    return [EscrowResponse.from_record(r) for r in await escrows.list_for_token(token_id)]
