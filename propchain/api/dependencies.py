"""API Dependencies - hand the process-wide LedgerContext and orchestrators to routes."""

from fastapi import Depends, Request

from propchain.services.context import LedgerContext
from propchain.services.escrow_orchestrator import EscrowOrchestrator
from propchain.services.registry_orchestrator import RegistryOrchestrator
from propchain.services.reputation_aggregator import ReputationAggregator


def get_ledger_context(request: Request) -> LedgerContext:
    ctx = getattr(request.app.state, "ledger", None)
    if ctx is None:
        raise RuntimeError("Ledger context not initialized")
    return ctx


def get_registry(ctx: LedgerContext = Depends(get_ledger_context)) -> RegistryOrchestrator:
    return RegistryOrchestrator(ctx)


def get_escrows(ctx: LedgerContext = Depends(get_ledger_context)) -> EscrowOrchestrator:
    return EscrowOrchestrator(ctx)


def get_reputation(ctx: LedgerContext = Depends(get_ledger_context)) -> ReputationAggregator:
    return ReputationAggregator(ctx)
