"""PropChain API - FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map PropChainError -> structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database and LedgerContext built on startup via lifespan, torn down on shutdown

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - LedgerContext lives on app.state: one gateway, one lock registry per process
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from propchain.api.error_handlers import register_error_handlers
from propchain.api.routes import agents, appointments, escrows, health, listings, tokens
from propchain.config import get_settings
from propchain.infrastructure.database import init_db
from propchain.infrastructure.observability import setup_logging
from propchain.services.context import build_ledger_context, close_ledger_context

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    manager = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    app.state.ledger = build_ledger_context(settings, manager.session_factory)
    logger.info("PropChain API started")
    yield
    logger.info("PropChain API shutting down")
    await close_ledger_context(app.state.ledger)
    await manager.dispose()


app = FastAPI(
    title="PropChain API", version="1.0.0", lifespan=lifespan,
)

# CORS: configured from settings, not hardcoded
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes: explicit registration
app.include_router(health.router)
app.include_router(listings.router)
app.include_router(appointments.router)
app.include_router(tokens.router)
app.include_router(escrows.router)
app.include_router(agents.router)

register_error_handlers(app)
