"""Application Configuration - environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache): single instance per process
    - Contract addresses are optional; unconfigured contracts fail at call time
      with LedgerNotConfiguredError, never at import time

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - ledger_backend="memory" runs the in-process ledger for local development
"""

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

from propchain.core.domain_types import Contract


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://propchain:propchain@db:5432/propchain"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosting providers hand out postgresql://; asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Ledger
    ledger_backend: Literal["memory", "rpc"] = "memory"
    ledger_rpc_url: str = "http://localhost:5050/rpc"
    ledger_api_key: str | None = None
    ledger_request_timeout_seconds: float = 30.0
    ledger_max_retries: int = 3
    ledger_base_delay_ms: int = 500
    ledger_max_delay_ms: int = 10_000
    ledger_finality_timeout_seconds: float = 120.0
    ledger_finality_poll_interval_ms: int = 2_000
    ledger_history_page_size: int = 50
    escrow_observation_cache_size: int = 10_000

    property_registry_address: str | None = None
    escrow_address: str | None = None
    reputation_address: str | None = None

    # Encoding
    price_scale_exponent: int = 18
    metadata_base_url: str = "https://api.propchain.example"

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    def contract_addresses(self) -> dict[Contract, str | None]:
        return {
            Contract.PROPERTY_REGISTRY: self.property_registry_address,
            Contract.ESCROW: self.escrow_address,
            Contract.REPUTATION: self.reputation_address,
        }


@lru_cache
def get_settings() -> Settings:
    return Settings()
