"""Root conftest - shared test configuration."""

import os

# Tests never reach a real ledger relay or database server
os.environ.setdefault("LEDGER_BACKEND", "memory")
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test.db",
)
