"""Shared pytest fixtures.

Key goals:
- Prevent global singletons (settings, engine manager) from leaking state
  across tests.
- Provide a file-backed SQLite engine per test so every test starts with an
  empty session table.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

import sessionvault.config as config_module
from sessionvault.infra.db.session import reset_engine_manager
from sessionvault.security.crypto import generate_key


@pytest.fixture(autouse=True)
def _reset_global_singletons() -> None:
    """Ensure global singletons do not leak between tests."""
    config_module._settings = None
    reset_engine_manager()
    yield
    config_module._settings = None
    reset_engine_manager()


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncEngine:
    """Async SQLite engine on a fresh database file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}")
    yield engine
    await engine.dispose()


@pytest.fixture
def session_key() -> str:
    return generate_key()
