"""Database infrastructure module.

Key components:
- models: session table definition
- session: async engine management with connection pooling
"""

from sessionvault.infra.db.models import DEFAULT_TABLE_NAME, sessions_table
from sessionvault.infra.db.session import (
    DatabaseEngineManager,
    get_engine_manager,
    reset_engine_manager,
)

__all__ = [
    "DEFAULT_TABLE_NAME",
    "sessions_table",
    "DatabaseEngineManager",
    "get_engine_manager",
    "reset_engine_manager",
]
