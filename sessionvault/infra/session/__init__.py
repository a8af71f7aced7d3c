"""Session store infrastructure.

Provides the cookie-bound session lifecycle engine, the pluggable record
store it persists through, and the background sweeper reclaiming expired
records:
- SQLSessionStore: resolve-or-create, save, delete-on-expire
- RecordStore / SQLRecordStore: row persistence capability
- ExpirationSweeper: periodic deletion of expired rows
"""

from sessionvault.infra.session.errors import (
    ConfigurationError,
    PersistenceError,
    RecordNotFoundError,
    SessionStoreError,
)
from sessionvault.infra.session.record_store import RecordStore, SQLRecordStore
from sessionvault.infra.session.store import Session, SessionOptions, SQLSessionStore
from sessionvault.infra.session.sweeper import ExpirationSweeper, SweeperState

__all__ = [
    "SQLSessionStore",
    "Session",
    "SessionOptions",
    "RecordStore",
    "SQLRecordStore",
    "ExpirationSweeper",
    "SweeperState",
    "SessionStoreError",
    "ConfigurationError",
    "PersistenceError",
    "RecordNotFoundError",
]
