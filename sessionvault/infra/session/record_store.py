"""Record storage backends for session rows.

A record store persists opaque, already-encoded session payloads together
with their absolute expiry. Identifiers are assigned by the backend on
insert and travel as strings so the session engine never depends on the
key type of the underlying table.

Example:
    store = SQLRecordStore(engine, table_name="sessions")
    await store.init()

    record_id = await store.insert(expires_at=1700000000, data=encoded)
    await store.update(record_id, expires_at=1700003600, data=encoded)
    data = await store.select(record_id)
    expired = [rid for rid, exp in await store.scan() if now > exp]
    await store.delete(record_id)
"""

import logging
from abc import ABC, abstractmethod

from sqlalchemy import MetaData, delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from sessionvault.infra.db.models import DEFAULT_TABLE_NAME, sessions_table
from sessionvault.infra.observability.metrics import record_store_duration_seconds
from sessionvault.infra.session.errors import (
    ConfigurationError,
    PersistenceError,
    RecordNotFoundError,
)

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    """Abstract base class for session record backends.

    Implementations must make each single-row operation atomic and be safe
    for concurrent use by request handlers and the expiration sweeper.
    """

    @abstractmethod
    async def init(self) -> None:
        """Prepare the backend (create schema).

        Raises:
            ConfigurationError: If the backend cannot be prepared
        """

    @abstractmethod
    async def insert(self, expires_at: int, data: str) -> str:
        """Insert a record and return its store-assigned identifier.

        Raises:
            PersistenceError: If the insert fails
        """

    @abstractmethod
    async def update(self, record_id: str, expires_at: int, data: str) -> None:
        """Replace payload and expiry of an existing record.

        Raises:
            RecordNotFoundError: If no record has this identifier
            PersistenceError: If the update fails
        """

    @abstractmethod
    async def select(self, record_id: str) -> str:
        """Return the encoded payload of a record.

        Raises:
            RecordNotFoundError: If no record has this identifier
            PersistenceError: If the lookup fails
        """

    @abstractmethod
    async def delete(self, record_id: str) -> bool:
        """Delete a record.

        Returns:
            True if a record was deleted, False if none existed

        Raises:
            PersistenceError: If the delete fails
        """

    @abstractmethod
    async def scan(self) -> list[tuple[str, int]]:
        """Return (identifier, expires_at) for every record.

        Raises:
            PersistenceError: If the scan fails
        """


class SQLRecordStore(RecordStore):
    """SQLAlchemy-backed record store.

    Uses one short transaction per operation on a shared AsyncEngine, so
    every insert, update and delete is atomic at the database.
    """

    def __init__(self, engine: AsyncEngine | None, table_name: str = DEFAULT_TABLE_NAME) -> None:
        """Initialize SQL record store.

        Args:
            engine: Async engine shared with the rest of the application
            table_name: Name of the session table

        Raises:
            ConfigurationError: If engine is None
        """
        if engine is None:
            raise ConfigurationError("engine cannot be None")

        self._engine = engine
        self._metadata = MetaData()
        self.table = sessions_table(self._metadata, table_name)

    @property
    def table_name(self) -> str:
        return self.table.name

    async def init(self) -> None:
        """Create the session table if it does not exist."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(self._metadata.create_all)
        except SQLAlchemyError as e:
            raise ConfigurationError(f"Failed to create table {self.table_name}: {e}") from e

        logger.info("Session table ready", extra={"table_name": self.table_name})

    @staticmethod
    def _parse_id(record_id: str) -> int:
        try:
            return int(record_id)
        except (TypeError, ValueError) as e:
            raise RecordNotFoundError(f"Invalid session record id {record_id!r}") from e

    async def insert(self, expires_at: int, data: str) -> str:
        try:
            with record_store_duration_seconds.labels(operation="insert").time():
                async with self._engine.begin() as conn:
                    result = await conn.execute(
                        insert(self.table).values(expires_at=expires_at, session_data=data)
                    )
                    new_id = result.inserted_primary_key[0]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to insert session record: {e}") from e

        return str(new_id)

    async def update(self, record_id: str, expires_at: int, data: str) -> None:
        pk = self._parse_id(record_id)
        try:
            with record_store_duration_seconds.labels(operation="update").time():
                async with self._engine.begin() as conn:
                    result = await conn.execute(
                        update(self.table)
                        .where(self.table.c.id == pk)
                        .values(expires_at=expires_at, session_data=data)
                    )
                    updated = result.rowcount
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update session record {record_id}: {e}") from e

        if updated == 0:
            raise RecordNotFoundError(f"Session record {record_id} not found")

    async def select(self, record_id: str) -> str:
        pk = self._parse_id(record_id)
        try:
            with record_store_duration_seconds.labels(operation="select").time():
                async with self._engine.connect() as conn:
                    result = await conn.execute(
                        select(self.table.c.session_data).where(self.table.c.id == pk)
                    )
                    data = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load session record {record_id}: {e}") from e

        if data is None:
            raise RecordNotFoundError(f"Session record {record_id} not found")
        return data

    async def delete(self, record_id: str) -> bool:
        try:
            pk = self._parse_id(record_id)
        except RecordNotFoundError:
            return False

        try:
            with record_store_duration_seconds.labels(operation="delete").time():
                async with self._engine.begin() as conn:
                    result = await conn.execute(delete(self.table).where(self.table.c.id == pk))
                    deleted = result.rowcount > 0
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to delete session record {record_id}: {e}") from e

        logger.debug(
            "Session record deleted" if deleted else "Session record not found for deletion",
            extra={"session_id": record_id},
        )
        return deleted

    async def scan(self) -> list[tuple[str, int]]:
        try:
            with record_store_duration_seconds.labels(operation="scan").time():
                async with self._engine.connect() as conn:
                    result = await conn.execute(
                        select(self.table.c.id, self.table.c.expires_at)
                    )
                    rows = result.all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to scan session records: {e}") from e

        return [(str(row.id), int(row.expires_at)) for row in rows]
