"""Database engine management with connection pooling.

Manages the SQLAlchemy async engine shared by the session store and the
expiration sweeper, with support for both SQLite and PostgreSQL databases.

Key features:
- Connection pooling (PostgreSQL) and appropriate defaults (SQLite)
- Global engine manager singleton pattern
"""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from sessionvault.config import Settings


class DatabaseEngineManager:
    """Database engine manager with connection pooling.

    Example:
        manager = DatabaseEngineManager(settings)
        await manager.init()

        store = await SQLSessionStore.from_settings(settings, manager.engine)
        ...
        await store.close()
        await manager.close()
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize engine manager.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self._engine: AsyncEngine | None = None

    async def init(self) -> None:
        """Create the async engine.

        Must be called before accessing the engine property.
        """
        if self.settings.is_sqlite:
            connect_args = {
                "check_same_thread": False,  # Required for async
                "timeout": 30.0,  # Lock timeout
            }
            pool_config = {}
        else:
            connect_args = {}
            pool_config = {
                "pool_size": self.settings.database_pool_size,
                "max_overflow": self.settings.database_max_overflow,
                "pool_pre_ping": True,  # Verify connections
                "pool_recycle": 3600,  # Recycle after 1 hour
            }

        self._engine = create_async_engine(
            self.settings.database_url,
            echo=self.settings.database_echo,
            connect_args=connect_args,
            **pool_config,
        )

    async def close(self) -> None:
        """Dispose the engine and its pooled connections."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None

    @property
    def engine(self) -> AsyncEngine:
        """Get database engine.

        Raises:
            RuntimeError: If not initialized
        """
        if self._engine is None:
            raise RuntimeError("DatabaseEngineManager not initialized. Call init() first.")
        return self._engine


_engine_manager: DatabaseEngineManager | None = None


def get_engine_manager(settings: Settings | None = None) -> DatabaseEngineManager:
    """Get global engine manager instance (singleton).

    Args:
        settings: Application settings (defaults to the global settings)

    Returns:
        DatabaseEngineManager instance
    """
    global _engine_manager

    if _engine_manager is None:
        if settings is None:
            from sessionvault.config import get_settings

            settings = get_settings()
        _engine_manager = DatabaseEngineManager(settings)

    return _engine_manager


def reset_engine_manager() -> None:
    """Reset global engine manager (mainly for testing)."""
    global _engine_manager
    _engine_manager = None
