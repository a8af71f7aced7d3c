"""Exceptions raised by the session store and its record store."""


class SessionStoreError(Exception):
    """Base exception for session store errors."""


class ConfigurationError(SessionStoreError):
    """Raised when a store cannot be constructed (no engine, no keys, schema failure)."""


class PersistenceError(SessionStoreError):
    """Raised when a record store operation fails."""


class RecordNotFoundError(PersistenceError):
    """Raised when no record exists for the requested identifier."""
