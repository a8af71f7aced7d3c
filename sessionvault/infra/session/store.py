"""Cookie-bound session store backed by a relational table.

Each session is one table row holding its encoded payload and absolute
expiry. The client only receives an encrypted cookie carrying the row id,
and expired rows are reclaimed by an ExpirationSweeper running next to the
request handlers.

Example:
    store = await SQLSessionStore.create(engine, key)

    # In a request handler
    session = await store.get(request, "sid")
    session.values["user"] = "alice"
    await session.save(request, response)

    # On shutdown
    await store.close()

The store never logs: failures are raised to the caller, except on the
resolve path where any failure to resume a session falls back to a brand
new one (see Session.fallback_reason).
"""

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import Any, Literal

from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.requests import Request
from starlette.responses import Response

from sessionvault.config import DEFAULT_SESSION_MAX_AGE, Settings
from sessionvault.infra.db.models import DEFAULT_TABLE_NAME
from sessionvault.infra.observability.metrics import record_session_load, record_session_save
from sessionvault.infra.session.errors import (
    ConfigurationError,
    PersistenceError,
    RecordNotFoundError,
)
from sessionvault.infra.session.record_store import RecordStore, SQLRecordStore
from sessionvault.infra.session.sweeper import DEFAULT_SWEEP_INTERVAL_SECONDS, ExpirationSweeper
from sessionvault.security.crypto import (
    CodecError,
    ConfigurableLimits,
    InvalidKeyError,
    SessionCodec,
    codecs_from_keys,
    decode_multi,
    encode_multi,
)

# request.state attribute holding the sessions resolved for that request
_REGISTRY_ATTR = "sessionvault_sessions"


@dataclass
class SessionOptions:
    """Cookie attributes and lifetime of a session.

    A max_age of zero or less deletes the session on save.
    """

    path: str = "/"
    domain: str | None = None
    max_age: int = DEFAULT_SESSION_MAX_AGE
    secure: bool = False
    http_only: bool = True
    same_site: Literal["lax", "strict", "none"] | None = "lax"


class Session:
    """One client's session.

    Attributes:
        id: Store-assigned identifier, empty until the session is persisted
        values: Caller-visible session data (JSON-serialisable, string keys)
        is_new: False only when the session was resumed from an existing record
        options: Per-session copy of the store's default options
        fallback_reason: Why a new session was created instead of resuming one
            (no_cookie, invalid_cookie, not_found, load_failed), None when resumed
    """

    def __init__(self, store: "SQLSessionStore", name: str, options: SessionOptions) -> None:
        self._name = name
        self.store = store
        self.options = options
        self.id = ""
        self.values: dict[str, Any] = {}
        self.is_new = True
        self.fallback_reason: str | None = None

    @property
    def name(self) -> str:
        return self._name

    async def save(self, request: Request, response: Response) -> None:
        await self.store.save(request, response, self)

    def __repr__(self) -> str:
        return f"<Session(name={self._name!r}, id={self.id!r}, is_new={self.is_new})>"


class SQLSessionStore:
    """Session lifecycle engine.

    Resolves sessions from request cookies, persists them through a
    RecordStore, and owns the ExpirationSweeper that reclaims expired rows.
    Use create() or from_settings() to get a store that is ready to serve.
    """

    def __init__(
        self,
        records: RecordStore | None,
        codecs: Sequence[SessionCodec],
        options: SessionOptions | None = None,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize session store.

        Args:
            records: Record store holding session rows
            codecs: Codecs for cookies and payloads; the first one encodes
            options: Default options copied into every new session
            sweep_interval_seconds: Delay between expired-session sweeps
            clock: Time source returning epoch seconds

        Raises:
            ConfigurationError: If records is None or no codec is given
        """
        if records is None:
            raise ConfigurationError("record store cannot be None")
        if not codecs:
            raise ConfigurationError("at least one codec is required")

        self.records = records
        self.codecs = list(codecs)
        self.options = options or SessionOptions()
        self._clock = clock
        self.sweeper = ExpirationSweeper(records, sweep_interval_seconds, clock)

    @classmethod
    async def create(
        cls,
        engine: AsyncEngine | None,
        *keys: str | bytes,
        table_name: str = DEFAULT_TABLE_NAME,
        options: SessionOptions | None = None,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> "SQLSessionStore":
        """Create an SQL-backed store, its table, and start the sweeper.

        Args:
            engine: Async engine for the session table
            keys: Fernet keys, newest first
            table_name: Session table name
            options: Default session options
            sweep_interval_seconds: Delay between expired-session sweeps
            clock: Time source returning epoch seconds

        Raises:
            ConfigurationError: If engine is None, no key is given, a key is
                invalid, or the table cannot be created
        """
        if not keys:
            raise ConfigurationError("at least one session key is required")

        options = options or SessionOptions()
        try:
            codecs = codecs_from_keys(*keys, max_age=options.max_age)
        except InvalidKeyError as e:
            raise ConfigurationError(str(e)) from e

        store = cls(
            SQLRecordStore(engine, table_name),
            codecs,
            options=options,
            sweep_interval_seconds=sweep_interval_seconds,
            clock=clock,
        )
        await store.open()
        return store

    @classmethod
    async def from_settings(cls, settings: Settings, engine: AsyncEngine) -> "SQLSessionStore":
        """Create a store configured from application settings."""
        options = SessionOptions(
            path=settings.cookie_path,
            domain=settings.cookie_domain,
            max_age=settings.session_max_age,
            secure=settings.cookie_secure,
            http_only=settings.cookie_http_only,
            same_site=settings.cookie_same_site,
        )
        store = await cls.create(
            engine,
            *settings.session_keys,
            table_name=settings.session_table_name,
            options=options,
            sweep_interval_seconds=settings.sweep_interval_seconds,
        )
        store.set_max_length(settings.session_max_length)
        return store

    async def open(self) -> None:
        """Prepare the record store and start the sweeper (sweeps once)."""
        await self.records.init()
        await self.sweeper.start()

    async def close(self) -> None:
        """Stop the sweeper, waiting for an in-flight sweep to finish."""
        await self.sweeper.stop()

    # ========================================
    # Configuration
    # ========================================

    def set_max_age(self, age: int) -> None:
        """Set the default max age of new sessions and of codec tokens."""
        self.options.max_age = age
        for codec in self.codecs:
            if isinstance(codec, ConfigurableLimits):
                codec.set_max_age(age)

    def set_max_length(self, length: int) -> None:
        """Set the maximum encoded length accepted and produced by the codecs."""
        for codec in self.codecs:
            if isinstance(codec, ConfigurableLimits):
                codec.set_max_length(length)

    # ========================================
    # Lifecycle
    # ========================================

    async def get(self, request: Request, name: str) -> Session:
        """Return the session for name, resolving it once per request."""
        registry = self._registry(request)
        session = registry.get(name)
        if session is None:
            session = await self.new(request, name)
            registry[name] = session
        return session

    async def new(self, request: Request, name: str) -> Session:
        """Resume the session named by the request cookie or create a new one.

        Missing, tampered or expired cookies and missing or unreadable records
        all lead to a freshly inserted session.

        Raises:
            CodecError: If the new session cannot be encoded
            PersistenceError: If the new session cannot be inserted
        """
        session = Session(self, name, replace(self.options))

        reason = await self._resume(request, session)
        if reason is None:
            session.is_new = False
            record_session_load("resumed")
            return session

        session.fallback_reason = reason
        session.id = ""
        session.values = {}
        try:
            session.id = await self._insert(session)
        except (CodecError, PersistenceError):
            record_session_load("create_failed")
            raise

        record_session_load(reason)
        return session

    async def save(self, request: Request, response: Response, session: Session) -> None:
        """Persist the session and set its cookie on the response.

        A max_age of zero or less deletes the record and expires the cookie.
        No cookie is written when persisting fails.

        Raises:
            CodecError: If the payload or id cannot be encoded
            PersistenceError: If the record store fails
        """
        if session.options.max_age <= 0:
            try:
                if session.id:
                    await self.records.delete(session.id)
            except PersistenceError:
                record_session_save("delete", success=False)
                raise
            record_session_save("delete", success=True)
            self._set_cookie(response, session, "")
            return

        operation = "update" if session.id else "insert"
        try:
            if session.id:
                await self._update(session)
                token = encode_multi(session.name, session.id, self.codecs)
            else:
                record_id = await self._insert(session)
                try:
                    token = encode_multi(session.name, record_id, self.codecs)
                except CodecError:
                    await self.records.delete(record_id)
                    raise
                session.id = record_id
        except (CodecError, PersistenceError):
            record_session_save(operation, success=False)
            raise

        record_session_save(operation, success=True)
        self._set_cookie(response, session, token)

    async def save_all(self, request: Request, response: Response) -> None:
        """Save every session resolved through get() for this request."""
        for session in list(self._registry(request).values()):
            await self.save(request, response, session)

    # ========================================
    # Internals
    # ========================================

    async def _resume(self, request: Request, session: Session) -> str | None:
        token = request.cookies.get(session.name)
        if token is None:
            return "no_cookie"

        try:
            session_id = decode_multi(session.name, token, self.codecs)
        except CodecError:
            return "invalid_cookie"
        if not isinstance(session_id, str) or not session_id:
            return "invalid_cookie"

        try:
            data = await self.records.select(session_id)
            values = decode_multi(session.name, data, self.codecs)
        except RecordNotFoundError:
            return "not_found"
        except (PersistenceError, CodecError):
            return "load_failed"
        if not isinstance(values, dict):
            return "load_failed"

        session.id = session_id
        session.values = values
        return None

    def _expires_at(self, session: Session) -> int:
        return int(self._clock()) + session.options.max_age

    async def _insert(self, session: Session) -> str:
        data = encode_multi(session.name, session.values, self.codecs)
        return await self.records.insert(self._expires_at(session), data)

    async def _update(self, session: Session) -> None:
        data = encode_multi(session.name, session.values, self.codecs)
        await self.records.update(session.id, self._expires_at(session), data)

    @staticmethod
    def _registry(request: Request) -> dict[str, Session]:
        registry = getattr(request.state, _REGISTRY_ATTR, None)
        if registry is None:
            registry = {}
            setattr(request.state, _REGISTRY_ATTR, registry)
        return registry

    @staticmethod
    def _set_cookie(response: Response, session: Session, value: str) -> None:
        options = session.options
        if value:
            response.set_cookie(
                session.name,
                value,
                max_age=options.max_age,
                path=options.path,
                domain=options.domain,
                secure=options.secure,
                httponly=options.http_only,
                samesite=options.same_site,
            )
        else:
            response.set_cookie(
                session.name,
                "",
                max_age=0,
                expires=0,
                path=options.path,
                domain=options.domain,
                secure=options.secure,
                httponly=options.http_only,
                samesite=options.same_site,
            )
