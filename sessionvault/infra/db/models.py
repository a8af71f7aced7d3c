"""SQLAlchemy table definitions for sessionvault.

The session table is defined with SQLAlchemy Core rather than a declarative
model so that its name can be chosen at runtime (one store per table).
Works on SQLite (development) and PostgreSQL (production).

Schema:
- id: store-assigned autoincrement key, the only value carried by cookies
- expires_at: absolute expiry in epoch seconds, rewritten on every save
- session_data: codec-encoded payload, never plaintext
"""

from sqlalchemy import BigInteger, Column, Integer, MetaData, Table, Text

DEFAULT_TABLE_NAME = "sessions"


def sessions_table(metadata: MetaData, name: str = DEFAULT_TABLE_NAME) -> Table:
    """Build the session table on the given metadata.

    Args:
        metadata: MetaData the table is registered on
        name: Table name

    Returns:
        Table with id, expires_at and session_data columns
    """
    return Table(
        name,
        metadata,
        Column(
            "id",
            Integer,
            primary_key=True,
            autoincrement=True,
            comment="Store-assigned session identifier",
        ),
        Column(
            "expires_at",
            BigInteger,
            nullable=False,
            index=True,
            comment="Expiry as seconds since epoch",
        ),
        Column(
            "session_data",
            Text,
            nullable=False,
            comment="Encoded session payload",
        ),
        # Never hand out the id of a deleted session again
        sqlite_autoincrement=True,
    )
