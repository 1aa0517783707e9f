"""
convo_mcp/db/upsert.py

Purpose: Dialect-aware INSERT .. ON CONFLICT

- PostgreSQL and SQLite both support ON CONFLICT; SQLAlchemy exposes it
  through dialect-specific insert() constructs
- Keeps atomic upserts in one statement instead of read-then-write
"""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_insert(session: AsyncSession, table):
    """
    Returns an INSERT construct supporting ``on_conflict_do_*`` for the
    session's dialect.

    Raises:
        NotImplementedError: If the dialect has no ON CONFLICT support
    """
    dialect = session.get_bind().dialect.name
    try:
        return _INSERTS[dialect](table)
    except KeyError:
        raise NotImplementedError(f"Upsert is not supported for dialect '{dialect}'") from None
