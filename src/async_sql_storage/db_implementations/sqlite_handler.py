# src/async_sql_storage/db_implementations/sqlite_handler.py

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import aiosqlite

from async_sql_storage.base.dialect import SqliteDialect
from async_sql_storage.base.exceptions import (
    KeyAlreadyExistsException,
    TransportException,
)
from async_sql_storage.base.sql_handler import SqlStorageHandler
from async_sql_storage.base.statement import Statement

# One lock per connection: SQLite transactions are connection-wide, so
# handlers sharing a connection must not interleave them.
_connection_locks: "weakref.WeakKeyDictionary[aiosqlite.Connection, asyncio.Lock]" = (
    weakref.WeakKeyDictionary()
)


def _lock_for(conn: aiosqlite.Connection) -> asyncio.Lock:
    lock = _connection_locks.get(conn)
    if lock is None:
        lock = asyncio.Lock()
        _connection_locks[conn] = lock
    return lock


class SqliteStorageHandler(SqlStorageHandler):
    """
    SQLite storage handler using aiosqlite.

    Works on an externally managed connection. Timestamps are stored as
    ISO 8601 text, booleans as 0/1 and composite payload values as JSON
    text. Identifier generation relies on an INTEGER PRIMARY KEY column
    and RETURNING (SQLite >= 3.35).
    """

    # --- Initialization ---
    def __init__(
        self,
        db_connection: aiosqlite.Connection,
        table_name: str,
        id_field: str = "id",
        default_timeout: Optional[float] = None,
    ):
        """
        Initialize the SQLite handler with an existing connection.

        Args:
            db_connection: An active aiosqlite.Connection object managed externally.
            table_name: The name of the database table.
            id_field: The primary key column.
            default_timeout: Deadline in seconds applied when a call passes none.
        """
        if not isinstance(db_connection, aiosqlite.Connection):
            raise TypeError("db_connection must be an instance of aiosqlite.Connection")
        super().__init__(SqliteDialect(), table_name, id_field=id_field, default_timeout=default_timeout)
        self._conn = db_connection
        # Ensure connection uses dict-like rows for convenience
        self._conn.row_factory = aiosqlite.Row
        self._logger.info(
            f"Storage handler created for table '{table_name}' (ID field: '{id_field}')."
        )

    # --- Connection/Session Management ---
    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        """Provides the shared connection, one operation at a time."""
        async with _lock_for(self._conn):
            yield self._conn

    async def _begin(self, conn: aiosqlite.Connection) -> None:
        await conn.execute("BEGIN")

    async def _commit(self, conn: aiosqlite.Connection, tx: Any) -> None:
        await conn.commit()

    async def _rollback(self, conn: aiosqlite.Connection, tx: Any) -> None:
        # Queued behind any in-flight BEGIN; a no-op outside a transaction.
        await conn.rollback()

    # --- Execution ---
    async def _fetch_all(self, conn: aiosqlite.Connection, statement: Statement) -> List[Dict[str, Any]]:
        async with conn.execute(statement.sql, statement.params) as cursor:
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def _fetch_value(self, conn: aiosqlite.Connection, statement: Statement) -> Tuple[bool, Any]:
        async with conn.execute(statement.sql, statement.params) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return False, None
        return True, row[0]

    async def _execute(self, conn: aiosqlite.Connection, statement: Statement) -> int:
        async with conn.execute(statement.sql, statement.params) as cursor:
            return cursor.rowcount

    async def _execute_insert(
        self, conn: aiosqlite.Connection, statement: Statement, returns_id: bool
    ) -> Any:
        async with conn.execute(statement.sql, statement.params) as cursor:
            if not returns_id:
                return None
            row = await cursor.fetchone()
            return row[0] if row is not None else cursor.lastrowid

    # --- Error Handling ---
    def _handle_db_error(self, error: Exception, context: str = "") -> None:
        """Maps aiosqlite errors to storage exceptions."""
        message = str(error)
        if isinstance(error, aiosqlite.IntegrityError):
            if "UNIQUE constraint failed" in message or "PRIMARY KEY" in message:
                raise KeyAlreadyExistsException(
                    f"Duplicate key in '{self._table_name}' during {context}: {message}"
                ) from error
            raise TransportException(
                f"Database integrity constraint violated during {context}. Detail: {message}"
            ) from error
        raise TransportException(f"SQLite error during {context}: {message}") from error
