# src/async_sql_storage/db_implementations/postgresql_handler.py

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import asyncpg

from async_sql_storage.base.dialect import PostgresDialect
from async_sql_storage.base.exceptions import KeyAlreadyExistsException, TransportException
from async_sql_storage.base.sql_handler import SqlStorageHandler
from async_sql_storage.base.statement import Statement

DB_POOL_TYPE = asyncpg.Pool


class PostgresStorageHandler(SqlStorageHandler):
    """
    PostgreSQL storage handler using asyncpg.

    Requires an asyncpg.Pool during initialization and handles connection
    acquisition/release internally. Composite payload values are bound as
    JSON text and suit json/jsonb or text columns. `created`/`updated`
    belong in timestamptz columns.
    """

    # --- Initialization ---
    def __init__(
        self,
        db_pool: DB_POOL_TYPE,
        table_name: str,
        id_field: str = "id",
        db_schema: str = "public",
        default_timeout: Optional[float] = None,
    ):
        """
        Initialize the PostgreSQL handler with an existing connection pool.

        Args:
            db_pool: An active asyncpg.Pool object.
            table_name: The name of the database table.
            id_field: The primary key column.
            db_schema: The schema containing the table.
            default_timeout: Deadline in seconds applied when a call passes none.
        """
        if not isinstance(db_pool, asyncpg.Pool):
            raise TypeError("db_pool must be an instance of asyncpg.Pool")
        super().__init__(
            PostgresDialect(),
            table_name,
            id_field=id_field,
            db_schema=db_schema,
            default_timeout=default_timeout,
        )
        self._pool = db_pool
        self._db_schema = db_schema
        self._logger.info(
            f"Storage handler created for table '{db_schema}.{table_name}' (ID field: '{id_field}')."
        )

    # --- Connection/Session Management ---
    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[asyncpg.Connection, None]:
        """Acquire connection from the pool and release it afterwards."""
        conn: Optional[asyncpg.Connection] = None
        try:
            conn = await self._pool.acquire()
            self._logger.debug("Acquired connection from pool.")
            yield conn
        finally:
            if conn is not None:
                try:
                    await self._pool.release(conn)
                    self._logger.debug("Released connection back to pool.")
                except Exception as release_error:
                    self._logger.error(
                        f"Error releasing connection: {release_error}", exc_info=True
                    )

    async def _begin(self, conn: asyncpg.Connection) -> Any:
        tx = conn.transaction()
        await tx.start()
        return tx

    async def _commit(self, conn: asyncpg.Connection, tx: Any) -> None:
        await tx.commit()

    async def _rollback(self, conn: asyncpg.Connection, tx: Any) -> None:
        if tx is None:
            # Interrupted start; releasing the connection to the pool resets it.
            return
        await tx.rollback()

    # --- Execution ---
    async def _fetch_all(self, conn: asyncpg.Connection, statement: Statement) -> List[Dict[str, Any]]:
        records = await conn.fetch(statement.sql, *statement.params)
        return [dict(record) for record in records]

    async def _fetch_value(self, conn: asyncpg.Connection, statement: Statement) -> Tuple[bool, Any]:
        record = await conn.fetchrow(statement.sql, *statement.params)
        if record is None:
            return False, None
        return True, record[0]

    async def _execute(self, conn: asyncpg.Connection, statement: Statement) -> int:
        status = await conn.execute(statement.sql, *statement.params)
        # Command tag, e.g. "UPDATE 1" or "DELETE 3"
        try:
            return int(status.split()[-1])
        except (ValueError, IndexError):
            self._logger.warning(f"Could not parse affected row count from status '{status}'.")
            return 0

    async def _execute_insert(self, conn: asyncpg.Connection, statement: Statement, returns_id: bool) -> Any:
        if returns_id:
            return await conn.fetchval(statement.sql, *statement.params)
        await conn.execute(statement.sql, *statement.params)
        return None

    # --- Error Handling ---
    def _handle_db_error(self, error: Exception, context: str = "") -> None:
        """Maps asyncpg errors to storage exceptions."""
        if isinstance(error, asyncpg.UniqueViolationError):
            raise KeyAlreadyExistsException(
                f"Duplicate key in '{self._table_name}' during {context}: {error.detail or error}"
            ) from error
        if isinstance(error, asyncpg.PostgresError):
            raise TransportException(
                f"PostgreSQL error ({getattr(error, 'sqlstate', None)}) during {context}: {error}"
            ) from error
        raise TransportException(f"Database error during {context}: {error}") from error
