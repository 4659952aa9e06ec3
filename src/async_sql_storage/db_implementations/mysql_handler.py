# src/async_sql_storage/db_implementations/mysql_handler.py

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import aiomysql

from async_sql_storage.base.dialect import MySQLDialect
from async_sql_storage.base.exceptions import KeyAlreadyExistsException, TransportException
from async_sql_storage.base.sql_handler import SqlStorageHandler
from async_sql_storage.base.statement import Statement

DB_POOL_TYPE = aiomysql.Pool
DB_CURSOR_TYPE = aiomysql.DictCursor
Session = Tuple[aiomysql.Connection, aiomysql.DictCursor]

# MySQL error codes
ER_DUP_ENTRY = 1062


class MySQLStorageHandler(SqlStorageHandler):
    """
    MySQL storage handler using aiomysql.

    Requires an aiomysql.Pool (autocommit off) and handles connection
    acquisition/release internally. MySQL has no INSERT ... RETURNING, so
    generated identifiers come from the cursor's lastrowid, which requires
    an AUTO_INCREMENT primary key. DATETIME columns hold UTC wall time.

    An UPDATE that rewrites a row with identical values reports zero
    affected rows unless the pool was created with the CLIENT.FOUND_ROWS
    flag; the version check after such an update accepts it as a no-op.
    """

    # --- Initialization ---
    def __init__(
        self,
        db_pool: DB_POOL_TYPE,
        table_name: str,
        id_field: str = "id",
        default_timeout: Optional[float] = None,
    ):
        """
        Initialize the MySQL handler with an existing connection pool.

        Args:
            db_pool: An active aiomysql.Pool object.
            table_name: The name of the database table.
            id_field: The primary key column.
            default_timeout: Deadline in seconds applied when a call passes none.
        """
        super().__init__(MySQLDialect(), table_name, id_field=id_field, default_timeout=default_timeout)
        self._pool = db_pool
        self._logger.info(
            f"Storage handler created for table '{table_name}' (ID field: '{id_field}')."
        )

    # --- Connection/Session Management ---
    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[Session, None]:
        """
        Acquire connection from the pool and create a DictCursor.
        Handles connection release.
        """
        conn = None
        cursor = None
        try:
            conn = await self._pool.acquire()
            self._logger.debug("Acquired connection from pool.")
            cursor = await conn.cursor(DB_CURSOR_TYPE)
            yield conn, cursor
        except asyncio.CancelledError:
            # The protocol state is unknown after an interrupted round trip.
            if conn is not None:
                conn.close()
            raise
        finally:
            if cursor is not None and not conn.closed:
                await cursor.close()
            if conn is not None:
                try:
                    self._pool.release(conn)
                    self._logger.debug("Released connection back to pool.")
                except Exception as release_error:
                    self._logger.error(
                        f"Error releasing connection: {release_error}", exc_info=True
                    )

    async def _begin(self, session: Session) -> None:
        conn, _ = session
        await conn.begin()

    async def _commit(self, session: Session, tx: Any) -> None:
        conn, _ = session
        await conn.commit()

    async def _rollback(self, session: Session, tx: Any) -> None:
        conn, _ = session
        if not conn.closed:
            await conn.rollback()

    # --- Execution ---
    async def _fetch_all(self, session: Session, statement: Statement) -> List[Dict[str, Any]]:
        _, cursor = session
        await cursor.execute(statement.sql, statement.params)
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def _fetch_value(self, session: Session, statement: Statement) -> Tuple[bool, Any]:
        _, cursor = session
        await cursor.execute(statement.sql, statement.params)
        row = await cursor.fetchone()
        if row is None:
            return False, None
        return True, next(iter(row.values()))

    async def _execute(self, session: Session, statement: Statement) -> int:
        _, cursor = session
        return await cursor.execute(statement.sql, statement.params)

    async def _execute_insert(self, session: Session, statement: Statement, returns_id: bool) -> Any:
        _, cursor = session
        await cursor.execute(statement.sql, statement.params)
        return cursor.lastrowid if returns_id else None

    # --- Error Handling ---
    def _handle_db_error(self, error: Exception, context: str = "") -> None:
        """Maps aiomysql/pymysql errors to storage exceptions."""
        errno = error.args[0] if isinstance(error, aiomysql.Error) and error.args else None
        if isinstance(error, aiomysql.IntegrityError) and errno == ER_DUP_ENTRY:
            raise KeyAlreadyExistsException(
                f"Duplicate key in '{self._table_name}' during {context}: {error}"
            ) from error
        if isinstance(error, aiomysql.Error):
            raise TransportException(f"MySQL error ({errno}) during {context}: {error}") from error
        raise TransportException(f"Database error during {context}: {error}") from error
