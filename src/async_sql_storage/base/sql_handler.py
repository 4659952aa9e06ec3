# src/async_sql_storage/base/sql_handler.py

import asyncio
import logging
from abc import abstractmethod
from contextlib import asynccontextmanager
from logging import LoggerAdapter
from typing import Any, AsyncGenerator, Awaitable, Dict, List, Optional, Tuple, TypeVar

from async_sql_storage.base.dialect import SqlDialect
from async_sql_storage.base.exceptions import (
    ConflictException,
    ObjectNotFoundException,
    OperationCancelledException,
    StorageException,
    TransportException,
)
from async_sql_storage.base.interfaces import StorageHandler
from async_sql_storage.base.item import Item, ItemList
from async_sql_storage.base.mapper import rows_to_item_list
from async_sql_storage.base.query import Query
from async_sql_storage.base.statement import Statement, StatementBuilder
from async_sql_storage.base.utils import utc_now

R = TypeVar("R")


class SqlStorageHandler(StorageHandler):
    """
    Storage handler orchestration shared by the relational backends.

    Subclasses provide connection handling (`_get_session`), transaction
    primitives, statement execution and driver error mapping. This class
    builds statements, runs them inside transactions, enforces the
    optimistic-concurrency rules and translates failures into the storage
    exceptions.

    Every operation runs in its own transaction. Any exception raised while
    a transaction is open, cancellation included, rolls it back before
    propagating.
    """

    def __init__(
        self,
        dialect: SqlDialect,
        table_name: str,
        id_field: str = "id",
        db_schema: Optional[str] = None,
        default_timeout: Optional[float] = None,
    ):
        self._builder = StatementBuilder(dialect, table_name, id_field=id_field, db_schema=db_schema)
        self._dialect = dialect
        self._table_name = table_name
        self._id_field = id_field
        self._default_timeout = default_timeout
        self._logger = logging.getLogger(
            f"{self.__class__.__module__}.{self.__class__.__name__}[{table_name}]"
        )
        self._log_adapter = LoggerAdapter(self._logger, {"table": table_name})

    # --- Properties ---
    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def id_field(self) -> str:
        return self._id_field

    @property
    def dialect(self) -> SqlDialect:
        return self._dialect

    @property
    def statements(self) -> StatementBuilder:
        """The statement builder for this handler's table."""
        return self._builder

    # --- Backend primitives ---
    @abstractmethod
    def _get_session(self) -> "AsyncGenerator[Any, None]":
        """Async context manager yielding a connection for one operation."""

    @abstractmethod
    async def _begin(self, conn: Any) -> Any:
        """Start a transaction on `conn`; returns whatever commit/rollback need."""

    @abstractmethod
    async def _commit(self, conn: Any, tx: Any) -> None:
        pass

    @abstractmethod
    async def _rollback(self, conn: Any, tx: Any) -> None:
        """Roll back; `tx` is None when `_begin` did not return."""

    @abstractmethod
    async def _fetch_all(self, conn: Any, statement: Statement) -> List[Dict[str, Any]]:
        """Execute a query and return every row as a column -> value dict."""

    @abstractmethod
    async def _fetch_value(self, conn: Any, statement: Statement) -> Tuple[bool, Any]:
        """Execute a query and return (row_found, first_column_of_first_row)."""

    @abstractmethod
    async def _execute(self, conn: Any, statement: Statement) -> int:
        """Execute a write and return the number of affected rows."""

    @abstractmethod
    async def _execute_insert(self, conn: Any, statement: Statement, returns_id: bool) -> Any:
        """Execute an INSERT; returns the generated id when `returns_id` is set."""

    @abstractmethod
    def _handle_db_error(self, error: Exception, context: str = "") -> None:
        """Maps driver errors to storage exceptions. Always raises."""

    # --- Transaction / deadline helpers ---
    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[Any, None]:
        """Yields a connection inside a transaction; commits on success, rolls back otherwise."""
        async with self._get_session() as conn:
            tx = None
            # An interrupted BEGIN may still open the transaction driver-side.
            try:
                tx = await self._begin(conn)
                yield conn
                await self._commit(conn, tx)
            except BaseException:
                try:
                    await self._rollback(conn, tx)
                except Exception as rollback_error:
                    self._logger.error(
                        f"Error rolling back transaction on {self._table_name}: {rollback_error}",
                        exc_info=True,
                    )
                raise

    async def _with_deadline(
        self, operation: Awaitable[R], timeout: Optional[float], context: str, logger: LoggerAdapter
    ) -> R:
        effective_timeout = timeout if timeout is not None else self._default_timeout
        if effective_timeout is None:
            return await operation
        try:
            return await asyncio.wait_for(operation, effective_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{context} on '{self._table_name}' cancelled after {effective_timeout}s.")
            raise OperationCancelledException(
                f"{context} on '{self._table_name}' did not complete within {effective_timeout}s."
            ) from None

    def _wrap_error(self, error: Exception, context: str, logger: LoggerAdapter) -> None:
        if isinstance(error, StorageException):
            raise error
        logger.error(f"Error during {context} on '{self._table_name}': {error}", exc_info=True)
        self._handle_db_error(error, context)
        raise TransportException(f"Unexpected error during {context}: {error}") from error

    # --- Operations ---
    async def find(
        self,
        query: Query,
        logger: Optional[LoggerAdapter] = None,
        timeout: Optional[float] = None,
    ) -> ItemList:
        logger = logger or self._log_adapter
        return await self._with_deadline(self._find(query, logger), timeout, "find", logger)

    async def _find(self, query: Query, logger: LoggerAdapter) -> ItemList:
        select = self._builder.select(query)
        count = self._builder.count(query) if query.window is not None else None
        logger.debug(f"Executing find: {select.render()}")
        try:
            async with self._transaction() as conn:
                rows = await self._fetch_all(conn, select)
                total = None
                if count is not None:
                    _, total = await self._fetch_value(conn, count)
            result = rows_to_item_list(
                rows,
                offset=query.offset,
                total=int(total) if total is not None else None,
                id_field=self._id_field,
            )
        except Exception as e:
            self._wrap_error(e, "find", logger)
        logger.info(
            f"Found {len(result.items)} item(s) (total {result.total}) in '{self._table_name}'."
        )
        return result

    async def count(
        self,
        query: Query,
        logger: Optional[LoggerAdapter] = None,
        timeout: Optional[float] = None,
    ) -> int:
        logger = logger or self._log_adapter
        return await self._with_deadline(self._count(query, logger), timeout, "count", logger)

    async def _count(self, query: Query, logger: LoggerAdapter) -> int:
        statement = self._builder.count(query)
        logger.debug(f"Executing count: {statement.render()}")
        try:
            async with self._transaction() as conn:
                _, total = await self._fetch_value(conn, statement)
        except Exception as e:
            self._wrap_error(e, "count", logger)
        return int(total or 0)

    async def insert(
        self,
        items: List[Item],
        logger: Optional[LoggerAdapter] = None,
        timeout: Optional[float] = None,
    ) -> None:
        logger = logger or self._log_adapter
        await self._with_deadline(self._insert(items, logger), timeout, "insert", logger)

    async def _insert(self, items: List[Item], logger: LoggerAdapter) -> None:
        if not items:
            return
        now = utc_now()
        statements = [self._builder.insert(item, now) for item in items]
        generated: List[Any] = []
        try:
            async with self._transaction() as conn:
                for item, statement in zip(items, statements):
                    logger.debug(f"Executing insert: {statement.render()}")
                    generated.append(
                        await self._execute_insert(conn, statement, returns_id=item.id is None)
                    )
        except Exception as e:
            self._wrap_error(e, f"inserting {len(items)} item(s)", logger)

        for item, new_id in zip(items, generated):
            if item.id is None:
                item.id = new_id
                item.payload[self._id_field] = new_id
            item.created = now
            item.updated = now
        logger.info(f"Inserted {len(items)} item(s) into '{self._table_name}'.")

    async def update(
        self,
        item: Item,
        original: Item,
        logger: Optional[LoggerAdapter] = None,
        timeout: Optional[float] = None,
    ) -> None:
        logger = logger or self._log_adapter
        await self._with_deadline(self._update(item, original, logger), timeout, "update", logger)

    async def _update(self, item: Item, original: Item, logger: LoggerAdapter) -> None:
        now = utc_now()
        statement = self._builder.update(item, original, now)
        lookup = self._builder.etag_lookup(original.id)
        logger.debug(f"Executing update: {statement.render()}")
        try:
            async with self._transaction() as conn:
                changed = await self._execute(conn, statement)
                if changed == 0:
                    found, stored_etag = await self._fetch_value(conn, lookup)
                    # Passing the check means the row matched but was left unchanged;
                    # MySQL reports changed rows, not matched rows.
                    self._check_version(original, found, stored_etag, "update", logger)
        except Exception as e:
            self._wrap_error(e, f"updating item ID {original.id}", logger)

        item.updated = now
        item.created = original.created
        logger.info(f"Updated item '{original.id}' in '{self._table_name}'.")

    async def delete(
        self,
        item: Item,
        logger: Optional[LoggerAdapter] = None,
        timeout: Optional[float] = None,
    ) -> None:
        logger = logger or self._log_adapter
        await self._with_deadline(self._delete(item, logger), timeout, "delete", logger)

    async def _delete(self, item: Item, logger: LoggerAdapter) -> None:
        statement = self._builder.delete_item(item)
        lookup = self._builder.etag_lookup(item.id)
        logger.debug(f"Executing delete: {statement.render()}")
        try:
            async with self._transaction() as conn:
                deleted = await self._execute(conn, statement)
                if deleted == 0:
                    found, stored_etag = await self._fetch_value(conn, lookup)
                    self._check_version(item, found, stored_etag, "delete", logger)
                    raise ConflictException(
                        f"Item '{item.id}' in '{self._table_name}' could not be deleted."
                    )
        except Exception as e:
            self._wrap_error(e, f"deleting item ID {item.id}", logger)
        logger.info(f"Deleted item '{item.id}' from '{self._table_name}'.")

    def _check_version(
        self, expected: Item, found: bool, stored_etag: Any, context: str, logger: LoggerAdapter
    ) -> None:
        """Classifies a conditional write that touched no row."""
        if not found:
            logger.warning(f"{context}: item '{expected.id}' not found in '{self._table_name}'.")
            raise ObjectNotFoundException(
                f"Item with ID '{expected.id}' not found in '{self._table_name}'."
            )
        if stored_etag != expected.etag:
            logger.warning(
                f"{context}: etag mismatch for item '{expected.id}' "
                f"(expected '{expected.etag}', stored '{stored_etag}')."
            )
            raise ConflictException(
                f"Item '{expected.id}' in '{self._table_name}' was modified concurrently."
            )

    async def clear(
        self,
        query: Query,
        logger: Optional[LoggerAdapter] = None,
        timeout: Optional[float] = None,
    ) -> int:
        logger = logger or self._log_adapter
        return await self._with_deadline(self._clear(query, logger), timeout, "clear", logger)

    async def _clear(self, query: Query, logger: LoggerAdapter) -> int:
        statement = self._builder.delete(query)
        logger.debug(f"Executing clear: {statement.render()}")
        try:
            async with self._transaction() as conn:
                removed = await self._execute(conn, statement)
        except Exception as e:
            self._wrap_error(e, "clearing items", logger)
        logger.info(f"Cleared {removed} item(s) from '{self._table_name}' matching {query!r}.")
        return removed
