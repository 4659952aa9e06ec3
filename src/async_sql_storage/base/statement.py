# src/async_sql_storage/base/statement.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Tuple

from .dialect import SqlDialect
from .encoder import ParameterCollector, ValueEncoder
from .exceptions import UnsupportedQueryException
from .item import Item
from .mapper import item_to_columns
from .query import Query, Window
from .translator import PredicateTranslator


@dataclass(frozen=True)
class Statement:
    """A SQL statement with its bind parameters, ready for execution."""

    sql: str
    params: Tuple[Any, ...] = ()
    literals: Tuple[str, ...] = field(default=(), repr=False)
    dialect: Optional[SqlDialect] = field(default=None, repr=False, compare=False)

    def render(self) -> str:
        """The statement with every placeholder replaced by its escaped literal."""
        if not self.literals or self.dialect is None:
            return self.sql
        return self.dialect.render(self.sql, list(self.literals))

    def __str__(self) -> str:
        return self.sql


class StatementBuilder:
    """
    Assembles complete statements for one table. Never executes anything.

    Args:
        dialect: The SQL flavour to emit.
        table_name: The table the statements target.
        id_field: The primary key column.
        db_schema: Optional schema qualifying the table name.
    """

    def __init__(
        self,
        dialect: SqlDialect,
        table_name: str,
        id_field: str = "id",
        db_schema: Optional[str] = None,
    ):
        self.dialect = dialect
        self.encoder = ValueEncoder(dialect)
        self.translator = PredicateTranslator(dialect, self.encoder)
        self.table_name = dialect.check_identifier(table_name, "table")
        self.id_field = dialect.check_identifier(id_field)
        self.db_schema = db_schema
        qualified = dialect.quote_identifier(self.table_name)
        if db_schema:
            qualified = f"{dialect.quote_identifier(db_schema)}.{qualified}"
        self.table = qualified
        self._managed = {self.id_field, "etag", "created", "updated"}

    # --- helpers ---
    def _params(self) -> ParameterCollector:
        return ParameterCollector(self.encoder)

    def _statement(self, sql: str, params: ParameterCollector) -> Statement:
        return Statement(sql, tuple(params.values), tuple(params.literals), self.dialect)

    def _col(self, name: str) -> str:
        return self.dialect.quote_identifier(name)

    def _where(self, query: Query, params: ParameterCollector) -> str:
        where = self.translator.translate_into(query.predicate, params)
        return f" WHERE {where}" if where else ""

    def order_by(self, query: Query) -> str:
        """ORDER BY list; the identifier when the query has no sort."""
        if not query.sort:
            return self._col(self.id_field)
        keys = []
        for sort_field in query.sort:
            key = self._col(self.dialect.check_identifier(sort_field.name, "sort field"))
            keys.append(f"{key} DESC" if sort_field.reversed else key)
        return ",".join(keys)

    def pagination(self, window: Optional[Window]) -> str:
        if window is None:
            return ""
        if window.has_limit:
            return f" LIMIT {int(window.limit)} OFFSET {int(window.offset)}"
        if window.offset > 0:
            if self.dialect.unbounded_limit is not None:
                return f" LIMIT {self.dialect.unbounded_limit} OFFSET {int(window.offset)}"
            return f" OFFSET {int(window.offset)}"
        return ""

    # --- query statements ---
    def select(self, query: Query) -> Statement:
        params = self._params()
        sql = f"SELECT * FROM {self.table}{self._where(query, params)}"
        sql += f" ORDER BY {self.order_by(query)}"
        sql += self.pagination(query.window)
        return self._statement(sql, params)

    def count(self, query: Query) -> Statement:
        params = self._params()
        return self._statement(
            f"SELECT COUNT(*) FROM {self.table}{self._where(query, params)}", params
        )

    def delete(self, query: Query) -> Statement:
        """
        Bulk DELETE for the query's predicate.

        Raises:
            UnsupportedQueryException: If the predicate is empty. Clearing a
                whole table requires an explicit MatchAll() node.
        """
        if not query.predicate:
            raise UnsupportedQueryException(
                f"Refusing to delete from {self.table_name} without a predicate; use MatchAll() to clear the table."
            )
        params = self._params()
        return self._statement(f"DELETE FROM {self.table}{self._where(query, params)}", params)

    # --- item statements ---
    def insert(self, item: Item, now: datetime) -> Statement:
        """
        INSERT for one item.

        `created` and `updated` always receive `now`, whatever the payload
        carried. Without an item id the database generates one and the
        statement returns it where the dialect supports RETURNING.
        """
        params = self._params()
        columns = []
        values = []
        for name, value in item_to_columns(item, now, self.id_field).items():
            columns.append(self._col(name))
            values.append(params.add(value, allow_composite=name not in self._managed))

        sql = f"INSERT INTO {self.table} ({', '.join(columns)}) VALUES ({', '.join(values)})"
        if item.id is None and self.dialect.supports_returning:
            sql += f" RETURNING {self._col(self.id_field)}"
        return self._statement(sql, params)

    def update(self, item: Item, original: Item, now: datetime) -> Statement:
        """
        Conditional UPDATE: the row changes only while both the identifier and
        the original etag still match.
        """
        params = self._params()
        assignments = [
            f"{self._col(name)} = {params.add(value, allow_composite=name not in self._managed)}"
            for name, value in item_to_columns(item, now, self.id_field, for_update=True).items()
        ]

        id_placeholder = params.add(original.id)
        etag_placeholder = params.add(original.etag)
        sql = (
            f"UPDATE {self.table} SET {', '.join(assignments)} "
            f"WHERE {self._col(self.id_field)} = {id_placeholder} "
            f"AND {self._col('etag')} = {etag_placeholder}"
        )
        return self._statement(sql, params)

    def delete_item(self, item: Item) -> Statement:
        """DELETE scoped by identifier and etag."""
        params = self._params()
        id_placeholder = params.add(item.id)
        etag_placeholder = params.add(item.etag)
        sql = (
            f"DELETE FROM {self.table} "
            f"WHERE {self._col(self.id_field)} = {id_placeholder} "
            f"AND {self._col('etag')} = {etag_placeholder}"
        )
        return self._statement(sql, params)

    def etag_lookup(self, item_id: Any) -> Statement:
        params = self._params()
        sql = (
            f"SELECT {self._col('etag')} FROM {self.table} "
            f"WHERE {self._col(self.id_field)} = {params.add(item_id)}"
        )
        return self._statement(sql, params)
