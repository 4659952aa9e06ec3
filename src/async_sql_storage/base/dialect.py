# src/async_sql_storage/base/dialect.py
"""
SQL flavours of the supported databases.

A dialect knows how a database spells the things the statement builder
emits: bind placeholders, quoted identifiers, null-safe equality, string
literals and the LIKE escape declaration. It also adapts Python values to
what the driver can bind.
"""

import json
import re
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from .exceptions import UnsupportedQueryException
from .utils import is_identifier


class SqlDialect(ABC):
    """Abstract base class for database-specific SQL spelling."""

    name: str = "sql"
    #: Whether INSERT ... RETURNING is available.
    supports_returning: bool = True
    #: LIMIT value meaning "no limit" where OFFSET requires a LIMIT; None if OFFSET can stand alone.
    unbounded_limit: Optional[str] = None

    @abstractmethod
    def placeholder(self, index: int) -> str:
        """Bind placeholder for the 1-based parameter `index`."""

    @abstractmethod
    def quote_identifier(self, name: str) -> str:
        """Quote a table or column name."""

    @abstractmethod
    def null_safe_equal(self, column: str, placeholder: str, negate: bool = False) -> str:
        """Equality that treats NULL as a comparable value."""

    def check_identifier(self, name: Any, what: str = "column") -> str:
        if not is_identifier(name):
            raise UnsupportedQueryException(f"Invalid {what} name: {name!r}")
        return name

    def like_escape_clause(self) -> str:
        return " ESCAPE '\\'"

    def quote_string(self, text: str) -> str:
        return "'" + text.replace("'", "''") + "'"

    def boolean_literal(self, value: bool) -> str:
        return "TRUE" if value else "FALSE"

    def adapt_param(self, value: Any) -> Any:
        """Converts an encoded value into something the driver binds natively."""
        if isinstance(value, (dict, list)):
            return json.dumps(value, default=str)
        return value

    def render(self, sql: str, literals: List[str]) -> str:
        """Substitutes placeholders in `sql` with literal texts, in order."""
        return self._render_sequential(sql, literals, self.placeholder(1))

    @staticmethod
    def _render_sequential(sql: str, literals: List[str], token: str) -> str:
        chunks = sql.split(token)
        if len(chunks) - 1 != len(literals):
            raise ValueError(
                f"Placeholder count mismatch: {len(chunks) - 1} placeholders, {len(literals)} literals."
            )
        out = [chunks[0]]
        for literal, chunk in zip(literals, chunks[1:]):
            out.append(literal)
            out.append(chunk)
        return "".join(out)


class SqliteDialect(SqlDialect):
    name = "sqlite"
    unbounded_limit = "-1"

    def placeholder(self, index: int) -> str:
        return "?"

    def quote_identifier(self, name: str) -> str:
        return f'"{self.check_identifier(name)}"'

    def null_safe_equal(self, column: str, placeholder: str, negate: bool = False) -> str:
        return f"{column} {'IS NOT' if negate else 'IS'} {placeholder}"

    def boolean_literal(self, value: bool) -> str:
        return "1" if value else "0"

    def adapt_param(self, value: Any) -> Any:
        if isinstance(value, bool):
            return 1 if value else 0
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, UUID):
            return str(value)
        if isinstance(value, Decimal):
            return float(value)
        return super().adapt_param(value)


class PostgresDialect(SqlDialect):
    name = "postgresql"

    _PLACEHOLDER_RE = re.compile(r"\$(\d+)")

    def placeholder(self, index: int) -> str:
        return f"${index}"

    def quote_identifier(self, name: str) -> str:
        return f'"{self.check_identifier(name)}"'

    def null_safe_equal(self, column: str, placeholder: str, negate: bool = False) -> str:
        op = "IS DISTINCT FROM" if negate else "IS NOT DISTINCT FROM"
        return f"{column} {op} {placeholder}"

    def render(self, sql: str, literals: List[str]) -> str:
        def substitute(match: re.Match) -> str:
            return literals[int(match.group(1)) - 1]

        return self._PLACEHOLDER_RE.sub(substitute, sql)


class MySQLDialect(SqlDialect):
    name = "mysql"
    supports_returning = False
    unbounded_limit = "18446744073709551615"

    def placeholder(self, index: int) -> str:
        return "%s"

    def quote_identifier(self, name: str) -> str:
        return f"`{self.check_identifier(name)}`"

    def null_safe_equal(self, column: str, placeholder: str, negate: bool = False) -> str:
        if negate:
            return f"NOT ({column} <=> {placeholder})"
        return f"{column} <=> {placeholder}"

    def like_escape_clause(self) -> str:
        # Backslash is itself an escape character inside MySQL string literals.
        return " ESCAPE '\\\\'"

    def quote_string(self, text: str) -> str:
        return "'" + text.replace("\\", "\\\\").replace("'", "''") + "'"

    def adapt_param(self, value: Any) -> Any:
        if isinstance(value, UUID):
            return str(value)
        # DATETIME columns carry no offset; store UTC wall time.
        if isinstance(value, datetime) and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return super().adapt_param(value)


DIALECTS = {
    SqliteDialect.name: SqliteDialect,
    PostgresDialect.name: PostgresDialect,
    MySQLDialect.name: MySQLDialect,
}


def get_dialect(name: str) -> SqlDialect:
    """Returns a dialect instance by name ('sqlite', 'postgresql', 'mysql')."""
    try:
        return DIALECTS[name]()
    except KeyError:
        raise ValueError(f"Unknown SQL dialect: {name!r}") from None
