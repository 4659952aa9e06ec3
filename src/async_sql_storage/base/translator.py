# src/async_sql_storage/base/translator.py
import logging
from typing import List, Optional, Sequence, Tuple

from .dialect import SqlDialect
from .encoder import ParameterCollector, ValueEncoder
from .exceptions import UnsupportedQueryException
from .query import MatchAll, QueryExpression, QueryFilter, QueryLogical, QueryOperator

log = logging.getLogger(__name__)

_COMPARISON_OPERATORS = {
    QueryOperator.GT: ">",
    QueryOperator.GTE: ">=",
    QueryOperator.LT: "<",
    QueryOperator.LTE: "<=",
}

WILDCARD = "*"


def like_pattern(value: str) -> str:
    """Translates a '*' wildcard string into a LIKE pattern escaped with backslash."""
    return (
        value.replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
        .replace(WILDCARD, "%")
    )


class PredicateTranslator:
    """Recursively translates predicate trees into SQL boolean expressions."""

    def __init__(self, dialect: SqlDialect, encoder: Optional[ValueEncoder] = None):
        self.dialect = dialect
        self.encoder = encoder or ValueEncoder(dialect)

    def translate(self, predicate: Sequence[QueryExpression]) -> Tuple[str, List]:
        """
        Translates a whole predicate into `(sql, params)`.

        An empty predicate yields an empty string; callers must then omit
        the WHERE clause.
        """
        params = ParameterCollector(self.encoder)
        sql = self.translate_into(predicate, params)
        log.debug(f"Translated predicate {list(predicate)!r} to: {sql}")
        return sql, params.values

    def translate_into(
        self, predicate: Sequence[QueryExpression], params: ParameterCollector
    ) -> str:
        """Translates top-level nodes (implicitly ANDed), adding values to `params`."""
        fragments = [self._translate_expression(node, params) for node in predicate]
        return " AND ".join(fragments)

    def _translate_expression(
        self, expression: QueryExpression, params: ParameterCollector
    ) -> str:
        if isinstance(expression, QueryFilter):
            return self._translate_filter(expression, params)

        if isinstance(expression, QueryLogical):
            if not expression.conditions:
                raise UnsupportedQueryException(
                    f"Empty '{expression.operator}' group cannot be translated"
                )
            joiner = f" {expression.operator.upper()} "
            fragments = [
                self._translate_expression(cond, params) for cond in expression.conditions
            ]
            return "(" + joiner.join(fragments) + ")"

        if isinstance(expression, MatchAll):
            return "1=1"

        raise UnsupportedQueryException(
            f"Unknown predicate node type: {type(expression).__name__}"
        )

    def _translate_filter(self, expression: QueryFilter, params: ParameterCollector) -> str:
        column = self.dialect.quote_identifier(
            self.dialect.check_identifier(expression.field_path, "field")
        )
        op = QueryOperator.coerce(expression.operator)
        value = expression.value

        if op in (QueryOperator.EQ, QueryOperator.NE):
            negate = op == QueryOperator.NE
            if isinstance(value, str) and WILDCARD in value:
                placeholder = params.add(like_pattern(value))
                keyword = "NOT LIKE" if negate else "LIKE"
                return f"{column} {keyword} {placeholder}{self.dialect.like_escape_clause()}"
            return self.dialect.null_safe_equal(column, params.add(value), negate)

        if op in _COMPARISON_OPERATORS:
            if value is None:
                raise UnsupportedQueryException(
                    f"Operator '{op.value}' on field '{expression.field_path}' cannot compare with null"
                )
            return f"{column} {_COMPARISON_OPERATORS[op]} {params.add(value)}"

        if op in (QueryOperator.IN, QueryOperator.NIN):
            if not isinstance(value, (list, tuple, set, frozenset)):
                raise UnsupportedQueryException(
                    f"Operator '{op.value}' on field '{expression.field_path}' requires a list"
                )
            if not value:
                return "1=0" if op == QueryOperator.IN else "1=1"
            placeholders = ",".join(params.add(v) for v in value)
            keyword = "IN" if op == QueryOperator.IN else "NOT IN"
            return f"{column} {keyword} ({placeholders})"

        raise UnsupportedQueryException(f"Unsupported query operator: {op!r}")
