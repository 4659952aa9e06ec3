# src/async_sql_storage/base/query.py
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Literal, Mapping, Optional, Sequence, Tuple, Union

from .exceptions import UnsupportedQueryException

# --- Setup Logging ---
log = logging.getLogger(__name__)


# --- Query Operator Enum ---
class QueryOperator(Enum):
    """Enumeration of valid query filter operators."""

    # Comparison
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    LT = "lt"
    GTE = "ge"
    LTE = "le"
    # Membership
    IN = "in"
    NIN = "nin"

    @classmethod
    def coerce(cls, op: Union["QueryOperator", str]) -> "QueryOperator":
        """Accepts either a member or its string value."""
        if isinstance(op, cls):
            return op
        for member in cls:
            if op == member.value:
                return member
        raise UnsupportedQueryException(f"Unsupported query operator: {op!r}")


# --- Structured Query Expression Classes ---
@dataclass(frozen=True)
class QueryExpression:
    """Base class for structured query filter expressions."""

    def __and__(self, other: "QueryExpression") -> "QueryLogical":
        log.debug(f"Combining expressions with AND: {self!r} & {other!r}")
        return QueryLogical("and", (self, other))

    def __or__(self, other: "QueryExpression") -> "QueryLogical":
        log.debug(f"Combining expressions with OR: {self!r} | {other!r}")
        return QueryLogical("or", (self, other))


@dataclass(frozen=True)
class QueryFilter(QueryExpression):
    """Represents a single filter condition (field_path <operator> value)."""

    field_path: str
    operator: QueryOperator
    value: Any = None

    def __post_init__(self):
        if isinstance(self.value, (list, set)):
            object.__setattr__(self, "value", tuple(self.value))


@dataclass(frozen=True)
class QueryLogical(QueryExpression):
    """Represents a logical combination (AND/OR) of expressions."""

    operator: Literal["and", "or"]
    conditions: Tuple[QueryExpression, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.operator not in ("and", "or"):
            raise UnsupportedQueryException(f"Logical operator must be 'and' or 'or', got {self.operator!r}")
        object.__setattr__(self, "conditions", tuple(self.conditions))


@dataclass(frozen=True)
class MatchAll(QueryExpression):
    """Explicit always-true predicate, required to clear a whole table."""


# --- Sort / Window / Query ---
def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class SortField:
    name: str
    reversed: bool = False


@dataclass(frozen=True)
class Window:
    """Pagination window. A limit of None (or a negative one) means no limit."""

    offset: int = 0
    limit: Optional[int] = None

    def __post_init__(self):
        if not _is_int(self.offset) or self.offset < 0:
            raise UnsupportedQueryException(f"Window offset must be a non-negative integer, got {self.offset!r}")
        if self.limit is not None and not _is_int(self.limit):
            raise UnsupportedQueryException(f"Window limit must be an integer, got {self.limit!r}")

    @property
    def has_limit(self) -> bool:
        return self.limit is not None and self.limit >= 0


@dataclass(frozen=True)
class Query:
    """
    An abstract description of a read or delete.

    `predicate` holds the top-level nodes, which are implicitly ANDed; an
    empty predicate means "no filter". `sort` is an ordered sequence of
    SortField; empty means the default (identifier) order.
    """

    predicate: Tuple[QueryExpression, ...] = field(default_factory=tuple)
    sort: Tuple[SortField, ...] = field(default_factory=tuple)
    window: Optional[Window] = None

    def __post_init__(self):
        predicate = self.predicate
        if isinstance(predicate, QueryExpression):
            predicate = (predicate,)
        object.__setattr__(self, "predicate", tuple(predicate))
        object.__setattr__(self, "sort", tuple(self.sort))

    @property
    def offset(self) -> int:
        return self.window.offset if self.window is not None else 0

    def __repr__(self) -> str:
        parts = []
        if self.predicate:
            parts.append(f"predicate={list(self.predicate)!r}")
        if self.sort:
            parts.append(f"sort={list(self.sort)!r}")
        if self.window is not None:
            parts.append(f"window={self.window!r}")
        return f"Query({', '.join(parts)})"


# --- Field Representation ---
class Field:
    """Represents a queryable field; comparison operators build QueryFilter nodes."""

    _path: str

    def __init__(self, path: str):
        object.__setattr__(self, "_path", path)

    @property
    def path(self) -> str:
        return self._path

    def _op(self, op: QueryOperator, other: Any) -> QueryFilter:
        """Helper to create QueryFilter."""
        log.debug(f"Creating filter: Field('{self._path}') {op.value} {other!r}")
        if op in (QueryOperator.IN, QueryOperator.NIN) and not isinstance(other, (list, set, tuple)):
            raise UnsupportedQueryException(f"Operator '{op.value}' requires a list/set/tuple")
        return QueryFilter(self._path, op, other)

    def __eq__(self, other: Any) -> QueryFilter:  # type: ignore[override]
        return self._op(QueryOperator.EQ, other)

    def __ne__(self, other: Any) -> QueryFilter:  # type: ignore[override]
        return self._op(QueryOperator.NE, other)

    def __gt__(self, other: Any) -> QueryFilter:
        return self._op(QueryOperator.GT, other)

    def __lt__(self, other: Any) -> QueryFilter:
        return self._op(QueryOperator.LT, other)

    def __ge__(self, other: Any) -> QueryFilter:
        return self._op(QueryOperator.GTE, other)

    def __le__(self, other: Any) -> QueryFilter:
        return self._op(QueryOperator.LTE, other)

    def in_(self, collection: Union[List, set, Tuple]) -> QueryFilter:
        return self._op(QueryOperator.IN, collection)

    def nin(self, collection: Union[List, set, Tuple]) -> QueryFilter:
        return self._op(QueryOperator.NIN, collection)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Field({self._path!r})"


# --- Filter document parsing ---
_DOC_OPERATORS = {
    "$ne": QueryOperator.NE,
    "$gt": QueryOperator.GT,
    "$gte": QueryOperator.GTE,
    "$lt": QueryOperator.LT,
    "$lte": QueryOperator.LTE,
    "$in": QueryOperator.IN,
    "$nin": QueryOperator.NIN,
}


def parse_filter(document: Union[str, Mapping[str, Any], None]) -> Tuple[QueryExpression, ...]:
    """
    Parses a filter document into predicate nodes.

    The document uses the REST framework's syntax:

        {"name": "al*", "age": {"$gte": 18}, "$or": [{"x": 1}, {"y": 2}]}

    A bare value means equality; `$and`/`$or` take a list of sub-documents.
    Documents may be given as JSON text.

    Raises:
        UnsupportedQueryException: On unknown operators or malformed documents.
    """
    if document is None or document == "":
        return ()
    if isinstance(document, str):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as e:
            raise UnsupportedQueryException(f"Invalid filter document: {e}") from e
    if not isinstance(document, Mapping):
        raise UnsupportedQueryException(
            f"Filter document must be an object, got {type(document).__name__}"
        )

    nodes: List[QueryExpression] = []
    for key, value in document.items():
        if key in ("$and", "$or"):
            if not isinstance(value, list) or not value:
                raise UnsupportedQueryException(f"'{key}' requires a non-empty list of filters")
            children: List[QueryExpression] = []
            for sub_document in value:
                sub_nodes = parse_filter(sub_document)
                if len(sub_nodes) == 1:
                    children.append(sub_nodes[0])
                else:
                    children.append(QueryLogical("and", sub_nodes))
            nodes.append(QueryLogical(key[1:], tuple(children)))
        elif key.startswith("$"):
            raise UnsupportedQueryException(f"Unsupported filter operator: {key}")
        elif isinstance(value, Mapping) and any(k.startswith("$") for k in value):
            nodes.extend(_parse_field_operators(key, value))
        else:
            nodes.append(QueryFilter(key, QueryOperator.EQ, value))
    return tuple(nodes)


def _parse_field_operators(field_path: str, spec: Mapping[str, Any]) -> List[QueryFilter]:
    filters = []
    for op_key, operand in spec.items():
        op = _DOC_OPERATORS.get(op_key)
        if op is None:
            raise UnsupportedQueryException(
                f"Unsupported filter operator '{op_key}' on field '{field_path}'"
            )
        if op in (QueryOperator.IN, QueryOperator.NIN) and not isinstance(operand, list):
            raise UnsupportedQueryException(f"'{op_key}' on field '{field_path}' requires a list")
        filters.append(QueryFilter(field_path, op, operand))
    return filters


def parse_sort(sort: Union[str, Sequence[str], None]) -> Tuple[SortField, ...]:
    """Parses "name,-created" style sort specs; a leading '-' reverses the key."""
    if not sort:
        return ()
    names = sort.split(",") if isinstance(sort, str) else list(sort)
    fields = []
    for raw in names:
        name = raw.strip()
        if not name:
            continue
        if name.startswith("-"):
            fields.append(SortField(name[1:], reversed=True))
        else:
            fields.append(SortField(name))
    return tuple(fields)


def build_query(
    filter: Union[str, Mapping[str, Any], None] = None,
    sort: Union[str, Sequence[str], None] = None,
    offset: int = 0,
    limit: Optional[int] = None,
) -> Query:
    """Convenience constructor mirroring the framework's request parameters."""
    window = Window(offset=offset, limit=limit) if (offset or limit is not None) else None
    return Query(predicate=parse_filter(filter), sort=parse_sort(sort), window=window)
