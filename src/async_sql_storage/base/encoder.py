# src/async_sql_storage/base/encoder.py
import json
import math
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from .dialect import SqlDialect
from .exceptions import UnsupportedValueException

SCALAR_TYPES = (bool, int, float, Decimal, str, datetime, date, UUID)


class ValueEncoder:
    """
    Turns typed values into SQL literal text or driver bind parameters.

    Both forms dispatch on the value's runtime type and reject the same
    types, so a value that can be rendered can also be bound.
    """

    def __init__(self, dialect: SqlDialect):
        self.dialect = dialect

    def check(self, value: Any, allow_composite: bool = False) -> Any:
        """
        Validates that `value` is representable.

        Args:
            value: The value to validate.
            allow_composite: Also accept dicts and lists (stored as JSON text).
                             Payload writes allow them, predicates do not.

        Raises:
            UnsupportedValueException: If the value's type has no SQL form.
        """
        if value is None:
            return value
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            raise UnsupportedValueException(f"Unsupported float value: {value!r}")
        if isinstance(value, SCALAR_TYPES):
            return value
        if allow_composite and isinstance(value, (dict, list)):
            return value
        raise UnsupportedValueException(
            f"Unsupported value type: {type(value).__name__} ({value!r})"
        )

    def literal(self, value: Any, allow_composite: bool = False) -> str:
        """Renders `value` as escaped SQL literal text."""
        self.check(value, allow_composite)
        if value is None:
            return "NULL"
        # bool before int: bool is an int subclass
        if isinstance(value, bool):
            return self.dialect.boolean_literal(value)
        if isinstance(value, (int, Decimal)):
            return str(value)
        if isinstance(value, float):
            return repr(value)
        if isinstance(value, str):
            return self.dialect.quote_string(value)
        if isinstance(value, (datetime, date)):
            return self.dialect.quote_string(value.isoformat())
        if isinstance(value, UUID):
            return self.dialect.quote_string(str(value))
        return self.dialect.quote_string(json.dumps(value, default=str))

    def literals(self, values: Iterable[Any]) -> str:
        """Comma-separated literal list, as used inside IN (...)."""
        return ",".join(self.literal(v) for v in values)

    def param(self, value: Any, allow_composite: bool = False) -> Any:
        """Returns `value` adapted for binding by the dialect's driver."""
        self.check(value, allow_composite)
        return self.dialect.adapt_param(value)


class ParameterCollector:
    """
    Accumulates bind parameters for one statement.

    Every value added gets the dialect's next placeholder; the literal form
    is kept alongside so the statement can be rendered for logs.
    """

    def __init__(self, encoder: ValueEncoder):
        self.encoder = encoder
        self.values: list = []
        self.literals: list = []

    def add(self, value: Any, allow_composite: bool = False) -> str:
        param = self.encoder.param(value, allow_composite)
        self.literals.append(self.encoder.literal(value, allow_composite))
        self.values.append(param)
        return self.encoder.dialect.placeholder(len(self.values))

    def __len__(self) -> int:
        return len(self.values)
