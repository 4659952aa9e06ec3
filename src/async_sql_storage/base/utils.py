import logging
import re
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def utc_now() -> datetime:
    """Server-side clock used for every created/updated timestamp."""
    return datetime.now(timezone.utc)


def is_identifier(name: Any) -> bool:
    """True if `name` can be used as a bare table or column name."""
    return isinstance(name, str) and _IDENTIFIER_RE.match(name) is not None


def prepare_for_storage(data: Any) -> Any:
    """
    Recursively convert Pydantic models and dataclasses found in a payload to
    plain dicts and lists.

    It handles:
    - Pydantic BaseModel instances (dumped by alias)
    - Python dataclasses
    - Dictionaries (processing values recursively)
    - Lists, tuples and sets (processing each item)

    Scalars (including datetimes) are returned as-is; the dialect decides
    how they are bound.
    """
    if data is None:
        return None

    # Handle dataclasses
    if is_dataclass(data) and not isinstance(data, type):
        return prepare_for_storage(asdict(data))

    # Handle Pydantic models
    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        try:
            serialized = data.model_dump(mode="json", by_alias=True)
        except TypeError as e:
            logger.debug(f"Error using model_dump(mode='json', by_alias=True): {e}")
            serialized = data.model_dump(by_alias=True)
        return prepare_for_storage(serialized)

    if isinstance(data, dict):
        return {k: prepare_for_storage(v) for k, v in data.items()}

    if isinstance(data, (list, tuple, set)):
        return [prepare_for_storage(item) for item in data]

    return data
