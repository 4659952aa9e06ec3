# src/async_sql_storage/base/mapper.py
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

from .item import Item, ItemList

log = logging.getLogger(__name__)


def normalize_value(value: Any) -> Any:
    """Binary column values come back as text."""
    if isinstance(value, memoryview):
        value = value.tobytes()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    return value


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parses a stored timestamp column.

    Accepts datetime objects (drivers with native timestamp types) and ISO
    8601 text (SQLite, text columns). Naive values are taken as UTC, since
    the handlers always write UTC. Returns None for NULL or unparseable
    values; the caller decides how loud to be about it.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        # fromisoformat does not accept a trailing 'Z' before Python 3.11
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def row_to_item(row: Mapping[str, Any], id_field: str = "id") -> Item:
    """
    Converts a result row into an Item.

    The etag and updated columns are lifted out of the payload into the
    item's own fields; the stored `updated` value is parsed, never replaced
    by the current time.

    Raises:
        ValueError: If the row has no identifier or etag column.
    """
    payload: Dict[str, Any] = {key: normalize_value(value) for key, value in dict(row).items()}
    if id_field not in payload:
        raise ValueError(f"Row has no '{id_field}' column: {sorted(payload)}")
    if "etag" not in payload:
        raise ValueError(f"Row has no 'etag' column: {sorted(payload)}")

    item_id = payload[id_field]
    etag = payload.pop("etag")
    raw_updated = payload.pop("updated", None)
    updated = parse_timestamp(raw_updated)
    if updated is None:
        log.warning(f"Row '{item_id}' has no parseable 'updated' value: {raw_updated!r}")

    created = parse_timestamp(payload.get("created"))
    if created is not None:
        # Same aware datetime on every backend, whatever the driver returned
        payload["created"] = created

    return Item(
        id=item_id,
        etag=str(etag) if etag is not None else "",
        payload=payload,
        updated=updated,
        created=created,
    )


def rows_to_item_list(
    rows: Iterable[Mapping[str, Any]],
    offset: int = 0,
    total: Optional[int] = None,
    id_field: str = "id",
) -> ItemList:
    """Builds an ItemList; `total` defaults to the number of rows."""
    items = [row_to_item(row, id_field) for row in rows]
    return ItemList(total=len(items) if total is None else total, offset=offset, items=items)


def item_to_columns(
    item: Item, now: datetime, id_field: str = "id", for_update: bool = False
) -> Dict[str, Any]:
    """
    The column/value mapping written for an item.

    Inserts carry the identifier (when set), etag, server-time created and
    updated, and the payload. Updates leave out the identifier and created,
    which never change.
    """
    columns: Dict[str, Any] = {}
    if not for_update:
        if item.id is not None:
            columns[id_field] = item.id
    columns["etag"] = item.etag
    if not for_update:
        columns["created"] = now
    columns["updated"] = now
    for name, value in item.storable_payload().items():
        if name == id_field:
            continue
        columns[name] = value
    return columns
