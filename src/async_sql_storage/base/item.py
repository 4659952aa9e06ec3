# src/async_sql_storage/base/item.py
import hashlib
import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from .utils import prepare_for_storage

# Payload keys the storage layer manages itself.
RESERVED_FIELDS = ("id", "etag")
TIMESTAMP_FIELDS = ("created", "updated")


def compute_etag(payload: Dict[str, Any]) -> str:
    """MD5 hex digest of the payload's canonical JSON form."""
    canonical = json.dumps(
        prepare_for_storage(payload), sort_keys=True, separators=(",", ":"), default=str
    )
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()


@dataclass
class Item:
    """
    A generic stored resource record.

    `payload` maps field names to typed values. The `id` and `etag` keys of
    the payload are never written as columns from the payload; `Item.id`
    and `Item.etag` are authoritative.
    """

    id: Any
    etag: str
    payload: Dict[str, Any] = field(default_factory=dict)
    updated: Optional[datetime] = None
    created: Optional[datetime] = None

    @classmethod
    def new(cls, id: Any, payload: Dict[str, Any]) -> "Item":
        """Creates an item with an etag derived from its payload."""
        data = dict(payload)
        if id is not None:
            data["id"] = id
        return cls(id=id, etag=compute_etag(data), payload=data)

    def with_payload(self, payload: Dict[str, Any]) -> "Item":
        """Returns a copy carrying `payload` and a freshly computed etag."""
        data = dict(payload)
        if self.id is not None:
            data["id"] = self.id
        return replace(self, payload=data, etag=compute_etag(data))

    def storable_payload(self) -> Dict[str, Any]:
        """The payload without the keys the storage layer manages."""
        return {
            k: prepare_for_storage(v)
            for k, v in self.payload.items()
            if k not in RESERVED_FIELDS and k not in TIMESTAMP_FIELDS
        }


@dataclass
class ItemList:
    """A page of items. `total` is -1 when the total is unknown."""

    total: int
    offset: int
    items: List[Item] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)
