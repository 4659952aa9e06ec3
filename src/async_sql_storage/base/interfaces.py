# src/async_sql_storage/base/interfaces.py

from abc import ABC, abstractmethod
from logging import LoggerAdapter
from typing import Any, List, Optional

from async_sql_storage.base.exceptions import ObjectNotFoundException
from async_sql_storage.base.item import Item, ItemList
from async_sql_storage.base.query import Query, QueryFilter, QueryOperator, Window


class StorageHandler(ABC):
    """
    Base storage handler interface for resource items.

    A handler serves one table. The enclosing REST framework calls it with
    `Query` objects for reads and bulk deletes, and with `Item` objects for
    writes. Every operation reports failures through the exceptions in
    `async_sql_storage.base.exceptions` so the framework can tell
    not-found, conflict, not-implemented, transport and cancellation apart.
    """

    @property
    @abstractmethod
    def table_name(self) -> str:
        """The table this handler reads and writes."""
        pass

    @property
    def id_field(self) -> str:
        """The primary key column."""
        return "id"

    @abstractmethod
    async def find(
        self,
        query: Query,
        logger: Optional[LoggerAdapter] = None,
        timeout: Optional[float] = None,
    ) -> ItemList:
        """
        Return the items matching the query, sorted and windowed.

        Args:
            query: The predicate, sort and window to apply.
            logger: Logger adapter for recording operations.
            timeout: Optional deadline in seconds for the whole operation.

        Returns:
            An ItemList with the items, the total number of matching items
            and the window offset.

        Raises:
            UnsupportedQueryException: If the query cannot be expressed in SQL.
            TransportException: On database failures.
            OperationCancelledException: If the deadline expired.
        """
        pass

    @abstractmethod
    async def count(
        self,
        query: Query,
        logger: Optional[LoggerAdapter] = None,
        timeout: Optional[float] = None,
    ) -> int:
        """Count the items matching the query's predicate (sort and window are ignored)."""
        pass

    @abstractmethod
    async def insert(
        self,
        items: List[Item],
        logger: Optional[LoggerAdapter] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Store new items. Either all items are inserted or none is.

        Items without an id get the one generated by the database. On
        success each item carries the server-assigned created/updated
        timestamps.

        Raises:
            KeyAlreadyExistsException: If any of the items already exists.
            UnsupportedValueException: If a payload value cannot be stored.
        """
        pass

    @abstractmethod
    async def update(
        self,
        item: Item,
        original: Item,
        logger: Optional[LoggerAdapter] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Replace `original` with `item`.

        The write happens only if the stored etag still equals
        `original.etag`.

        Raises:
            ObjectNotFoundException: If `original.id` is not stored.
            ConflictException: If the stored etag differs from `original.etag`.
        """
        pass

    @abstractmethod
    async def delete(
        self,
        item: Item,
        logger: Optional[LoggerAdapter] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Delete the item by id, provided its stored etag equals `item.etag`.

        Raises:
            ObjectNotFoundException: If the item is not stored.
            ConflictException: If the stored etag differs.
        """
        pass

    @abstractmethod
    async def clear(
        self,
        query: Query,
        logger: Optional[LoggerAdapter] = None,
        timeout: Optional[float] = None,
    ) -> int:
        """
        Delete every item matching the query's predicate.

        Returns:
            The number of items removed.

        Raises:
            UnsupportedQueryException: If the predicate cannot be expressed in
                SQL, or is empty (use MatchAll() to clear the whole table).
        """
        pass

    async def get(
        self,
        item_id: Any,
        logger: Optional[LoggerAdapter] = None,
        timeout: Optional[float] = None,
    ) -> Item:
        """
        Fetch a single item by identifier.

        Raises:
            ObjectNotFoundException: If no item has this identifier.
        """
        query = Query(
            predicate=(QueryFilter(self.id_field, QueryOperator.EQ, item_id),),
            window=Window(offset=0, limit=1),
        )
        result = await self.find(query, logger=logger, timeout=timeout)
        if not result.items:
            raise ObjectNotFoundException(f"Item with ID '{item_id}' not found in {self.table_name}.")
        return result.items[0]
