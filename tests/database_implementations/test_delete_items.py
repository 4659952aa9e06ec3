# tests/database_implementations/test_delete_items.py

import pytest

from async_sql_storage.base.exceptions import (
    ConflictException,
    ObjectNotFoundException,
    UnsupportedQueryException,
)
from async_sql_storage.base.item import Item
from async_sql_storage.base.query import Field, MatchAll, Query


# =============================================================================
# Tests for delete
# =============================================================================


async def test_delete_item(widget_handler, widget, logger):
    await widget_handler.insert([widget("w-1"), widget("w-2")], logger)
    stored = await widget_handler.get("w-1", logger)

    await widget_handler.delete(stored, logger)

    with pytest.raises(ObjectNotFoundException):
        await widget_handler.get("w-1", logger)
    assert await widget_handler.count(Query(), logger) == 1


async def test_delete_with_stale_etag_is_a_conflict(widget_handler, widget, logger):
    await widget_handler.insert([widget("w-1")], logger)
    stored = await widget_handler.get("w-1", logger)
    stale = Item(id=stored.id, etag="not-the-current-etag", payload=dict(stored.payload))

    with pytest.raises(ConflictException):
        await widget_handler.delete(stale, logger)

    still_there = await widget_handler.get("w-1", logger)
    assert still_there.etag == stored.etag


async def test_delete_non_existent(widget_handler, widget, logger):
    with pytest.raises(ObjectNotFoundException) as excinfo:
        await widget_handler.delete(widget("ghost"), logger)
    assert excinfo.value.kind == "not_found"


# =============================================================================
# Tests for clear
# =============================================================================


async def test_clear_by_membership(widget_handler, logger):
    """Clearing `id IN (A)` removes A only and reports one row."""
    await widget_handler.insert(
        [Item(id="A", etag="e1", payload={"name": "a"}), Item(id="B", etag="e2", payload={"name": "b"})],
        logger,
    )

    removed = await widget_handler.clear(Query(predicate=Field("id").in_(["A"])), logger)

    assert removed == 1
    remaining = await widget_handler.find(Query(), logger)
    assert [item.id for item in remaining] == ["B"]
    assert remaining.items[0].etag == "e2"


async def test_clear_with_filter(twenty_widgets, logger):
    removed = await twenty_widgets.clear(Query(predicate=Field("age") >= 15), logger)
    assert removed == 5
    assert await twenty_widgets.count(Query(), logger) == 15


async def test_clear_matching_nothing(twenty_widgets, logger):
    assert await twenty_widgets.clear(Query(predicate=Field("id").in_([])), logger) == 0
    assert await twenty_widgets.count(Query(), logger) == 20


async def test_clear_requires_a_predicate(twenty_widgets, logger):
    with pytest.raises(UnsupportedQueryException):
        await twenty_widgets.clear(Query(), logger)
    assert await twenty_widgets.count(Query(), logger) == 20


async def test_clear_everything(twenty_widgets, logger):
    assert await twenty_widgets.clear(Query(predicate=MatchAll()), logger) == 20
    assert await twenty_widgets.count(Query(), logger) == 0
