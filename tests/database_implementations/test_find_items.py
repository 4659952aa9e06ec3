# tests/database_implementations/test_find_items.py

import pytest

from async_sql_storage.base.exceptions import ObjectNotFoundException, UnsupportedQueryException
from async_sql_storage.base.query import Field, Query, SortField, Window, build_query


# =============================================================================
# Windows and ordering
# =============================================================================


async def test_window_returns_rows_in_identifier_order(twenty_widgets, logger):
    """Window(offset=10, limit=5) on 20 rows yields rows 11-15."""
    result = await twenty_widgets.find(Query(window=Window(offset=10, limit=5)), logger)
    assert [item.id for item in result.items] == ["w-10", "w-11", "w-12", "w-13", "w-14"]
    assert result.total == 20
    assert result.offset == 10


async def test_offset_without_limit(twenty_widgets, logger):
    result = await twenty_widgets.find(Query(window=Window(offset=18)), logger)
    assert [item.id for item in result.items] == ["w-18", "w-19"]
    assert result.total == 20


async def test_find_without_window_reports_row_count(twenty_widgets, logger):
    result = await twenty_widgets.find(Query(predicate=Field("age") < 5), logger)
    assert len(result) == 5
    assert result.total == 5
    assert result.offset == 0


async def test_total_counts_all_matches_not_just_the_page(twenty_widgets, logger):
    query = Query(predicate=Field("age") >= 10, window=Window(offset=0, limit=3))
    result = await twenty_widgets.find(query, logger)
    assert len(result) == 3
    assert result.total == 10


async def test_sort_descending(twenty_widgets, logger):
    query = Query(sort=(SortField("age", reversed=True),), window=Window(limit=2))
    result = await twenty_widgets.find(query, logger)
    assert [item.id for item in result.items] == ["w-19", "w-18"]


async def test_sort_on_invalid_field_is_not_implemented(twenty_widgets, logger):
    with pytest.raises(UnsupportedQueryException):
        await twenty_widgets.find(Query(sort=(SortField("age; DROP TABLE widgets"),)), logger)


# =============================================================================
# Predicates
# =============================================================================


async def test_wildcard_matches_prefix(widget_handler, widget, logger):
    await widget_handler.insert(
        [widget("a", name="alice"), widget("b", name="bob"), widget("c", name="albert")], logger
    )
    result = await widget_handler.find(Query(predicate=Field("name") == "al*"), logger)
    assert sorted(item.payload["name"] for item in result) == ["albert", "alice"]

    result = await widget_handler.find(Query(predicate=Field("name") != "al*"), logger)
    assert [item.payload["name"] for item in result] == ["bob"]


async def test_like_metacharacters_match_literally(widget_handler, widget, logger):
    await widget_handler.insert(
        [widget("a", name="a_c"), widget("b", name="abc"), widget("c", name="50%off")], logger
    )
    underscore = await widget_handler.find(Query(predicate=Field("name") == "a_*"), logger)
    assert [item.id for item in underscore] == ["a"]
    percent = await widget_handler.find(Query(predicate=Field("name") == "50%*"), logger)
    assert [item.id for item in percent] == ["c"]


async def test_null_safe_equality(widget_handler, widget, logger):
    await widget_handler.insert(
        [widget("a", nickname="ace"), widget("b"), widget("c", nickname="cat")], logger
    )
    without = await widget_handler.find(Query(predicate=Field("nickname") == None), logger)  # noqa: E711
    assert [item.id for item in without] == ["b"]
    other = await widget_handler.find(Query(predicate=Field("nickname") != "ace"), logger)
    assert [item.id for item in other] == ["b", "c"]


async def test_grouping_changes_results(twenty_widgets, logger):
    a = Field("age") < 3
    b = Field("age") > 1
    c = Field("age") == 19
    left = await twenty_widgets.find(Query(predicate=(a & b) | c), logger)
    right = await twenty_widgets.find(Query(predicate=a & (b | c)), logger)
    assert [item.id for item in left] == ["w-02", "w-19"]
    assert [item.id for item in right] == ["w-02"]


async def test_membership_filters(twenty_widgets, logger):
    result = await twenty_widgets.find(Query(predicate=Field("id").in_(["w-03", "w-07"])), logger)
    assert [item.id for item in result] == ["w-03", "w-07"]
    assert len(await twenty_widgets.find(Query(predicate=Field("id").in_([])), logger)) == 0
    assert len(await twenty_widgets.find(Query(predicate=Field("id").nin([])), logger)) == 20


async def test_filter_document(twenty_widgets, logger):
    query = build_query({"age": {"$gte": 5, "$lt": 8}}, sort="-age", limit=2)
    result = await twenty_widgets.find(query, logger)
    assert [item.id for item in result] == ["w-07", "w-06"]
    assert result.total == 3


async def test_count(twenty_widgets, logger):
    assert await twenty_widgets.count(Query(), logger) == 20
    assert await twenty_widgets.count(Query(predicate=Field("age") >= 10, window=Window(0, 1)), logger) == 10


# =============================================================================
# Single items
# =============================================================================


async def test_get_returns_payload_and_metadata(widget_handler, widget, logger):
    stored = widget("w-1", name="alice", age=41, active=False)
    await widget_handler.insert([stored], logger)

    item = await widget_handler.get("w-1", logger)
    assert item.id == "w-1"
    assert item.etag == stored.etag
    assert item.payload["id"] == "w-1"
    assert item.payload["name"] == "alice"
    assert item.payload["age"] == 41
    assert not item.payload["active"]
    assert "etag" not in item.payload
    assert "updated" not in item.payload
    assert item.updated is not None


async def test_get_missing_item(widget_handler, logger):
    with pytest.raises(ObjectNotFoundException):
        await widget_handler.get("nope", logger)


async def test_logger_is_optional(widget_handler, widget):
    await widget_handler.insert([widget("w-1")])
    assert (await widget_handler.get("w-1")).id == "w-1"
