# src/async_sql_storage/__init__.py

"""
Async SQL Storage Library Initialization.

This package provides asynchronous storage handlers that persist generic
REST resource items in relational databases (SQLite, PostgreSQL, MySQL).

It initializes a logger with a NullHandler and makes core components like
the handler interface, query types, items, exceptions, and backend
implementations available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging for "async_sql_storage".
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Core Interface and Exception Exports
# --------------------------------------------------------------------------
from .base.interfaces import StorageHandler
from .base.exceptions import (
    StorageException,
    ObjectNotFoundException,
    ConflictException,
    KeyAlreadyExistsException,
    UnsupportedQueryException,
    UnsupportedValueException,
    TransportException,
    OperationCancelledException,
)

# --------------------------------------------------------------------------
# Query and Item Exports
# --------------------------------------------------------------------------
from .base.query import (
    Field,
    MatchAll,
    Query,
    QueryFilter,
    QueryLogical,
    QueryOperator,
    SortField,
    Window,
    build_query,
    parse_filter,
    parse_sort,
)
from .base.item import Item, ItemList, compute_etag

# --------------------------------------------------------------------------
# Handler Implementation Exports
# --------------------------------------------------------------------------
from .db_implementations.sqlite_handler import SqliteStorageHandler
from .db_implementations.postgresql_handler import PostgresStorageHandler
from .db_implementations.mysql_handler import MySQLStorageHandler

__all__ = [
    # Core
    "StorageHandler",
    # Exceptions
    "StorageException",
    "ObjectNotFoundException",
    "ConflictException",
    "KeyAlreadyExistsException",
    "UnsupportedQueryException",
    "UnsupportedValueException",
    "TransportException",
    "OperationCancelledException",
    # Query
    "Field",
    "MatchAll",
    "Query",
    "QueryFilter",
    "QueryLogical",
    "QueryOperator",
    "SortField",
    "Window",
    "build_query",
    "parse_filter",
    "parse_sort",
    # Items
    "Item",
    "ItemList",
    "compute_etag",
    # Implementations
    "SqliteStorageHandler",
    "PostgresStorageHandler",
    "MySQLStorageHandler",
    # Logging
    "logger",
]

__version__ = "0.1.0"
