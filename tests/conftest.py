# tests/conftest.py
import logging
import os
import shutil
import subprocess
import uuid
from typing import Any, Dict, List, Optional

import aiomysql
import aiosqlite
import asyncpg
import pytest
import pytest_asyncio
from pydantic import BaseModel, Field

from async_sql_storage.base.item import Item
from async_sql_storage.db_implementations.mysql_handler import MySQLStorageHandler
from async_sql_storage.db_implementations.postgresql_handler import PostgresStorageHandler
from async_sql_storage.db_implementations.sqlite_handler import SqliteStorageHandler
from tests import create_mysql_tables, create_postgres_tables, create_sqlite_tables

# Silence verbose loggers
logging.getLogger("aiomysql").setLevel(logging.WARNING)


# --- Constants ---
WIDGETS_TABLE = "widgets"
COUNTERS_TABLE = "counters"

# MySQL connection details
MYSQL_HOST = os.getenv("TEST_MYSQL_HOST", "localhost")
MYSQL_PORT = int(os.getenv("TEST_MYSQL_PORT", "3306"))
MYSQL_USER = os.getenv("TEST_MYSQL_USER", "testuser")
MYSQL_PASSWORD = os.getenv("TEST_MYSQL_PASSWORD", "password")

# --- List of available implementation keys ---
HANDLER_IMPLEMENTATIONS = ["sqlite", "postgresql", "mysql"]


# --- Availability Checks ---
def is_postgres_available():
    return shutil.which("psql") is not None and shutil.which("pg_ctl") is not None


def is_mysql_available():
    """Check if MySQL is available."""
    try:
        cmd = ["mysql", "-h", MYSQL_HOST, "-P", str(MYSQL_PORT), "-u", MYSQL_USER]
        if MYSQL_PASSWORD:
            cmd.append(f"-p{MYSQL_PASSWORD}")
        cmd.extend(["--execute", "SELECT 1"])

        result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=5)
        if result.returncode == 0:
            logging.info(f"MySQL found and responsive at {MYSQL_HOST}:{MYSQL_PORT}")
            return True
        logging.warning(
            f"MySQL check failed at {MYSQL_HOST}:{MYSQL_PORT}: {result.stderr.decode('utf-8')}"
        )
        return False
    except Exception as e:
        logging.warning(
            f"MySQL not found or not responsive at {MYSQL_HOST}:{MYSQL_PORT}: {e}. "
            "Skipping MySQL tests."
        )
        return False


AVAILABLE_IMPLEMENTATIONS = ["sqlite"]  # In-memory SQLite is always available
if is_postgres_available():
    AVAILABLE_IMPLEMENTATIONS.append("postgresql")
if is_mysql_available():
    AVAILABLE_IMPLEMENTATIONS.append("mysql")


# --- Logger Fixture ---


@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_storage_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def sqlite_memory_db_conn():
    """Provides an in-memory aiosqlite database connection for testing."""
    conn = None
    try:
        conn = await aiosqlite.connect(":memory:")
        conn.row_factory = aiosqlite.Row
        yield conn
    finally:
        if conn:
            await conn.close()


@pytest_asyncio.fixture
async def mock_postgres_pool(request):
    """
    Creates a PostgreSQL connection pool with a unique temporary database for each test.
    """
    if "postgresql" not in AVAILABLE_IMPLEMENTATIONS:
        pytest.skip("PostgreSQL not available")
    postgresql_proc = request.getfixturevalue("postgresql_proc")

    temp_db_name = f"test_db_{uuid.uuid4().hex}"
    base_dsn = f"postgresql://postgres:postgres@{postgresql_proc.host}:{postgresql_proc.port}"
    admin_conn = await asyncpg.connect(f"{base_dsn}/postgres")
    try:
        await admin_conn.execute(f'CREATE DATABASE "{temp_db_name}"')
        pool = await asyncpg.create_pool(f"{base_dsn}/{temp_db_name}")

        yield pool

        await pool.close()
        await admin_conn.execute(f'DROP DATABASE "{temp_db_name}"')
    finally:
        await admin_conn.close()


@pytest_asyncio.fixture
async def mock_mysql_pool():
    """
    Creates a MySQL connection pool with a temporary database for each test.
    """
    if "mysql" not in AVAILABLE_IMPLEMENTATIONS:
        pytest.skip("MySQL not available")

    temp_db_name = f"test_db_{uuid.uuid4().hex}"
    admin_conn = await aiomysql.connect(
        host=MYSQL_HOST, port=MYSQL_PORT, user=MYSQL_USER, password=MYSQL_PASSWORD, autocommit=True
    )
    try:
        async with admin_conn.cursor() as cursor:
            await cursor.execute(f"CREATE DATABASE `{temp_db_name}`")

        pool = await aiomysql.create_pool(
            host=MYSQL_HOST,
            port=MYSQL_PORT,
            user=MYSQL_USER,
            password=MYSQL_PASSWORD,
            db=temp_db_name,
            autocommit=False,
        )

        yield pool

        pool.close()
        await pool.wait_closed()

        async with admin_conn.cursor() as cursor:
            await cursor.execute(f"DROP DATABASE `{temp_db_name}`")
    finally:
        admin_conn.close()


# --- Handler Factories (Function Scoped) ---
# Each factory is an async callable: `await factory(table_name)` provisions
# the table and returns a handler bound to it.

_TABLE_CREATORS = {
    WIDGETS_TABLE: "create_widget_table",
    COUNTERS_TABLE: "create_counter_table",
}


@pytest.fixture(scope="function")
def sqlite_handler_factory(sqlite_memory_db_conn):
    """Factory for creating SQLite handlers using an in-memory DB."""

    async def _create(table_name: str = WIDGETS_TABLE, **kwargs):
        create = getattr(create_sqlite_tables, _TABLE_CREATORS[table_name])
        await create(sqlite_memory_db_conn, table_name)
        return SqliteStorageHandler(sqlite_memory_db_conn, table_name, **kwargs)

    return _create


@pytest.fixture
def postgresql_handler_factory(mock_postgres_pool):
    """Factory for creating PostgreSQL handlers."""

    async def _create(table_name: str = WIDGETS_TABLE, **kwargs):
        create = getattr(create_postgres_tables, _TABLE_CREATORS[table_name])
        await create(mock_postgres_pool, table_name)
        return PostgresStorageHandler(mock_postgres_pool, table_name, **kwargs)

    return _create


@pytest.fixture
def mysql_handler_factory(mock_mysql_pool):
    """Factory for creating MySQL handlers."""

    async def _create(table_name: str = WIDGETS_TABLE, **kwargs):
        create = getattr(create_mysql_tables, _TABLE_CREATORS[table_name])
        await create(mock_mysql_pool, table_name)
        return MySQLStorageHandler(mock_mysql_pool, table_name, **kwargs)

    return _create


# --- Parametrized Factory and Provisioned Handler ---


@pytest.fixture(params=AVAILABLE_IMPLEMENTATIONS)
def handler_factory(request):
    """Parametrized fixture to get the correct factory based on implementation key."""
    impl_key = request.param
    if impl_key == "sqlite":
        yield request.getfixturevalue("sqlite_handler_factory")
    elif impl_key == "postgresql":
        yield request.getfixturevalue("postgresql_handler_factory")
    elif impl_key == "mysql":
        yield request.getfixturevalue("mysql_handler_factory")
    else:
        raise ValueError(f"Unknown handler implementation key: {impl_key}")


@pytest_asyncio.fixture
async def widget_handler(handler_factory):
    """A handler for an empty widgets table on each available backend."""
    return await handler_factory(WIDGETS_TABLE)


# --- Test Payloads ---


class Widget(BaseModel):
    """Payload model for the widgets table."""

    name: str = Field(default_factory=lambda: f"widget-{uuid.uuid4().hex[:8]}")
    age: int = 30
    score: float = 1.5
    active: bool = True
    nickname: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


def make_widget(item_id: Optional[str], **fields: Any) -> Item:
    """Builds an Item whose payload is a validated Widget."""
    payload: Dict[str, Any] = Widget(**fields).model_dump()
    return Item.new(item_id, payload)


@pytest.fixture
def widget():
    """Factory fixture returning Items with Widget payloads."""
    return make_widget


@pytest_asyncio.fixture
async def twenty_widgets(widget_handler, logger):
    """Stores w-00 .. w-19 (age equals the index) and returns the handler."""
    items = [make_widget(f"w-{i:02d}", name=f"name-{i:02d}", age=i) for i in range(20)]
    await widget_handler.insert(items, logger)
    return widget_handler
