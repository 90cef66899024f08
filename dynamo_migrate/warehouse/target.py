"""
Target dialects: where target records are written.

Profiles decide the conflict-resolution SQL for their own tables; the
dialects here supply the connection and a default upsert.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from psycopg import sql
from psycopg.types.json import Jsonb
from pydantic import BaseModel

from dynamo_migrate.core.errors import ConfigError
from dynamo_migrate.utils.config import TargetConfig

from .connection import AsyncDatabaseConnectionPool


class TargetDialect(ABC):
    """
    Abstract base class for all target dialects.

    Usable as an async context manager: opened on entry and closed on every
    exit path.
    """

    name: str = "target"

    @abstractmethod
    async def upsert(self, batch: Sequence[Any]) -> int:
        """
        Upsert a batch of records using default conflict handling.

        Returns:
            Number of rows written
        """

    async def open(self) -> None:
        """Acquire resources (connections, ...)."""

    async def on_complete(self) -> None:
        """Called once after all files are processed."""

    async def close(self) -> None:
        """Release resources."""

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"


def _as_row(record: Any) -> dict[str, Any]:
    if isinstance(record, BaseModel):
        return record.model_dump(by_alias=True)
    return dict(record)


def adapt_value(value: Any) -> Any:
    """Wrap dicts and lists as JSONB parameters; pass scalars through."""
    if isinstance(value, (dict, list)):
        return Jsonb(value)
    return value


def build_insert(table_name: str, columns: Sequence[str], row_count: int) -> sql.Composed:
    """
    Build a multi-row ``INSERT INTO table (cols) VALUES (...), (...)`` prefix.

    Conflict clauses are appended by the caller.
    """
    row = sql.SQL("({})").format(sql.SQL(", ").join(sql.Placeholder() * len(columns)))
    return sql.SQL("INSERT INTO {table} ({columns}) VALUES {values}").format(
        table=sql.Identifier(table_name),
        columns=sql.SQL(", ").join(sql.Identifier(column) for column in columns),
        values=sql.SQL(", ").join([row] * row_count),
    )


def build_bindings(records: Sequence[Any], columns: Sequence[str]) -> list[Any]:
    """Flatten records into positional parameters, column by column."""
    bindings: list[Any] = []
    for record in records:
        row = _as_row(record)
        for column in columns:
            bindings.append(adapt_value(row.get(column)))
    return bindings


class PostgreSQLTarget(TargetDialect):
    """
    PostgreSQL target writing through an async psycopg pool.
    """

    name = "postgresql"

    def __init__(
        self,
        config: TargetConfig,
        table_name: str = "unknown_table",
        columns: Sequence[str] = (),
        pool: AsyncDatabaseConnectionPool | None = None,
    ):
        """
        Initialize PostgreSQL target.

        Args:
            config: Target configuration
            table_name: Table the default upsert writes to
            columns: Columns the default upsert writes
            pool: Optional pre-built pool (otherwise built from config)
        """
        self.table_name = table_name
        self.columns = tuple(columns)
        self.pool = pool or AsyncDatabaseConnectionPool(
            host=config.host,
            port=config.port,
            database=config.database,
            user=config.user,
            password=config.password,
            ssl=config.ssl,
            min_size=config.min_size,
            max_size=config.max_size,
            application_name=config.application_name,
        )

    async def open(self) -> None:
        await self.pool.open()

    async def close(self) -> None:
        await self.pool.close()

    async def execute(self, query: str | sql.Composable, params: Sequence[Any] | None = None) -> int:
        """Run a command in its own transaction and return the affected row count."""
        return await self.pool.execute_command(query, params)

    async def upsert(self, batch: Sequence[Any]) -> int:
        """
        Insert a batch, leaving rows that already exist untouched.
        """
        if not batch:
            return 0
        if not self.columns:
            raise ConfigError(f"No columns configured for table {self.table_name}")

        query = build_insert(self.table_name, self.columns, len(batch)) + sql.SQL(" ON CONFLICT DO NOTHING")
        rowcount = await self.execute(query, build_bindings(batch, self.columns))
        return rowcount if rowcount >= 0 else len(batch)


class MemoryTarget(TargetDialect):
    """
    In-process target used for dry runs.

    Records are kept in a dict keyed by `key_column`; nothing leaves the
    process.
    """

    name = "memory"

    def __init__(
        self,
        config: TargetConfig | None = None,
        table_name: str = "unknown_table",
        columns: Sequence[str] = (),
        key_column: str = "id",
    ):
        self.table_name = table_name
        self.columns = tuple(columns)
        self.key_column = key_column
        self.records: dict[Any, Any] = {}
        self.completed = False

    def key_of(self, record: Any) -> Any:
        return _as_row(record)[self.key_column]

    async def upsert(self, batch: Sequence[Any]) -> int:
        written = 0
        for record in batch:
            key = self.key_of(record)
            if key not in self.records:
                self.records[key] = record
                written += 1
        return written

    async def on_complete(self) -> None:
        self.completed = True
