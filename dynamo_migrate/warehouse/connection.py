"""
PostgreSQL connection pool management using psycopg3

This module provides an asyncio connection pool so that the concurrent
halves of a split batch write can each hold their own connection.
"""
import asyncio
from contextlib import asynccontextmanager

from psycopg import OperationalError
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from dynamo_migrate.core.errors import ConfigError
from dynamo_migrate.observability.logger import get_logger

logger = get_logger(__name__)


class AsyncDatabaseConnectionPool:
    """
    PostgreSQL connection pool manager using psycopg3

    Provides pooled async connections with retrying open and explicit
    lifecycle management.
    """

    def __init__(
        self,
        host: str | None,
        port: int = 5432,
        database: str = "infinityCMS",
        user: str | None = None,
        password: str | None = None,
        ssl: bool = True,
        min_size: int = 2,
        max_size: int = 10,
        timeout: float = 30.0,
        application_name: str = "migrate-dynamodb-to-pg",
    ) -> None:
        """
        Initialize database connection pool

        Args:
            host: Database host
            port: Database port
            database: Database name
            user: Database user
            password: Database password
            ssl: Require SSL (without certificate verification)
            min_size: Minimum pool size
            max_size: Maximum pool size
            timeout: Connection timeout in seconds
            application_name: Reported to PostgreSQL for the session

        Raises:
            ConfigError: If host, user or password is missing
        """
        if not host or not user or not password:
            raise ConfigError("SERVER, PG_USER, PASSWORD env vars are required")

        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.min_size = min_size
        self.max_size = max(max_size, min_size)
        self.timeout = timeout

        self.conninfo = make_conninfo(
            host=host,
            port=port,
            dbname=database,
            user=user,
            password=password,
            sslmode="require" if ssl else "disable",
            connect_timeout=int(timeout),
            application_name=application_name,
        )

        self._pool: AsyncConnectionPool | None = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    async def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the connection pool with retry logic.

        Args:
            max_retries: Maximum number of connection attempts
            retry_delay: Delay between retries in seconds

        Raises:
            OperationalError: If connection fails after all retries
        """
        if self._pool is not None:
            return

        for attempt in range(1, max_retries + 1):
            pool = AsyncConnectionPool(
                conninfo=self.conninfo,
                min_size=self.min_size,
                max_size=self.max_size,
                timeout=self.timeout,
                kwargs={"row_factory": dict_row},
                open=False,
            )
            try:
                await pool.open(wait=True, timeout=self.timeout)
            except OperationalError as e:
                await pool.close()
                if attempt < max_retries:
                    logger.warning(
                        f"Database connection attempt {attempt}/{max_retries} failed, retrying",
                        extra={"host": self.host, "database": self.database}
                    )
                    await asyncio.sleep(retry_delay)
                    continue
                raise OperationalError(
                    f"Failed to connect to database after {max_retries} attempts: {e}"
                ) from e

            self._pool = pool
            logger.info(
                f"Connection pool opened ({self.host}:{self.port}/{self.database})",
                extra={"host": self.host, "database": self.database, "max_size": self.max_size}
            )
            return

    async def close(self) -> None:
        """Close the connection pool"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Connection pool closed")

    @asynccontextmanager
    async def get_connection(self):
        """
        Get a connection from the pool

        Yields:
            psycopg.AsyncConnection: Database connection

        Raises:
            RuntimeError: If pool is not open
        """
        if self._pool is None:
            raise RuntimeError("Connection pool is not open. Call open() first.")

        async with self._pool.connection() as conn:
            yield conn

    async def execute_command(self, command: str, params: tuple | list | None = None) -> int:
        """
        Execute an INSERT/UPDATE/DELETE command in its own transaction

        Args:
            command: SQL command
            params: Command parameters (optional)

        Returns:
            Number of rows affected
        """
        async with self.get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(command, params)
                rowcount = cur.rowcount
            await conn.commit()
            return rowcount

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
