"""Raw SQL stores: the minimal engine surface the raw backends and seeder need.

SQL handed to a store uses PostgreSQL-style ``$n`` placeholders. The
SQLite store rewrites them to ``?n`` and converts values sqlite3 cannot
bind natively.
"""

from __future__ import annotations

import re
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol, runtime_checkable

import aiosqlite
import asyncpg

_PG_PARAM = re.compile(r"\$(\d+)")

POSTGRES_MAX_PARAMS = 32767
# Conservative: older SQLite builds cap bound variables at 999
SQLITE_MAX_PARAMS = 999


@runtime_checkable
class RawStore(Protocol):
    """Storage engine operations used by raw SQL adapters."""

    dialect: str

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def execute_script(self, script: str) -> None: ...

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]: ...

    async def execute_returning(self, sql: str, params: Sequence[Any] = ()) -> list[int]: ...

    async def insert(self, table: str, row: Mapping[str, Any]) -> int: ...

    async def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[int]: ...

    def transaction(self) -> Any:
        """Async context manager yielding a store bound to one transaction."""
        ...


def build_insert(table: str, columns: Sequence[str], row_count: int) -> str:
    """Multi-row ``INSERT ... RETURNING id`` with ``$n`` placeholders."""
    width = len(columns)
    groups = []
    for r in range(row_count):
        start = r * width
        groups.append("(" + ", ".join(f"${start + i + 1}" for i in range(width)) + ")")
    return (
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES {', '.join(groups)} RETURNING id"
    )


def _chunks(rows: Sequence[Mapping[str, Any]], max_params: int) -> list[Sequence[Mapping[str, Any]]]:
    width = max(1, len(rows[0]))
    size = max(1, max_params // width)
    return [rows[i : i + size] for i in range(0, len(rows), size)]


def _flatten(columns: Sequence[str], rows: Sequence[Mapping[str, Any]]) -> list[Any]:
    params: list[Any] = []
    for row in rows:
        params.extend(row[c] for c in columns)
    return params


# ========== PostgreSQL ==========


class AsyncpgStore:
    """asyncpg pool, optionally confined to one PostgreSQL schema.

    Statements outside a transaction borrow a pooled connection each time;
    ``transaction()`` pins one connection and yields a store bound to it.
    Nested ``transaction()`` calls on the bound store become savepoints.
    """

    dialect = "postgresql"

    def __init__(
        self,
        url: str,
        *,
        schema: str | None = None,
        min_size: int = 1,
        max_size: int = 20,
    ) -> None:
        self.url = url
        self.schema = schema
        self.min_size = min_size
        self.max_size = max_size
        self._pool: asyncpg.Pool | None = None
        self._connection: asyncpg.Connection | None = None

    @classmethod
    def _bound(cls, parent: AsyncpgStore, connection: asyncpg.Connection) -> AsyncpgStore:
        store = cls(parent.url, schema=parent.schema)
        store._pool = parent._pool
        store._connection = connection
        return store

    async def connect(self) -> None:
        if self._pool is not None:
            return
        server_settings = {"search_path": self.schema} if self.schema else None
        self._pool = await asyncpg.create_pool(
            self.url,
            min_size=self.min_size,
            max_size=self.max_size,
            server_settings=server_settings,
        )
        if self.schema:
            async with self._pool.acquire() as conn:
                await conn.execute(f'CREATE SCHEMA IF NOT EXISTS "{self.schema}"')

    async def close(self) -> None:
        if self._pool is not None and self._connection is None:
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def _acquire(self) -> AsyncIterator[asyncpg.Connection]:
        if self._connection is not None:
            yield self._connection
            return
        if self._pool is None:
            raise RuntimeError("AsyncpgStore is not connected")
        async with self._pool.acquire() as conn:
            yield conn

    async def execute_script(self, script: str) -> None:
        async with self._acquire() as conn:
            await conn.execute(script)

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        async with self._acquire() as conn:
            rows = await conn.fetch(sql, *params)
        return [dict(r) for r in rows]

    async def execute_returning(self, sql: str, params: Sequence[Any] = ()) -> list[int]:
        return [row["id"] for row in await self.fetch(sql, params)]

    async def insert(self, table: str, row: Mapping[str, Any]) -> int:
        columns = list(row)
        async with self._acquire() as conn:
            return await conn.fetchval(build_insert(table, columns, 1), *_flatten(columns, [row]))

    async def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[int]:
        if not rows:
            return []
        columns = list(rows[0])
        ids: list[int] = []
        for chunk in _chunks(rows, POSTGRES_MAX_PARAMS):
            sql = build_insert(table, columns, len(chunk))
            ids.extend(await self.execute_returning(sql, _flatten(columns, chunk)))
        return ids

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncpgStore]:
        if self._connection is not None:
            async with self._connection.transaction():
                yield self
            return
        if self._pool is None:
            raise RuntimeError("AsyncpgStore is not connected")
        async with self._pool.acquire() as conn, conn.transaction():
            yield AsyncpgStore._bound(self, conn)


# ========== SQLite ==========


def _sqlite_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def to_sqlite_sql(sql: str) -> str:
    """Rewrite ``$n`` placeholders to SQLite's numbered ``?n`` form."""
    return _PG_PARAM.sub(r"?\1", sql)


class AiosqliteStore:
    """Single aiosqlite connection in autocommit mode.

    ``transaction()`` issues BEGIN/COMMIT explicitly and uses savepoints
    when nested. Foreign keys are enforced so cascades behave like
    PostgreSQL.
    """

    dialect = "sqlite"

    def __init__(self, path: str = ":memory:") -> None:
        self.path = path
        self._db: aiosqlite.Connection | None = None
        self._depth = 0

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("AiosqliteStore is not connected")
        return self._db

    async def connect(self) -> None:
        if self._db is not None:
            return
        self._db = await aiosqlite.connect(self.path, isolation_level=None)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA foreign_keys = ON")

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            self._depth = 0

    async def execute_script(self, script: str) -> None:
        await self.db.executescript(script)

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        values = [_sqlite_value(p) for p in params]
        async with self.db.execute(to_sqlite_sql(sql), values) as cursor:
            rows = await cursor.fetchall()
        return [dict(r) for r in rows]

    async def execute_returning(self, sql: str, params: Sequence[Any] = ()) -> list[int]:
        return [row["id"] for row in await self.fetch(sql, params)]

    async def insert(self, table: str, row: Mapping[str, Any]) -> int:
        ids = await self.execute_returning(
            build_insert(table, list(row), 1), _flatten(list(row), [row])
        )
        return ids[0]

    async def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[int]:
        if not rows:
            return []
        columns = list(rows[0])
        ids: list[int] = []
        for chunk in _chunks(rows, SQLITE_MAX_PARAMS):
            sql = build_insert(table, columns, len(chunk))
            ids.extend(await self.execute_returning(sql, _flatten(columns, chunk)))
        return ids

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AiosqliteStore]:
        savepoint = f"sp_{self._depth}" if self._depth else None
        await self.db.execute(f"SAVEPOINT {savepoint}" if savepoint else "BEGIN")
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if savepoint:
                await self.db.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                await self.db.execute(f"RELEASE SAVEPOINT {savepoint}")
            else:
                await self.db.execute("ROLLBACK")
            raise
        else:
            self._depth -= 1
            await self.db.execute(f"RELEASE SAVEPOINT {savepoint}" if savepoint else "COMMIT")
