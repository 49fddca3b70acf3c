"""Backend registry: interchangeable adapters selected by name at run start."""

from __future__ import annotations

from collections.abc import Callable

from clinicbench.benchmark import BenchmarkBackend
from clinicbench.config import BenchmarkConfig
from clinicbench.store import AiosqliteStore, AsyncpgStore, RawStore


def _asyncpg(config: BenchmarkConfig) -> BenchmarkBackend:
    from clinicbench.backends.raw import RawSQLBackend

    store = AsyncpgStore(config.database_url, schema="asyncpg", max_size=config.pool_size)
    return RawSQLBackend("asyncpg", store)


def _aiosqlite(config: BenchmarkConfig) -> BenchmarkBackend:
    from clinicbench.backends.raw import RawSQLBackend

    return RawSQLBackend("aiosqlite", AiosqliteStore(str(config.sqlite_path)))


def _sqlalchemy(config: BenchmarkConfig) -> BenchmarkBackend:
    from clinicbench.backends.sqla import SQLAlchemyBackend

    url = config.sqlalchemy_url() if config.is_postgres else config.sqlite_sqlalchemy_url()
    return SQLAlchemyBackend(url, schema="sqlalchemy", pool_size=config.pool_size)


def _tortoise(config: BenchmarkConfig) -> BenchmarkBackend:
    from clinicbench.backends.tortoise_orm import TortoiseBackend

    url = config.database_url if config.is_postgres else f"sqlite://{config.sqlite_path}"
    return TortoiseBackend(url, schema="tortoise")


BACKENDS: dict[str, Callable[[BenchmarkConfig], BenchmarkBackend]] = {
    "asyncpg": _asyncpg,
    "aiosqlite": _aiosqlite,
    "sqlalchemy": _sqlalchemy,
    "tortoise": _tortoise,
}


def create_backend(name: str, config: BenchmarkConfig | None = None) -> BenchmarkBackend:
    """Instantiate the backend registered under ``name``.

    Raises:
        KeyError: If no backend has that name.
    """
    try:
        factory = BACKENDS[name]
    except KeyError:
        raise KeyError(f"Unknown backend {name!r}; choose from {', '.join(BACKENDS)}") from None
    return factory(config or BenchmarkConfig.from_env())


def create_store(name: str, config: BenchmarkConfig) -> RawStore:
    """Raw store matching a backend's database, used for seeding.

    SQLAlchemy and Tortoise share the PostgreSQL schema layout, so the
    asyncpg store seeds their schemas too.
    """
    if name == "aiosqlite" or not config.is_postgres:
        return AiosqliteStore(str(config.sqlite_path))
    if name not in BACKENDS:
        raise KeyError(f"Unknown backend {name!r}; choose from {', '.join(BACKENDS)}")
    return AsyncpgStore(config.database_url, schema=name, max_size=config.pool_size)
