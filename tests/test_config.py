"""Tests for environment configuration and the backend registry."""

from __future__ import annotations

from pathlib import Path

import pytest

from clinicbench.backends import BACKENDS, create_backend, create_store
from clinicbench.backends.raw import RawSQLBackend
from clinicbench.benchmark import BenchmarkBackend
from clinicbench.config import DEFAULT_DATABASE_URL, BenchmarkConfig
from clinicbench.store import AiosqliteStore, AsyncpgStore

ENV_VARS = [
    "DATABASE_URL",
    "BENCHMARK_SQLITE_PATH",
    "BENCHMARK_RESULTS_DIR",
    "BENCHMARK_BATCH_SIZE",
    "BENCHMARK_TOTAL_RECORDS",
    "BENCHMARK_POOL_SIZE",
    "BENCHMARK_PHONE_MID_SEQ",
    "BENCHMARK_SEED",
]


@pytest.fixture
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


class TestBenchmarkConfig:
    def test_defaults(self, clean_env) -> None:
        config = BenchmarkConfig.from_env()
        assert config.database_url == DEFAULT_DATABASE_URL
        assert config.batch_size == 1000
        assert config.total_records == 100000
        assert config.phone_mid_seq is None
        assert config.seed is None
        assert config.is_postgres

    def test_overrides(self, clean_env) -> None:
        clean_env.setenv("DATABASE_URL", "postgres://u:p@db:5433/bench")
        clean_env.setenv("BENCHMARK_SQLITE_PATH", "/tmp/x.db")
        clean_env.setenv("BENCHMARK_BATCH_SIZE", "250")
        clean_env.setenv("BENCHMARK_PHONE_MID_SEQ", "4321")
        clean_env.setenv("BENCHMARK_SEED", "7")

        config = BenchmarkConfig.from_env()
        assert config.database_url == "postgres://u:p@db:5433/bench"
        assert config.sqlite_path == Path("/tmp/x.db")
        assert config.batch_size == 250
        assert config.phone_mid_seq == 4321
        assert config.seed == 7

    def test_invalid_integer_names_variable(self, clean_env) -> None:
        clean_env.setenv("BENCHMARK_POOL_SIZE", "lots")
        with pytest.raises(ValueError, match="BENCHMARK_POOL_SIZE"):
            BenchmarkConfig.from_env()

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("postgresql://u@h/db", "postgresql+asyncpg://u@h/db"),
            ("postgres://u@h/db", "postgresql+asyncpg://u@h/db"),
            ("sqlite:///bench.db", "sqlite+aiosqlite:///bench.db"),
            ("sqlite+aiosqlite:///bench.db", "sqlite+aiosqlite:///bench.db"),
        ],
    )
    def test_sqlalchemy_url(self, url: str, expected: str) -> None:
        assert BenchmarkConfig(database_url=url).sqlalchemy_url() == expected

    def test_sqlite_is_not_postgres(self) -> None:
        assert not BenchmarkConfig(database_url="sqlite:///bench.db").is_postgres


class TestRegistry:
    def test_registered_names(self) -> None:
        assert list(BACKENDS) == ["asyncpg", "aiosqlite", "sqlalchemy", "tortoise"]

    @pytest.mark.parametrize("name", ["asyncpg", "aiosqlite", "sqlalchemy", "tortoise"])
    def test_every_backend_builds(self, name: str) -> None:
        backend = create_backend(name, BenchmarkConfig())
        assert isinstance(backend, BenchmarkBackend)

    def test_names(self) -> None:
        config = BenchmarkConfig()
        assert create_backend("asyncpg", config).name == "asyncpg"
        assert create_backend("sqlalchemy", config).name == "SQLAlchemy"
        assert create_backend("tortoise", config).name == "Tortoise"

    def test_unknown_backend(self) -> None:
        with pytest.raises(KeyError, match="Unknown backend"):
            create_backend("peewee", BenchmarkConfig())

    def test_aiosqlite_uses_sqlite_path(self, tmp_path) -> None:
        config = BenchmarkConfig(sqlite_path=tmp_path / "b.db")
        backend = create_backend("aiosqlite", config)
        assert isinstance(backend, RawSQLBackend)
        assert backend.store.path == str(tmp_path / "b.db")

    def test_store_per_schema_on_postgres(self) -> None:
        store = create_store("tortoise", BenchmarkConfig())
        assert isinstance(store, AsyncpgStore)
        assert store.schema == "tortoise"

    def test_store_on_sqlite(self, tmp_path) -> None:
        config = BenchmarkConfig(database_url="sqlite://", sqlite_path=tmp_path / "b.db")
        assert isinstance(create_store("sqlalchemy", config), AiosqliteStore)
