"""Pytest configuration and fixtures."""

import os

import pytest
import pytest_asyncio

from clinicbench.datagen import ClinicDataGenerator


@pytest.fixture
def generator() -> ClinicDataGenerator:
    """Deterministic generator starting at phone 010-0000-0000."""
    return ClinicDataGenerator(seed=1234)


@pytest.fixture
def quiet_log():
    """Log sink that records messages instead of printing them."""
    messages: list[str] = []

    def log(msg: str) -> None:
        messages.append(msg)

    log.messages = messages
    return log


@pytest_asyncio.fixture
async def sqlite_store():
    """Connected in-memory SQLite store with the clinic schema."""
    from clinicbench.schema import create_schema
    from clinicbench.store import AiosqliteStore

    store = AiosqliteStore(":memory:")
    await store.connect()
    await create_schema(store)
    yield store
    await store.close()


@pytest.fixture
def database_url() -> str:
    """PostgreSQL URL from the environment.

    Set DATABASE_URL environment variable to use a real PostgreSQL database.
    Otherwise, tests using this fixture are skipped.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        pytest.skip("DATABASE_URL not set")
    return url


@pytest_asyncio.fixture
async def postgres_store(database_url):
    """asyncpg store in a throwaway schema, dropped afterwards."""
    from clinicbench.schema import create_schema
    from clinicbench.store import AsyncpgStore

    store = AsyncpgStore(database_url, schema="clinicbench_test", max_size=4)
    await store.connect()
    await create_schema(store)
    yield store
    await store.execute_script('DROP SCHEMA IF EXISTS "clinicbench_test" CASCADE')
    await store.close()
