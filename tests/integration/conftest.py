"""PostgreSQL fixtures for integration tests.

``DATABASE_URL`` points the tests at an existing server; otherwise a
throwaway container is started with testcontainers.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import AsyncIterator, Iterator

import asyncpg
import pytest
import pytest_asyncio
from docker.errors import DockerException
from testcontainers.postgres import PostgresContainer

from dbwatcher.config import normalize_database_url

os.environ.setdefault("TESTCONTAINERS_RYUK_DISABLED", "true")


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark everything under tests/integration as an integration test."""
    for item in items:
        if "integration" in item.nodeid.split("/"):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def postgres_dsn() -> Iterator[str]:
    db_url = os.getenv("DATABASE_URL", "").strip()
    if db_url:
        yield normalize_database_url(db_url)
        return
    try:
        with PostgresContainer("postgres:16-alpine") as postgres:
            yield normalize_database_url(postgres.get_connection_url())
    except DockerException as exc:
        pytest.skip(f"Docker unavailable for integration test: {exc}")


@pytest_asyncio.fixture
async def connection(postgres_dsn: str) -> AsyncIterator[asyncpg.Connection]:
    conn = await asyncpg.connect(postgres_dsn)
    try:
        yield conn
    finally:
        await conn.close()


@pytest_asyncio.fixture
async def writer(postgres_dsn: str) -> AsyncIterator[asyncpg.Connection]:
    """Second connection used to modify rows while ``connection`` listens."""
    conn = await asyncpg.connect(postgres_dsn)
    try:
        yield conn
    finally:
        await conn.close()


@pytest_asyncio.fixture
async def table(writer: asyncpg.Connection) -> AsyncIterator[str]:
    name = f"sdw_{uuid.uuid4().hex[:10]}"
    await writer.execute(
        f"""
        CREATE TABLE {name} (
            id serial PRIMARY KEY,
            text varchar(255),
            bool boolean,
            object varchar(255),
            ts timestamp
        )
        """
    )
    try:
        yield name
    finally:
        await writer.execute(f"DROP TABLE IF EXISTS {name}")
