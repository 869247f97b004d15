"""Repository tests against a real PostgreSQL started with testcontainers."""

import os
from typing import Generator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from docker.errors import DockerException
from sqlalchemy import insert
from testcontainers.postgres import PostgresContainer

from prospector.database.database import DatabaseSessionManager
from prospector.database.tables.base_class import Base
from prospector.database.tables.credit_table import OrganisationCreditBalance
from prospector.database.tables.workflow_config_table import WorkflowConfigs
from prospector.database.tables.workflow_table import Workflows  # noqa: F401
from prospector.main.config import Settings

# Ryuk has connection issues in nested Docker setups
os.environ.setdefault("TESTCONTAINERS_RYUK_DISABLED", "true")

if not os.getenv("DOCKER_HOST") and os.path.exists("/var/run/docker.sock"):
    os.environ["DOCKER_HOST"] = "unix:///var/run/docker.sock"


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    postgres = PostgresContainer(
        image="postgres:16-alpine",
        username="integration_test_user",
        password="integration_test_password",
        dbname="integration_test_db",
    )
    try:
        postgres.start()
    except DockerException as e:
        pytest.skip(f"Docker is not available: {e}")

    try:
        yield postgres
    finally:
        postgres.stop()


@pytest.fixture(scope="session")
def integration_settings(postgres_container: PostgresContainer) -> Settings:
    return Settings(
        postgres_user="integration_test_user",
        postgres_password="integration_test_password",
        postgres_host=postgres_container.get_container_host_ip(),
        postgres_port=int(postgres_container.get_exposed_port(5432)),
        postgres_db="integration_test_db",
        redis_host="localhost",
        redis_port=6379,
        testing=True,
    )


@pytest_asyncio.fixture
async def sessionmanager(integration_settings: Settings):
    """Fresh schema per test, dropped afterwards."""
    manager = DatabaseSessionManager()
    manager.init(integration_settings.database_url, pool_size=5, max_overflow=5)

    async with manager.transaction() as session:
        await session.run_sync(
            lambda sync_session: Base.metadata.create_all(sync_session.connection())
        )

    yield manager

    async with manager.transaction() as session:
        await session.run_sync(
            lambda sync_session: Base.metadata.drop_all(sync_session.connection())
        )
    await manager.close()


@pytest.fixture
def organisation_id() -> UUID:
    return uuid4()


@pytest_asyncio.fixture
async def workflow_config_id(sessionmanager, organisation_id) -> UUID:
    config_id = uuid4()
    async with sessionmanager.transaction() as session:
        await session.execute(
            insert(WorkflowConfigs).values(
                workflow_config_id=config_id,
                organisation_id=organisation_id,
                domains=["fintech"],
                locations=["Stockholm"],
                designations=["CTO"],
                leads_count=5,
                company_name="Acme",
            )
        )
    return config_id


async def add_balance(sessionmanager, organisation_id: UUID, balance: float) -> None:
    async with sessionmanager.transaction() as session:
        await session.execute(
            insert(OrganisationCreditBalance).values(
                organisation_id=organisation_id, credit_balance=balance
            )
        )
