from __future__ import annotations

import os
import shutil
from pathlib import Path
from uuid import uuid4

import asyncpg
import pytest
from aiohttp import ClientSession
from testsuite.databases.pgsql import discover

from webhook_service.main import create_app
from webhook_service.runtime import build_runtime
from webhook_service.services.circuit_breaker import CircuitBreaker
from webhook_service.services.delivery_worker import DeliveryWorker
from webhook_service.settings import Settings

from tests.fakes import FakeDeliveryRepository, FakeEndpointRepository, RecordingScheduler
from tests.utils import FIXED_NOW, Receiver

pytest_plugins = (
    "testsuite.pytest_plugin",
    "testsuite.databases.pgsql.pytest_plugin",
)

PG_SCHEMAS_PATH = Path(__file__).parent / "schemas" / "postgresql"


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def endpoints():
    return FakeEndpointRepository()


@pytest.fixture
def deliveries():
    return FakeDeliveryRepository()


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def breaker(endpoints):
    return CircuitBreaker(endpoints, threshold=10)


@pytest.fixture
async def http_session():
    async with ClientSession() as session:
        yield session


@pytest.fixture
async def receiver(aiohttp_server):
    rec = Receiver()
    server = await aiohttp_server(rec.app())
    rec.url = str(server.make_url("/hook"))
    return rec


@pytest.fixture
def worker(endpoints, deliveries, breaker, scheduler, http_session):
    return DeliveryWorker(
        endpoints,
        deliveries,
        breaker,
        scheduler,
        http_session,
        timeout_seconds=2.0,
        user_agent="webhook-service-tests",
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def engine_settings():
    return Settings(webhook_allow_private_targets=True, webhook_user_agent="webhook-service-tests")


@pytest.fixture
def runtime(endpoints, deliveries, scheduler, http_session, engine_settings):
    return build_runtime(
        endpoints=endpoints,
        deliveries=deliveries,
        scheduler=scheduler,
        session=http_session,
        settings=engine_settings,
    )


@pytest.fixture
async def service_client(aiohttp_client, runtime):
    """Client for the management API backed by the in-memory engine."""
    return await aiohttp_client(create_app(runtime=runtime))


@pytest.fixture(scope="session")
def pgsql_local(pgsql_local_create):
    databases = discover.find_schemas(
        service_name=None,
        schema_dirs=[PG_SCHEMAS_PATH],
    )
    return pgsql_local_create(list(databases.values()))


def _postgres_available(config) -> bool:
    if config.getoption("postgresql", default=None) or os.environ.get("TESTSUITE_PGSQL_BINDIR"):
        return True
    return shutil.which("pg_config") is not None or shutil.which("pg_ctl") is not None


@pytest.fixture
def database_url(request):
    """URI of the testsuite-managed ``webhook_service`` database."""
    if not _postgres_available(request.config):
        pytest.skip("PostgreSQL is not available")
    return request.getfixturevalue("pgsql")["webhook_service"].conninfo.get_uri()


@pytest.fixture
async def db_pool(database_url):
    pool = await asyncpg.create_pool(database_url, min_size=1, max_size=5)
    try:
        await pool.execute("TRUNCATE webhook_delivery_queue, webhook_deliveries, webhook_endpoints")
        yield pool
    finally:
        await pool.close()
