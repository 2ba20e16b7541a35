"""Pytest configuration and fixtures"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from smokewatch.config import Settings
from smokewatch.database import init_db
from smokewatch.schemas.target import TargetInfo
from smokewatch.services.monitor_engine import MonitorEngine
from smokewatch.services.result_store import ResultStore
from smokewatch.services.target_registry import StaticTargetRegistry
from tests.fixtures import FakeToolRunner, GNU_PING, MTR_JSON, TRACEROUTE_NUMERIC


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory):
    return ResultStore(session_factory)


@pytest.fixture
def test_settings():
    return Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        PING_COUNT=5,
        PING_TIMEOUT_SECONDS=1,
        ROUTE_TIMEOUT_SECONDS=5,
        SHUTDOWN_GRACE_SECONDS=0.1,
    )


@pytest.fixture
def targets():
    return [
        TargetInfo(id=1, name="Google DNS", host="8.8.8.8", group_name="dns"),
        TargetInfo(id=2, name="Cloudflare", host="1.1.1.1", group_name="dns"),
        TargetInfo(id=3, name="Lab switch", host="10.0.0.2", enabled=False),
    ]


@pytest.fixture
def registry(targets):
    return StaticTargetRegistry(targets)


@pytest.fixture
def runner():
    return FakeToolRunner({
        "ping": GNU_PING,
        "mtr": MTR_JSON,
        "traceroute": TRACEROUTE_NUMERIC,
    })


@pytest.fixture
def engine(store, registry, test_settings, runner):
    return MonitorEngine(store=store, registry=registry, config=test_settings, runner=runner)
