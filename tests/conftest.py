# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from datetime import UTC, datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ["DELIVERY_WORKERS_ENABLED"] = "false"
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CACHE_BACKEND", "memory")

from webhook_hub.db.session import Base, build_engine, create_tables  # noqa: E402
from webhook_hub.main import app as fastapi_app  # noqa: E402
from webhook_hub.scripts.seed import seed_sample_data  # noqa: E402
from webhook_hub.services.catalog import DestinationCatalog, get_catalog  # noqa: E402
from webhook_hub.services.delivery_queue import (  # noqa: E402
    DeliveryQueue,
    Retention,
    RetryPolicy,
    get_delivery_queue,
)
from webhook_hub.services.fanout import FanoutCoordinator, get_fanout_coordinator  # noqa: E402
from webhook_hub.services.resolution_cache import MemoryResolutionCache  # noqa: E402
from webhook_hub.services.resolver import Resolver, get_resolver  # noqa: E402

TEST_DB_URL = "sqlite://"
SAMPLE_PHONE_NUMBER_ID = "542491768952983"


class FakeClock:
    """Manually advanced clock serving both wall-clock and monotonic readers."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
        self._monotonic = 1000.0

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self._monotonic

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
        self._monotonic += seconds


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = build_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Iterator[Callable[[], Session]]:
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    try:
        yield factory
    finally:
        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def db_session(session_factory: Callable[[], Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def catalog(session_factory: Callable[[], Session]) -> DestinationCatalog:
    return DestinationCatalog(session_factory)


@pytest.fixture()
def cache(clock: FakeClock) -> MemoryResolutionCache:
    return MemoryResolutionCache(ttl_seconds=3600, clock=clock.monotonic)


@pytest.fixture()
def resolver(catalog: DestinationCatalog, cache: MemoryResolutionCache) -> Resolver:
    return Resolver(catalog, cache, key_prefix="phone:")


@pytest.fixture()
def queue(session_factory: Callable[[], Session], clock: FakeClock) -> DeliveryQueue:
    return DeliveryQueue(
        session_factory,
        policy=RetryPolicy(max_attempts=3, backoff_base_seconds=2.0),
        retention=Retention(keep_completed=100, keep_failed=500),
        stall_timeout_seconds=30.0,
        clock=clock.now,
    )


@pytest.fixture()
def threaded_queue(tmp_path, clock: FakeClock) -> Iterator[DeliveryQueue]:
    """Queue on a file database so concurrent worker threads get their own connections."""
    engine = build_engine(f"sqlite:///{tmp_path / 'queue.db'}")
    create_tables(engine)
    try:
        yield DeliveryQueue(
            sessionmaker(bind=engine, autocommit=False, autoflush=False),
            policy=RetryPolicy(max_attempts=3, backoff_base_seconds=2.0),
            retention=Retention(keep_completed=100, keep_failed=500),
            stall_timeout_seconds=30.0,
            clock=clock.now,
        )
    finally:
        engine.dispose()


@pytest.fixture()
def coordinator(resolver: Resolver, queue: DeliveryQueue) -> FanoutCoordinator:
    return FanoutCoordinator(resolver, queue)


@pytest.fixture()
def seeded(session_factory: Callable[[], Session]) -> str:
    """Load the sample catalog and return its phone number id."""
    assert seed_sample_data(session_factory) is True
    return SAMPLE_PHONE_NUMBER_ID


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    catalog: DestinationCatalog,
    resolver: Resolver,
    queue: DeliveryQueue,
    coordinator: FanoutCoordinator,
) -> Iterator[None]:
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_resolver] = lambda: resolver
    app.dependency_overrides[get_delivery_queue] = lambda: queue
    app.dependency_overrides[get_fanout_coordinator] = lambda: coordinator
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
