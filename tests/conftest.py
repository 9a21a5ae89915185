"""Shared test fixtures for salon_queue tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.orm import Session, sessionmaker

from salon_queue import CatalogRepository, QueueBroadcastChannel, QueueLifecycleManager, QueueStore
from salon_queue.database import create_db_engine
from salon_queue.models import Base
from salon_queue.schemas import OfferRecord, SalonRecord, ServiceRecord

if TYPE_CHECKING:
    from collections.abc import Generator

    from sqlalchemy.engine import Engine


# 2026-10-17 09:00:00 UTC
START_MS = 1_792_227_600_000
MINUTE_MS = 60_000


class FakeClock:
    """Deterministic epoch-millisecond clock. Every reading advances one second."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        self.now += 1000
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += int(minutes * MINUTE_MS)


@pytest.fixture
def in_memory_engine() -> Generator[Engine, None, None]:
    """Create SQLite in-memory engine with all tables created.

    Yields:
        Engine: SQLAlchemy engine with in-memory SQLite database
    """
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(in_memory_engine: Engine) -> sessionmaker[Session]:
    """Create session factory bound to in-memory engine."""
    return sessionmaker(bind=in_memory_engine, autocommit=False, autoflush=False)


@pytest.fixture
def store(session_factory: sessionmaker[Session]) -> QueueStore:
    return QueueStore(session_factory)


@pytest.fixture
def catalog(session_factory: sessionmaker[Session]) -> CatalogRepository:
    """Catalog with two salons.

    salon-1 (owner-1): haircut 25/30min, beard 20/20min, color 45/unknown, offer "autumn" 20% off
    salon-2 (owner-2): massage 60/60min
    """
    repo = CatalogRepository(session_factory)
    repo.add_salon(SalonRecord(salon_id="salon-1", name="Cuts", owner_id="owner-1", location="Main St"))
    repo.add_salon(
        SalonRecord(salon_id="salon-2", name="Spa", owner_id="owner-2", default_service_minutes=40)
    )
    repo.add_service(
        ServiceRecord(service_id="haircut", salon_id="salon-1", name="Haircut", price=25, duration=30)
    )
    repo.add_service(
        ServiceRecord(service_id="beard", salon_id="salon-1", name="Beard trim", price=20, duration=20)
    )
    repo.add_service(ServiceRecord(service_id="color", salon_id="salon-1", name="Color", price=45))
    repo.add_service(
        ServiceRecord(service_id="massage", salon_id="salon-2", name="Massage", price=60, duration=60)
    )
    repo.add_offer(
        OfferRecord(
            offer_id="autumn",
            salon_id="salon-1",
            title="Autumn deal",
            discount=20,
            valid_from=START_MS - 24 * 60 * MINUTE_MS,
            valid_until=START_MS + 24 * 60 * MINUTE_MS,
        )
    )
    return repo


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def channel() -> Generator[QueueBroadcastChannel, None, None]:
    channel = QueueBroadcastChannel()
    yield channel
    channel.stop()


@pytest.fixture
def manager(
    store: QueueStore,
    catalog: CatalogRepository,
    channel: QueueBroadcastChannel,
    clock: FakeClock,
) -> QueueLifecycleManager:
    return QueueLifecycleManager(
        store, catalog, channel, default_service_minutes=15, loyalty_divisor=10, clock=clock
    )
