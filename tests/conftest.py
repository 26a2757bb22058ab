from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.service import AnalyticsService
from backend.app.store import EventStore
from shared.database import Base
from shared.models import Company, Discount


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def store(session_factory):
    return EventStore(session_factory)


@pytest.fixture
def service(store):
    return AnalyticsService(store)


@pytest.fixture
def catalog(session_factory):
    """Two companies: company 1 owns discounts 1 and 2, company 2 owns discount 3."""
    session = session_factory()
    session.add_all([
        Company(id=1, name="Coffee House"),
        Company(id=2, name="Book Corner"),
    ])
    session.add_all([
        Discount(id=1, company_id=1, title="Latte -20%"),
        Discount(id=2, company_id=1, title="Croissant 1+1"),
        Discount(id=3, company_id=2, title="Paperbacks -10%"),
    ])
    session.commit()
    session.close()


@pytest.fixture
def record(store):
    """Append ``times`` identical actions to the store."""

    def _record(discount_id, name, occurred_at=datetime(2025, 3, 10, 12, 0), times=1, **extra):
        store.record_many(
            {"discount_id": discount_id, "action": name, "occurred_at": occurred_at, **extra}
            for _ in range(times)
        )

    return _record
