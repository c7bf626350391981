import copy

import pytest
from fastapi.testclient import TestClient

from pos_service.billing import BillNumberAllocator
from pos_service.clock import ManualClock
from pos_service.config import Settings
from pos_service.database import init_db, make_engine, make_session_factory
from pos_service.duplicates import DuplicateDetector
from pos_service.locks import RequestLockTable
from pos_service.main import create_app
from pos_service.persistence import OrderGateway

TEA_ORDER = {
    "table_number": "5",
    "items": [{"name": "Tea", "price": 25, "quantity": 2, "total": 50}],
    "subtotal": 50,
    "gst_rate": 5,
    "tax_amount": 2.5,
    "total": 52.5,
    "payment_mode": "Cash",
}


class FixedAllocator(BillNumberAllocator):
    """Hands out a fixed sequence of candidates, repeating the last one."""

    def __init__(self, *candidates, **kwargs):
        super().__init__(**kwargs)
        self.candidates = list(candidates)
        self.calls = 0

    def allocate(self) -> str:
        self.calls += 1
        if len(self.candidates) > 1:
            return self.candidates.pop(0)
        return self.candidates[0]


@pytest.fixture
def make_order():
    def _make(**overrides):
        order = copy.deepcopy(TEA_ORDER)
        order.update(overrides)
        return order
    return _make


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'pos.db'}"


@pytest.fixture
def settings(db_url):
    return Settings(database_url=db_url, seed_defaults=True)


@pytest.fixture
def session_factory(db_url):
    engine = make_engine(db_url)
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def locks(clock):
    return RequestLockTable(timeout=30, max_locks=1000, clock=clock)


@pytest.fixture
def detector(locks, clock):
    return DuplicateDetector(locks, window_seconds=300, clock=clock)


@pytest.fixture
def gateway(clock):
    return OrderGateway(BillNumberAllocator(clock), max_attempts=5, clock=clock)


@pytest.fixture
def app(settings, clock):
    return create_app(settings, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
