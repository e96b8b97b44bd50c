"""
Pytest fixtures for the offline POS data layer.

Provides an in-memory database app, fresh store/repository wiring per test,
a controllable clock and an in-memory fake of the remote document store.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from itertools import count

import pytest

from offline_pos import create_app
from offline_pos.extensions import db
from offline_pos.models import StoreRecord
from offline_pos.services.connectivity import ConnectivityMonitor
from offline_pos.services.local_store import LocalStore
from offline_pos.services.product_repository import ProductRepository
from offline_pos.services.remote_store import RemoteStore, RemoteStoreError
from offline_pos.services.sales_repository import SalesRepository
from offline_pos.services.sync_engine import SyncEngine


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'REMOTE_STORE_URL': None,
    'AUTO_SYNC': True,
    'DEFAULT_TAX_RATE_PERCENT': 0.0,
}


class FakeClock:
    """Deterministic UTC-naive clock."""

    def __init__(self, start: datetime = datetime(2024, 3, 1, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeRemoteStore(RemoteStore):
    """
    In-memory document store with merge semantics.

    - fail_on: collections whose calls raise RemoteStoreError
    - gate: when set, get_all() waits on it (to hold a cycle in flight)
    """

    def __init__(self):
        self.collections = defaultdict(dict)
        self.set_calls = []
        self.get_all_calls = 0
        self.fail_on = set()
        self.gate = None
        self.online = True

    async def get_all(self, collection):
        self.get_all_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if collection in self.fail_on:
            raise RemoteStoreError(f"{collection} unavailable")
        return [dict(doc) for doc in self.collections[collection].values()]

    async def set(self, collection, doc_id, document, merge=True):
        if collection in self.fail_on:
            raise RemoteStoreError(f"{collection} unavailable")
        self.set_calls.append((collection, doc_id))
        current = self.collections[collection].get(doc_id, {}) if merge else {}
        self.collections[collection][doc_id] = {**current, **document}

    async def ping(self):
        return self.online


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty store for each test."""
    db.session.query(StoreRecord).delete()
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ids():
    """Sequential ids: id-1, id-2, ..."""
    counter = count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def store(db_session):
    store = LocalStore()
    store.init()
    return store


@pytest.fixture
def products(store, clock, ids):
    return ProductRepository(store, clock=clock, id_factory=ids)


@pytest.fixture
def missing_events():
    return []


@pytest.fixture
def sales(store, clock, ids, missing_events):
    return SalesRepository(
        store,
        clock=clock,
        id_factory=ids,
        on_missing_product=lambda op, product_id, ref: missing_events.append((op, product_id, ref)),
    )


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def connectivity(remote):
    return ConnectivityMonitor(initial_online=True, remote=remote)


@pytest.fixture
def engine(store, products, remote, connectivity, clock):
    return SyncEngine(store, products, remote, connectivity, clock=clock)
