"""
Pytest fixtures for WMS backend tests.

Provides the app over in-memory SQLite, a per-test table wipe, actors for
every role, and helpers to seed lots and documents.
"""

import pytest

from wms import create_app
from wms.extensions import db
from wms.permissions import Actor
from wms.services import approval_service, inventory_service
from wms.services.concurrency import run_in_transaction


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'DEBUG',
    })

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
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        approval_service.invalidate_cache()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def runtime(app, db_session):
    return app.extensions["wms"]


@pytest.fixture(scope='function')
def engine(runtime):
    return runtime.engine


@pytest.fixture(scope='function')
def bus(runtime):
    """The app's bus; handlers subscribed during the test are removed afterwards."""
    before = set(runtime.bus.handler_names())
    yield runtime.bus
    for name in set(runtime.bus.handler_names()) - before:
        runtime.bus.unsubscribe(name)


# -- actors --

WAREHOUSE = 1
OTHER_WAREHOUSE = 2
PROJECT = 10


@pytest.fixture
def admin():
    return Actor(id=1, role="admin")


@pytest.fixture
def manager():
    return Actor(id=2, role="manager")


@pytest.fixture
def supervisor():
    return Actor(id=3, role="warehouse_supervisor", warehouse_id=WAREHOUSE)


@pytest.fixture
def staff():
    return Actor(id=4, role="warehouse_staff", warehouse_id=WAREHOUSE)


@pytest.fixture
def qc_officer():
    return Actor(id=5, role="qc_officer")


@pytest.fixture
def engineer():
    return Actor(id=6, role="site_engineer", project_id=PROJECT)


@pytest.fixture
def viewer():
    return Actor(id=7, role="viewer")


# -- seed helpers --

@pytest.fixture
def seed_lot(db_session):
    """Receive a committed lot: seed_lot(item_id, qty, unit_cost_cents=100, warehouse_id=WAREHOUSE)."""
    def _seed(item_id, qty, unit_cost_cents=100, warehouse_id=WAREHOUSE, **kwargs):
        return run_in_transaction(
            lambda: inventory_service.receive(item_id, warehouse_id, qty, None, unit_cost_cents, **kwargs)
        )
    return _seed


@pytest.fixture
def supervisor_tiers(db_session):
    """mi/wt approvals: supervisor below 10,000.00, manager below 50,000.00, admin above."""
    tiers = [
        {"min_amount_cents": 0, "max_amount_cents": 1_000_000, "required_role": "warehouse_supervisor"},
        {"min_amount_cents": 1_000_000, "max_amount_cents": 5_000_000, "required_role": "manager"},
        {"min_amount_cents": 5_000_000, "max_amount_cents": None, "required_role": "admin"},
    ]

    def _seed():
        approval_service.set_tiers("mi", tiers)
        approval_service.set_tiers("wt", tiers)

    run_in_transaction(_seed)
    return tiers


def actor_headers(actor):
    """Helper to create upstream identity headers for an actor."""
    headers = {"X-Actor-Id": str(actor.id), "X-Actor-Role": actor.role}
    if actor.warehouse_id is not None:
        headers["X-Actor-Warehouse-Id"] = str(actor.warehouse_id)
    if actor.project_id is not None:
        headers["X-Actor-Project-Id"] = str(actor.project_id)
    return headers
