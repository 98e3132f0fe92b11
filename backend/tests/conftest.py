"""
Pytest fixtures for retail ledger backend tests.

Provides an in-memory application with a per-test clean database, catalog
fixtures, and a file-backed application for multi-threaded tests.
"""

import pytest

from retail_ledger import create_app
from retail_ledger.extensions import db
from retail_ledger.services import catalog_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_RETRY_BACKOFF_SECONDS': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def store(db_session):
    """Primary store."""
    return catalog_service.create_store("Downtown", "Main Street")


@pytest.fixture(scope='function')
def other_store(db_session):
    """Second store for transfers and cross-store checks."""
    return catalog_service.create_store("Uptown", "North Avenue")


@pytest.fixture(scope='function')
def item(db_session):
    """Catalog item priced at 10.00."""
    return catalog_service.create_item("Widget", "Tools", 1000, sku="WID-001")


@pytest.fixture(scope='function')
def other_item(db_session):
    """Catalog item priced at 2.50."""
    return catalog_service.create_item("Gadget", "Tools", 250, sku="GAD-001")


@pytest.fixture(scope='function')
def threaded_app(tmp_path):
    """
    File-backed application for tests that run work on several threads.

    In-memory SQLite is a single shared connection, so thread tests need a
    real database file that every pooled connection can open.
    """
    db_path = tmp_path / "ledger_threads.db"
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}",
        'SQLALCHEMY_ENGINE_OPTIONS': {
            'connect_args': {'check_same_thread': False, 'timeout': 30},
        },
        'STOCK_RETRY_BACKOFF_SECONDS': 0,
    })

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()
