"""
Pytest fixtures for backoffice backend tests.

Provides the application, test client, a per-test clean database session,
and helpers that create documents through the real service layer.
"""

import fnmatch
from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.extensions import CACHE_EXTENSION_KEY, db
from backoffice.schemas import DocumentInput, ItemInput, DetailInput, RemarkInput
from backoffice.services.document_service import DocumentService


TEST_YEAR = 2025


class MemoryCache:
    """Dict-backed stand-in for RedisCache with the same method surface."""

    is_available = True

    def __init__(self):
        self.store = {}

    def get_json(self, key):
        return self.store.get(key)

    def set_json(self, key, value, ttl=None):
        self.store[key] = value
        return True

    def delete(self, key):
        return self.store.pop(key, None) is not None

    def delete_pattern(self, pattern):
        doomed = [k for k in self.store if fnmatch.fnmatchcase(k, pattern)]
        for key in doomed:
            del self.store[key]
        return len(doomed)

    def ping(self):
        return True


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'REDIS_URL': '',
        'SEQUENCE_STRATEGY': 'counter',
        'SEQUENCE_MAX_ATTEMPTS': 3,
        'NAME_SUFFIX_LIMIT': None,
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def memory_cache(app):
    """Swap the app's cache backend for an in-memory one for one test."""
    previous = app.extensions[CACHE_EXTENSION_KEY]
    cache = MemoryCache()
    app.extensions[CACHE_EXTENSION_KEY] = cache
    yield cache
    app.extensions[CACHE_EXTENSION_KEY] = previous


@pytest.fixture(scope='function')
def service(db_session):
    """DocumentService bound to the test session, without a cache."""
    return DocumentService(db_session)


@pytest.fixture(scope='function')
def make_document(service):
    """
    Create a document through the service.

    Items are given as (name, total_cents) pairs or ItemInput instances;
    remarks as plain strings.
    """
    def _make(kind="quotation", name="Acme Corp", items=None, remarks=None, year=TEST_YEAR, **fields):
        item_inputs = None
        if items is not None:
            item_inputs = [
                it if isinstance(it, ItemInput) else ItemInput(name=it[0], total_cents=it[1])
                for it in items
            ]
        remark_inputs = None
        if remarks is not None:
            remark_inputs = [RemarkInput(text=text) for text in remarks]
        data = DocumentInput(display_name=name, items=item_inputs, remarks=remark_inputs, **fields)
        return service.create_document(kind, data, year=year)

    return _make


def detail(description, unit_price_cents, quantity, id=None):
    """Shorthand for a DetailInput with a string quantity."""
    return DetailInput(description=description, unit_price_cents=unit_price_cents, quantity=Decimal(quantity), id=id)
