"""
Pytest fixtures for the catalog stock backend tests.

Provides an in-memory app, per-test table cleanup, actor users and
product/batch factories.
"""

import pytest

from catalog import create_app
from catalog.extensions import db
from catalog.models import Product, StockBatch, User


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

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, username, sub_role):
    user = User(username=username, email=f"{username}@example.com", name=username.title(), sub_role=sub_role)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def warehouse_user(db_session):
    return _make_user(db_session, "warehouse", "WAREHOUSE")


@pytest.fixture(scope='function')
def accountant(db_session):
    return _make_user(db_session, "accountant", "ACCOUNTANT")


@pytest.fixture(scope='function')
def director(db_session):
    return _make_user(db_session, "director", "DIRECTOR")


@pytest.fixture(scope='function')
def staff_user(db_session):
    return _make_user(db_session, "staff", "STAFF")


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(sku="P-1", stock=0, **fields) -> committed Product."""
    counter = {"n": 0}

    def _make(sku=None, **fields):
        counter["n"] += 1
        product = Product(
            sku=sku or f"SKU-{counter['n']:03d}",
            name=fields.pop("name", f"Product {counter['n']}"),
            **fields,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_batch(db_session):
    """
    Factory: make_batch(product, good=10, refurbished=0, status="AVAILABLE", **fields).

    Inserts the row directly, without the post-write resync, so tests can set
    up batches and then drive the sync engine themselves.
    """
    counter = {"n": 0}

    def _make(product, good=0, refurbished=0, status="AVAILABLE", **fields):
        counter["n"] += 1
        quantity = fields.pop("original_quantity", good + refurbished + fields.get("damaged_quantity", 0))
        batch = StockBatch(
            batch_number=fields.pop("batch_number", f"SB-TEST-{counter['n']:04d}"),
            product_id=product.id,
            original_quantity=quantity,
            current_quantity=fields.pop("current_quantity", good + refurbished),
            reserved_quantity=fields.pop("reserved_quantity", 0),
            good_quantity=good,
            refurbished_quantity=refurbished,
            status=status,
            **fields,
        )
        batch.recalculate_derived()
        db_session.add(batch)
        db_session.commit()
        return batch

    return _make


@pytest.fixture(scope='function')
def headers_for():
    """Helper to create actor headers for a user."""
    def _headers(user) -> dict:
        return {'X-User-Id': str(user.id)}
    return _headers
