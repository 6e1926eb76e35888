"""
Pytest fixtures for PetalPOS backend tests.

Provides an in-memory application, a clean database per test, and small
factories for products.
"""

import pytest

from petalpos import create_app
from petalpos.extensions import db
from petalpos.models import Product


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOCK_RETRY_ATTEMPTS': 1,
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
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: create a product with its stock set directly (test setup only)."""
    def _make(name="Red roses", *, stock=0, price_cents=300, cost_cents=150,
              units_per_package=1, care_days_water=2, care_days_cut=3, **extra):
        product = Product(
            name=name,
            type=extra.pop("type", "flower"),
            stock=stock,
            price_cents=price_cents,
            cost_cents=cost_cents,
            units_per_package=units_per_package,
            care_days_water=care_days_water,
            care_days_cut=care_days_cut,
            **extra,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Read stock straight from the database, bypassing the identity map."""
    def _read(product_id: int) -> int:
        return db_session.query(Product.stock).filter_by(id=product_id).scalar()

    return _read
