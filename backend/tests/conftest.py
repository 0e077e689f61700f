"""
Pytest fixtures for bizops backend tests.

Provides test database setup, model factories, and test client.
"""

import pytest
from bizops import create_app
from bizops.extensions import db
from bizops.models import Customer, Product, Target
from bizops.models.targets import TARGET_ACTIVE


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
def client(app, db_session):
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
def make_product(db_session):
    """Factory: make_product(name="Scooter", stock=10, sell_price_cents=10000, category="Scooters")."""
    def _make(name="Scooter", *, stock=10, sell_price_cents=10000, buy_price_cents=6000,
              category="Scooters", min_stock=0):
        product = Product(
            name=name,
            category=category,
            buy_price_cents=buy_price_cents,
            sell_price_cents=sell_price_cents,
            stock=stock,
            min_stock=min_stock,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    def _make(first_name="Ada", last_name="Lovelace", phone="5550001", **fields):
        customer = Customer(first_name=first_name, last_name=last_name, phone=phone, **fields)
        db_session.add(customer)
        db_session.commit()
        return customer
    return _make


@pytest.fixture(scope='function')
def make_target(db_session):
    def _make(title="Monthly revenue", *, target_amount_cents=100000, period="monthly", status=TARGET_ACTIVE):
        target = Target(
            title=title,
            target_amount_cents=target_amount_cents,
            period=period,
            status=status,
        )
        db_session.add(target)
        db_session.commit()
        return target
    return _make
