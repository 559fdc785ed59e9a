"""
Pytest fixtures for back-office tests.

Provides an in-memory application, per-test table cleanup, a test client
and small factories for branches, users, products, stock and prices.
"""

from datetime import timedelta

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import (
    Branch,
    Package,
    PRICE_KIND_STANDARD,
    Product,
    SaleablePrice,
    StockBatch,
    User,
)
from backoffice.time_utils import utcnow


TEST_CONFIG = {
    "TESTING": True,
    "SECRET_KEY": "test",
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "SQLALCHEMY_TRACK_MODIFICATIONS": False,
    "BUSINESS_TIMEZONE": "UTC",
    "EXPIRY_ALERT_WINDOW_DAYS": 10,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Fresh tables for each test."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()
    db.session.remove()


@pytest.fixture
def branch(db_session):
    branch = Branch(name="Central", code="CEN")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture
def other_branch(db_session):
    branch = Branch(name="North", code="NOR")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture
def admin(db_session, branch):
    user = User(username="admin", full_name="Admin", role="ADMIN", branch_id=branch.id)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def cashier(db_session, branch):
    user = User(username="cashier", full_name="Cashier", role="CASHIER", branch_id=branch.id)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def product(db_session):
    product = Product(code="P-001", name="Rice 1kg")
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def other_product(db_session):
    product = Product(code="P-002", name="Beans 1kg")
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def package(db_session):
    package = Package(code="BAG-S", name="Small bag")
    db_session.add(package)
    db_session.commit()
    return package


@pytest.fixture
def add_batch(db_session, branch):
    """
    Factory: add_batch(quantity, product=..., days_ago=0, ...) -> StockBatch

    intake_date is now minus days_ago, so larger days_ago means older stock.
    """
    def _add(
        quantity,
        *,
        product=None,
        package=None,
        branch_id=None,
        days_ago=0,
        unit_cost_cents=100,
        expiry_date=None,
    ):
        batch = StockBatch(
            product_id=product.id if product is not None else None,
            package_id=package.id if package is not None else None,
            branch_id=branch_id or branch.id,
            quantity_on_hand=quantity,
            quantity_initial=quantity,
            unit_cost_cents=unit_cost_cents,
            total_cost_cents=unit_cost_cents * quantity,
            intake_date=utcnow() - timedelta(days=days_ago),
            expiry_date=expiry_date,
        )
        db_session.add(batch)
        db_session.commit()
        return batch

    return _add


@pytest.fixture
def add_price(db_session):
    """Factory: add_price(product, amount_cents, kind=STANDARD, rank=None) -> SaleablePrice"""
    def _add(product, amount_cents, *, kind=PRICE_KIND_STANDARD, rank=None):
        if rank is None:
            rank = len(db_session.query(SaleablePrice).filter_by(product_id=product.id).all()) + 1
        price = SaleablePrice(
            product_id=product.id,
            amount_cents=amount_cents,
            kind=kind,
            order_rank=rank,
            used=False,
        )
        db_session.add(price)
        db_session.commit()
        return price

    return _add


@pytest.fixture
def sent_notifications(app):
    """Capture real-time transport fan-out as (user_id, payload) tuples."""
    captured = []
    transports = app.extensions["backoffice.notification_transports"]
    transport = lambda user_id, payload: captured.append((user_id, payload))  # noqa: E731
    transports.append(transport)
    yield captured
    transports.remove(transport)
