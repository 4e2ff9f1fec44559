"""
Pytest fixtures for ShopLedger backend tests.

Provides test database setup, catalog/party/account fixtures, and test client.
"""

import pytest

from shopledger import create_app
from shopledger.extensions import db
from shopledger.models import Account, Customer, Product, Supplier
from shopledger.services import invoice_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ALLOW_NEGATIVE_STOCK': False,
        'RETRY_BACKOFF_BASE': 0,
        'INVOICE_NUMBER_START': 5001,
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


def _product(db_session, name, *, stock=10, price_cents=1500, cost_cents=900, barcode=None):
    product = Product(
        name=name,
        barcode=barcode,
        price_cents=price_cents,
        cost_cents=cost_cents,
        stock_quantity=stock,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product(db_session):
    """Product P: 10 in stock, sells at 15.00, costs 9.00."""
    return _product(db_session, "Product P", barcode="P-0001")


@pytest.fixture(scope='function')
def product_b(db_session):
    return _product(db_session, "Product B", price_cents=2500, cost_cents=1000)


@pytest.fixture(scope='function')
def product_c(db_session):
    return _product(db_session, "Product C", price_cents=700, cost_cents=300)


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Walk-in Customer", phone="555-0100")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Wholesale Supplier", email="orders@supplier.test")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def account(db_session):
    """Account A: general account starting at balance 0."""
    account = Account(name="Cash Drawer", type="GENERAL", balance_cents=0)
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture(scope='function')
def customer_account(db_session, customer):
    account = Account(name="Customer Receivable", type="RECEIVABLE", balance_cents=0, customer_id=customer.id)
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture(scope='function')
def supplier_account(db_session, supplier):
    account = Account(name="Supplier Payable", type="PAYABLE", balance_cents=0, supplier_id=supplier.id)
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture(scope='function')
def finalized_invoice(db_session, product, customer):
    """Invoice for 3 x Product P at 15.00; Product P stock goes 10 -> 7."""
    return invoice_service.create_invoice(
        {
            "customer_id": customer.id,
            "status": "FINALIZED",
            "items": [{"product_id": product.id, "quantity": 3}],
        },
        acting_user_id=1,
    )

