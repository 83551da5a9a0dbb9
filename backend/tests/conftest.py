"""
Pytest fixtures for backoffice tests.

Provides the application on an in-memory database, a per-test table wipe,
and a small tenant: warehouse, van with driver, customer, product and raw
material.
"""

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.services import catalog_service, inventory_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CONCURRENCY_RETRY_BACKOFF': 0,
    })

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
    """Fresh data for each test; the schema is kept."""
    db.session.remove()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture
def company(db_session):
    return catalog_service.create_company(name="Acme Bakery", code="ACME")


@pytest.fixture
def other_company(db_session):
    return catalog_service.create_company(name="Beta Foods", code="BETA")


@pytest.fixture
def warehouse(company):
    return catalog_service.create_location(company_id=company.id, payload={"name": "Main Warehouse"})


@pytest.fixture
def driver(company):
    return catalog_service.create_employee(company_id=company.id, payload={"name": "Dana Driver"})


@pytest.fixture
def van(company, driver):
    return catalog_service.create_location(
        company_id=company.id,
        payload={"name": "Van 1", "kind": "VAN", "driver_id": driver.id, "max_cash_cents": 50000},
    )


@pytest.fixture
def customer(company):
    return catalog_service.create_customer(company_id=company.id, payload={"name": "Corner Shop"})


@pytest.fixture
def product(company):
    return catalog_service.create_item(
        company_id=company.id,
        payload={"sku": "BREAD-1", "name": "White Bread", "price_cents": 1000, "standard_cost_cents": 400},
    )


@pytest.fixture
def raw_material(company):
    return catalog_service.create_item(
        company_id=company.id,
        payload={"sku": "FLOUR-1", "name": "Flour", "kind": "RAW_MATERIAL", "standard_cost_cents": 150},
    )


@pytest.fixture
def receive(company):
    """Opening stock at a cost: a receipt with a cost lot and weighted-average update."""
    def _receive(item, location, quantity, unit_cost_cents):
        return inventory_service.record_opening_stock(
            company_id=company.id,
            item_id=item.id,
            location_id=location.id,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
        )

    return _receive


@pytest.fixture
def headers(company):
    """Gateway headers for the default tenant."""
    return {'X-Company-Id': str(company.id), 'X-User-Id': '7'}
