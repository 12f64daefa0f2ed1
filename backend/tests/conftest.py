"""
Pytest fixtures for RetailHub backend tests.

Every test gets a fresh in-memory database, a default store with one user
per role, bearer headers for those users, two stocked products and a
customer.
"""

import pytest

from retailhub import create_app
from retailhub.extensions import db
from retailhub.models import Customer, Product, Store
from retailhub.services import inventory_service, license_service, sales_service, session_service
from retailhub.services.auth_service import create_user


DEFAULT_PASSWORD = "Password123!"


@pytest.fixture()
def app():
    """Create application for testing."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "BCRYPT_ROUNDS": 4,
        "TAX_RATE_BPS": 1000,
        "LICENSE_MAX_ACTIVATIONS_DEFAULT": 1,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    """Create test client."""
    return app.test_client()


# =============================================================================
# STORES AND USERS
# =============================================================================


@pytest.fixture()
def store(app):
    store = Store(name="Main Store", code="MAIN")
    db.session.add(store)
    db.session.commit()
    return store


@pytest.fixture()
def other_store(app):
    store = Store(name="Second Store", code="SECOND")
    db.session.add(store)
    db.session.commit()
    return store


@pytest.fixture()
def admin(store):
    return create_user("admin", "admin@retailhub.local", DEFAULT_PASSWORD, role="admin", store_id=store.id)


@pytest.fixture()
def manager(store):
    return create_user("manager", "manager@retailhub.local", DEFAULT_PASSWORD, role="manager", store_id=store.id)


@pytest.fixture()
def cashier(store):
    return create_user("cashier", "cashier@retailhub.local", DEFAULT_PASSWORD, role="cashier", store_id=store.id)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {"Authorization": f"Bearer {token}"}


def _headers_for(user) -> dict:
    _, token = session_service.create_session(user_id=user.id)
    return auth_headers(token)


@pytest.fixture()
def admin_headers(admin):
    return _headers_for(admin)


@pytest.fixture()
def manager_headers(manager):
    return _headers_for(manager)


@pytest.fixture()
def cashier_headers(cashier):
    return _headers_for(cashier)


# =============================================================================
# CATALOG, STOCK AND SALES
# =============================================================================


@pytest.fixture()
def product_a(app):
    product = Product(sku="SKU-A", name="Canvas Tote", price_cents=1000)
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture()
def product_b(app):
    product = Product(sku="SKU-B", name="Desk Lamp", price_cents=2500)
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture()
def stocked(store, product_a, product_b):
    """20 units of each product on hand in the main store."""
    for product in (product_a, product_b):
        inventory_service.receive_stock(store_id=store.id, product_id=product.id, quantity=20)
    return store


@pytest.fixture()
def customer(store):
    customer = Customer(store_id=store.id, name="Dana Buyer", email="dana@example.com")
    db.session.add(customer)
    db.session.commit()
    return customer


@pytest.fixture()
def sale(stocked, cashier, customer, product_a, product_b):
    """5 x Canvas Tote @ 10.00 and 2 x Desk Lamp @ 25.00, paid in full."""
    return sales_service.record_sale(
        store_id=stocked.id,
        user_id=cashier.id,
        customer_id=customer.id,
        items=[
            {"product_id": product_a.id, "quantity": 5, "unit_price_cents": 1000},
            {"product_id": product_b.id, "quantity": 2, "unit_price_cents": 2500},
        ],
    )


@pytest.fixture()
def sale_items(sale, product_a, product_b):
    """Sale items of the `sale` fixture keyed by product sku."""
    by_product = {item.product_id: item for item in sale.items}
    return {"SKU-A": by_product[product_a.id], "SKU-B": by_product[product_b.id]}


# =============================================================================
# LICENSES
# =============================================================================


@pytest.fixture()
def make_license(app):
    """Factory: issue a license with test defaults, overridable per call."""
    def _make(**overrides):
        fields = {
            "license_type": "yearly",
            "client_name": "Acme Corner Shop",
            "client_email": "owner@acme.example",
        }
        fields.update(overrides)
        return license_service.create_license(**fields)

    return _make
