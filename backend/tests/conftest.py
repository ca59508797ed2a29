"""
Pytest fixtures for POS ledger backend tests.

Provides an in-memory database, per-test table wipe, factories for users,
products and customers, and auth helpers for the test client.
"""

import pytest

from posledger import create_app
from posledger.config import Config
from posledger.extensions import db
from posledger.services import auth_service, customer_service, inventory_service, loyalty_service
from posledger.services.sales_service import CheckoutInput, SaleLineInput, process_sale


PASSWORD = "Password123!"


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    BCRYPT_ROUNDS = 4
    TAX_RATE_BPS = 0
    OVERTIME_THRESHOLD_HOURS = 160
    OVERTIME_MULTIPLIER_BPS = 15000
    LOW_STOCK_THRESHOLD = 10
    LOG_LEVEL = "WARNING"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh data for each test (schema kept)."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_user(db_session):
    def _make(username: str, role: str = "cashier", password: str = PASSWORD):
        return auth_service.create_user(
            username=username,
            email=f"{username}@pos.local",
            password=password,
            name=username.title(),
            role=role,
        )
    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin", role="admin")


@pytest.fixture
def manager(make_user):
    return make_user("manager", role="manager")


@pytest.fixture
def cashier(make_user):
    return make_user("cashier", role="cashier")


@pytest.fixture
def make_product(db_session):
    counter = {"n": 0}

    def _make(stock=10, buying=3000, selling=5000, **extra):
        counter["n"] += 1
        payload = {
            "sku": extra.pop("sku", f"SKU-{counter['n']:03d}"),
            "name": extra.pop("name", f"Product {counter['n']}"),
            "buying_price_cents": buying,
            "selling_price_cents": selling,
            "stock_quantity": stock,
        }
        payload.update(extra)
        return inventory_service.create_product(payload)
    return _make


@pytest.fixture
def program(db_session):
    return loyalty_service.create_program({
        "name": "Standard",
        "earn_rate_bps": 10000,
        "signup_bonus": 0,
        "min_redemption_threshold": 100,
    })


@pytest.fixture
def customer(db_session, program):
    return customer_service.create_customer({
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "loyalty_program_id": program.id,
    })


@pytest.fixture
def sell(db_session):
    """Post a single-line cash sale paid exactly."""
    def _sell(product, quantity, actor, unit_price=None, customer=None, **checkout_extra):
        price = product.selling_price_cents if unit_price is None else unit_price
        checkout = CheckoutInput(
            items=[SaleLineInput(product_id=product.id, quantity=quantity, unit_price_cents=price)],
            payment_method=checkout_extra.pop("payment_method", "cash"),
            amount_paid_cents=checkout_extra.pop("amount_paid_cents", price * quantity),
            customer_id=customer.id if customer else None,
            **checkout_extra,
        )
        return process_sale(checkout, actor_user_id=actor.id)
    return _sell


# =============================================================================
# AUTH HELPERS
# =============================================================================

def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.username))


@pytest.fixture
def manager_headers(client, manager):
    return auth_headers(get_auth_token(client, manager.username))


@pytest.fixture
def cashier_headers(client, cashier):
    return auth_headers(get_auth_token(client, cashier.username))
