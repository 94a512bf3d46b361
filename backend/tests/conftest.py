"""
Pytest fixtures for stockledger backend tests.

Provides the test app on an in-memory database, a fresh schema per test,
stores, products, users of every role and their actor contexts.
"""

import pytest

from stockledger import create_app
from stockledger.config import TestConfig
from stockledger.extensions import db
from stockledger.models import Store, TireProduct, BaleProduct
from stockledger.models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER
from stockledger.services import auth_service, inventory_service
from stockledger.services.session_service import actor_for
from stockledger.services.unit_of_work import UnitOfWork


PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Minimum bcrypt cost so user fixtures stay fast."""
    monkeypatch.setattr(auth_service, "BCRYPT_ROUNDS", 4)


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema; Core deletes bypass the ledger guards
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def uow(db_session):
    return UnitOfWork(db_session)


@pytest.fixture(scope='function')
def main_store(db_session):
    store = Store(name="Main Street", location="Harare CBD", is_main_store=True)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def branch_store(db_session):
    store = Store(name="Airport Road", location="Harare South")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def tire(db_session):
    product = TireProduct(
        name="Bridgestone 205/55R16",
        base_price_cents=12000,
        grade="A",
        tire_category="NEW",
        tire_usage="REGULAR",
        tire_size="205/55R16",
        load_index="91",
        speed_rating="V",
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def bale(db_session):
    product = BaleProduct(
        name="Mixed Summer Bale",
        base_price_cents=50000,
        grade="B",
        bale_weight_kg=45.0,
        bale_category="Summer",
        origin_country="UK",
    )
    db_session.add(product)
    db_session.commit()
    return product


def make_user(db_session, email, role, store_id=None):
    return auth_service.create_user(
        UnitOfWork(db_session),
        email=email,
        password=PASSWORD,
        role=role,
        store_id=store_id,
        first_name=role.title(),
        last_name="User",
    )


@pytest.fixture(scope='function')
def admin(db_session):
    return make_user(db_session, "admin@stockledger.test", ROLE_ADMIN)


@pytest.fixture(scope='function')
def manager(db_session, main_store):
    return make_user(db_session, "manager@stockledger.test", ROLE_MANAGER, main_store.id)


@pytest.fixture(scope='function')
def cashier(db_session, main_store):
    return make_user(db_session, "cashier@stockledger.test", ROLE_CASHIER, main_store.id)


@pytest.fixture(scope='function')
def branch_cashier(db_session, branch_store):
    return make_user(db_session, "branch.cashier@stockledger.test", ROLE_CASHIER, branch_store.id)


@pytest.fixture(scope='function')
def admin_actor(admin):
    return actor_for(admin)


@pytest.fixture(scope='function')
def manager_actor(manager):
    return actor_for(manager)


@pytest.fixture(scope='function')
def cashier_actor(cashier):
    return actor_for(cashier)


@pytest.fixture(scope='function')
def branch_cashier_actor(branch_cashier):
    return actor_for(branch_cashier)


@pytest.fixture(scope='function')
def tire_stock(uow, tire, main_store, admin):
    """10 tires in the main store, booked as an initial PURCHASE."""
    return inventory_service.allocate_inventory(
        uow,
        product_id=tire.id,
        store_id=main_store.id,
        actor_id=admin.id,
        initial_quantity=10,
    )


@pytest.fixture(scope='function')
def bale_stock(uow, bale, main_store, admin):
    """3 bales in the main store with a store price override."""
    return inventory_service.allocate_inventory(
        uow,
        product_id=bale.id,
        store_id=main_store.id,
        actor_id=admin.id,
        initial_quantity=3,
        reorder_level=2,
        optimal_level=6,
        store_price_cents=45000,
    )


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
