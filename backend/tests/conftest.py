"""
Pytest fixtures for the sale / inventory core.

Provides an app bound to an in-memory SQLite database, a per-test table wipe,
users for each role, and factories for products, serialized units and
registers.
"""

import pytest

from serialpos import create_app
from serialpos.extensions import db
from serialpos.models import Customer, Product, SerializedUnit, User
from serialpos.services import register_service, session_service
from serialpos.services.serial_service import luhn_check_digit
from serialpos.services.session_service import AuthContext


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RESERVATION_SWEEP_ENABLED': False,
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


def _user(db_session, username, role):
    user = User(username=username, name=username.title(), role=role, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _user(db_session, "admin", "admin")


@pytest.fixture(scope='function')
def manager_user(db_session):
    return _user(db_session, "manager", "manager")


@pytest.fixture(scope='function')
def employee_user(db_session):
    return _user(db_session, "employee", "employee")


@pytest.fixture(scope='function')
def admin(admin_user):
    return AuthContext.from_user(admin_user)


@pytest.fixture(scope='function')
def manager(manager_user):
    return AuthContext.from_user(manager_user)


@pytest.fixture(scope='function')
def employee(employee_user):
    return AuthContext.from_user(employee_user)


def make_imei(n: int) -> str:
    """Deterministic IMEI with a valid check digit."""
    body = f"35{n:012d}"
    return body + str(luhn_check_digit(body))


@pytest.fixture(scope='function')
def make_product(db_session):
    def _make(name="Charger", price_cents=1500, stock=0, serial_type=None, is_active=True):
        tracked = serial_type is not None
        product = Product(
            name=name,
            sale_price_cents=price_cents,
            purchase_price_cents=price_cents // 2,
            stock=stock,
            has_imei_serial=tracked,
            imei_serial_type=serial_type,
            requires_imei_serial=tracked,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_units(db_session):
    counter = {"n": 0}

    def _make(product, count=1):
        units = []
        for _ in range(count):
            counter["n"] += 1
            unit = SerializedUnit(
                product_id=product.id,
                imei_number=make_imei(counter["n"]),
                status="AVAILABLE",
            )
            db_session.add(unit)
            units.append(unit)
        db_session.commit()
        return units
    return _make


@pytest.fixture(scope='function')
def customer(db_session):
    c = Customer(name="Laura Gomez", phone="555-0101")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def open_register():
    def _open(user, opening_amount_cents=100000):
        return register_service.open_register(user.id, opening_amount_cents)
    return _open


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def headers_for(db_session):
    def _headers(user):
        return auth_headers(session_service.create_session(user.id))
    return _headers


@pytest.fixture(scope='function')
def admin_headers(headers_for, admin_user):
    return headers_for(admin_user)


@pytest.fixture(scope='function')
def manager_headers(headers_for, manager_user):
    return headers_for(manager_user)


@pytest.fixture(scope='function')
def employee_headers(headers_for, employee_user):
    return headers_for(employee_user)
