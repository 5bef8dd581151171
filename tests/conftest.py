"""
Shared fixtures: a fresh in-memory SQLite app per test, seeded with the
default units plus the admin and dev accounts.

No application context stays pushed while requests run (Flask-Login keeps
the loaded user on `g`), so DB checks open their own `app.app_context()`.
"""
from decimal import Decimal

import pytest
from passlib.hash import pbkdf2_sha256

from app import create_app, seed_essential_data
from models import db, User, Unit, Product, Customer
from routes.auth import generate_token


def build_app(tmp_path, **overrides):
    config = {
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SECRET_KEY': 'test-secret-key',
        'RATELIMIT_ENABLED': False,
        'CACHE_TYPE': 'SimpleCache',
        'LICENSE_FILE': str(tmp_path / 'EMS-license.txt'),
        'LICENSE_ENFORCED': False,
        'ADMIN_DEFAULT_PASSWORD': '123',
        'DEV_PASSWORD': 'devpass',
    }
    config.update(overrides)
    app = create_app(config)
    with app.app_context():
        db.create_all()
    seed_essential_data(app)
    return app


@pytest.fixture
def app(tmp_path):
    app = build_app(tmp_path)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def auth_headers(app, username):
    with app.app_context():
        user = User.query.filter_by(username=username).first()
        return {'Authorization': f'Bearer {generate_token(user)}'}


@pytest.fixture
def admin_headers(app):
    return auth_headers(app, 'admin')


@pytest.fixture
def dev_headers(app):
    return auth_headers(app, 'dev')


@pytest.fixture
def make_user(app):
    """Create a user directly; returns (user_id, auth headers)."""
    def _make(username, permissions, password='secret1', is_active=True):
        with app.app_context():
            user = User(username=username, full_name=username.title(),
                        password_hash=pbkdf2_sha256.hash(password), is_active=is_active)
            user.permissions = permissions
            db.session.add(user)
            db.session.commit()
            user_id = user.id
        return user_id, auth_headers(app, username)
    return _make


@pytest.fixture
def make_product(app):
    def _make(name='Widget', qty=10, sale_price='5.00', original_price='3.00', unit='pcs'):
        with app.app_context():
            unit_row = Unit.query.filter_by(value=unit).first()
            product = Product(name=name, qty=qty, sale_price=sale_price,
                              original_price=original_price, unit_id=unit_row.id)
            db.session.add(product)
            db.session.commit()
            return product.id
    return _make


@pytest.fixture
def make_customer(app):
    def _make(name='Alice', overpaid='0', underpaid='0'):
        with app.app_context():
            customer = Customer(name=name, overpaid_amount=Decimal(overpaid), underpaid_amount=Decimal(underpaid))
            db.session.add(customer)
            db.session.commit()
            return customer.id
    return _make


@pytest.fixture
def product_qty(app):
    def _qty(product_id):
        with app.app_context():
            return db.session.get(Product, product_id).qty
    return _qty


@pytest.fixture
def balances(app):
    def _balances(customer_id):
        with app.app_context():
            customer = db.session.get(Customer, customer_id)
            return customer.overpaid_amount, customer.underpaid_amount
    return _balances
