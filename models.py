from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime
import json
import sqlite3
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import validates
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from sqlalchemy.types import TypeDecorator, Numeric as SA_Numeric
import logging


db = SQLAlchemy()

getcontext().prec = 28

logger = logging.getLogger(__name__)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """Enforce ON DELETE rules on every SQLite connection."""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class Money(TypeDecorator):
    """
    SQLAlchemy TypeDecorator to store Decimal values in a NUMERIC/DECIMAL column.
    - Python value: decimal.Decimal (quantized to 2 decimal places, ROUND_HALF_UP)
    - DB value: Decimal stored in NUMERIC(18,2)
    """
    impl = SA_Numeric(precision=18, scale=2)
    cache_ok = True
    places = Decimal('0.01')

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            try:
                # Use str() to avoid binary-float surprises
                value = Decimal(str(value))
            except InvalidOperation:
                raise ValueError(f"Cannot convert {value!r} to Decimal")
        return value.quantize(self.places, rounding=ROUND_HALF_UP)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return value.quantize(self.places, rounding=ROUND_HALF_UP)

    @property
    def python_type(self):
        return Decimal


class Quantity(Money):
    """Stock quantities: NUMERIC(18,3) so fractional units (kg, L) survive."""
    impl = SA_Numeric(precision=18, scale=3)
    cache_ok = True
    places = Decimal('0.001')


def _num(value):
    """Decimal/None -> float/None for JSON payloads."""
    if value is None:
        return None
    return float(value)


def _ts(value):
    return value.isoformat(sep=' ', timespec='seconds') if value else None


def _coerce_non_negative(key, value, places):
    """Coerce numeric-like input to a non-negative Decimal; raise ValueError otherwise."""
    if value is None or (isinstance(value, str) and value.strip() == ''):
        return Decimal('0').quantize(places)
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value).strip().replace(',', ''))
    except InvalidOperation:
        raise ValueError(f'{key} must be a numeric value (got {value!r})')
    if d < 0:
        raise ValueError(f'{key} cannot be negative')
    return d.quantize(places, rounding=ROUND_HALF_UP)


class Unit(db.Model):
    __tablename__ = 'units'

    id = db.Column(db.Integer, primary_key=True)
    value = db.Column(db.String(50), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'value': self.value,
            'created_at': _ts(self.created_at),
            'updated_at': _ts(self.updated_at),
        }


class Product(db.Model):
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), unique=True, nullable=False)
    description = db.Column(db.Text)
    qty = db.Column(Quantity(), nullable=False, default=Decimal('0'))
    original_price = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    sale_price = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    unit_id = db.Column(db.Integer, db.ForeignKey('units.id', ondelete='RESTRICT'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    unit = db.relationship('Unit', backref='products')
    purchase_history = db.relationship('PurchaseHistory', back_populates='product',
                                       cascade='all, delete-orphan', passive_deletes=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'qty': _num(self.qty),
            'original_price': _num(self.original_price),
            'sale_price': _num(self.sale_price),
            'unit_id': self.unit_id,
            'unit_value': self.unit.value if self.unit else None,
            'created_at': _ts(self.created_at),
            'updated_at': _ts(self.updated_at),
        }

    @validates('original_price', 'sale_price')
    def validate_prices(self, key, value):
        return _coerce_non_negative(key, value, Money.places)

    @validates('qty')
    def validate_qty(self, key, value):
        """Stock can never go below zero; a sale that would do so is a bug upstream."""
        if value is None:
            raise ValueError('Quantity cannot be None')
        return _coerce_non_negative(key, value, Quantity.places)

    __table_args__ = (
        db.Index('idx_products_qty', 'qty'),
        db.Index('idx_products_unit_id', 'unit_id'),
    )


class PurchaseHistory(db.Model):
    """Append-only record of stock additions."""
    __tablename__ = 'purchase_history'

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    product_name = db.Column(db.String(200), nullable=False)
    qty = db.Column(Quantity(), nullable=False)
    price = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    total_amount = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    purchase_date = db.Column(db.DateTime, default=datetime.utcnow)
    notes = db.Column(db.Text)

    product = db.relationship('Product', back_populates='purchase_history')

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_name': self.product_name,
            'qty': _num(self.qty),
            'price': _num(self.price),
            'total_amount': _num(self.total_amount),
            'purchase_date': _ts(self.purchase_date),
            'notes': self.notes,
        }

    __table_args__ = (
        db.Index('idx_purchase_history_product_id', 'product_id'),
        db.Index('idx_purchase_history_date', 'purchase_date'),
    )


class Customer(db.Model):
    __tablename__ = 'customers'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), unique=True, nullable=False)
    phone = db.Column(db.String(50))
    address = db.Column(db.String(300))
    overpaid_amount = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    underpaid_amount = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    sales = db.relationship('Sale', back_populates='customer')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'phone': self.phone,
            'address': self.address,
            'overpaid_amount': _num(self.overpaid_amount),
            'underpaid_amount': _num(self.underpaid_amount),
            'created_at': _ts(self.created_at),
            'updated_at': _ts(self.updated_at),
        }

    __table_args__ = (
        db.Index('idx_customers_overpaid', 'overpaid_amount'),
        db.Index('idx_customers_underpaid', 'underpaid_amount'),
    )


class Sale(db.Model):
    __tablename__ = 'sales'

    PAYMENT_STATUSES = ('paid', 'overpaid', 'underpaid')

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id', ondelete='SET NULL'), nullable=True)
    customer_name = db.Column(db.String(200), nullable=False, default='Normal Customer')
    total_amount = db.Column(Money(), nullable=False)
    paid_amount = db.Column(Money(), nullable=False)
    payment_status = db.Column(db.String(20), nullable=False, default='paid')
    sale_date = db.Column(db.DateTime, default=datetime.utcnow)
    notes = db.Column(db.Text)

    customer = db.relationship('Customer', back_populates='sales')
    items = db.relationship('SaleItem', back_populates='sale', cascade='all, delete-orphan',
                            order_by='SaleItem.id')

    @validates('payment_status')
    def validate_payment_status(self, key, value):
        if value not in self.PAYMENT_STATUSES:
            raise ValueError(f'Invalid payment status: {value!r}')
        return value

    def to_dict(self, include_items=True):
        data = {
            'id': self.id,
            'customer_id': self.customer_id,
            'customer_name': self.customer_name,
            'total_amount': _num(self.total_amount),
            'paid_amount': _num(self.paid_amount),
            'payment_status': self.payment_status,
            'sale_date': _ts(self.sale_date),
            'notes': self.notes,
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data

    __table_args__ = (
        db.CheckConstraint("payment_status IN ('paid', 'overpaid', 'underpaid')", name='ck_sales_payment_status'),
        db.Index('idx_sales_customer_id', 'customer_id'),
        db.Index('idx_sales_date', 'sale_date'),
        db.Index('idx_sales_payment_status', 'payment_status'),
    )


class SaleItem(db.Model):
    __tablename__ = 'sale_items'

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey('sales.id', ondelete='CASCADE'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False)
    product_name = db.Column(db.String(200), nullable=False)
    qty = db.Column(Quantity(), nullable=False)
    unit_price = db.Column(Money(), nullable=False)
    subtotal = db.Column(Money(), nullable=False)

    sale = db.relationship('Sale', back_populates='items')
    product = db.relationship('Product')

    def to_dict(self):
        return {
            'id': self.id,
            'sale_id': self.sale_id,
            'product_id': self.product_id,
            'product_name': self.product_name,
            'qty': _num(self.qty),
            'unit_price': _num(self.unit_price),
            'subtotal': _num(self.subtotal),
        }

    __table_args__ = (
        db.Index('idx_sale_items_sale_id', 'sale_id'),
        db.Index('idx_sale_items_product_id', 'product_id'),
    )


class User(db.Model, UserMixin):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)
    full_name = db.Column(db.String(200), nullable=False)
    permissions_json = db.Column('permissions', db.Text, nullable=False,
                                 default='["products", "sales", "customers", "settings.units"]')
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = db.Column(db.DateTime)

    @property
    def permissions(self):
        """Stored permission names as a list; bad JSON reads as no permissions."""
        try:
            value = json.loads(self.permissions_json or '[]')
        except (TypeError, ValueError):
            logger.warning("User %s has unreadable permissions JSON", self.id)
            return []
        return value if isinstance(value, list) else []

    @permissions.setter
    def permissions(self, values):
        self.permissions_json = json.dumps(list(values))

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'full_name': self.full_name,
            'permissions': self.permissions,
            'is_active': bool(self.is_active),
            'created_at': _ts(self.created_at),
            'updated_at': _ts(self.updated_at),
            'last_login': _ts(self.last_login),
        }


class ActivityLog(db.Model):
    __tablename__ = 'activity_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    username = db.Column(db.String(100), nullable=False)
    action = db.Column(db.String(50), nullable=False)
    table_name = db.Column(db.String(100), nullable=False)
    record_id = db.Column(db.Integer)
    old_data = db.Column(db.Text)
    new_data = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default='success')
    error_message = db.Column(db.Text)
    ip_address = db.Column(db.String(45))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @staticmethod
    def _decode(raw):
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return raw

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'username': self.username,
            'action': self.action,
            'table_name': self.table_name,
            'record_id': self.record_id,
            'old_data': self._decode(self.old_data),
            'new_data': self._decode(self.new_data),
            'status': self.status,
            'error_message': self.error_message,
            'ip_address': self.ip_address,
            'created_at': _ts(self.created_at),
        }

    def __repr__(self):
        return f'<ActivityLog {self.created_at} - {self.username}: {self.action} {self.table_name}>'

    __table_args__ = (
        db.Index('idx_logs_user_id', 'user_id'),
        db.Index('idx_logs_username', 'username'),
        db.Index('idx_logs_table_name', 'table_name'),
        db.Index('idx_logs_created_at', 'created_at'),
    )


class SystemConfig(db.Model):
    __tablename__ = 'system_config'

    id = db.Column(db.Integer, primary_key=True)
    config_key = db.Column(db.String(100), unique=True, nullable=False)
    config_value = db.Column(db.Text, nullable=False)
    config_type = db.Column(db.String(20), nullable=False, default='json')
    updated_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
