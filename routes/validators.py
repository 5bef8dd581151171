"""
Field validators for JSON request bodies.

Each check appends a {'field', 'message'} entry to the Validator instead of
raising immediately, so one response can report every bad field. Call
`raise_if_errors()` once all fields are checked.
"""
from decimal import Decimal, InvalidOperation

CENTS = Decimal('0.01')
# NUMERIC(18,2) holds 16 integer digits
MONEY_LIMIT = Decimal('10') ** 16


class ValidationError(Exception):
    """Raised with a list of field-level messages; rendered as HTTP 400."""

    def __init__(self, errors):
        self.errors = list(errors)
        message = self.errors[0]['message'] if self.errors else 'Validation failed'
        super().__init__(message)

    def to_dict(self):
        return {'success': False, 'error': str(self), 'errors': self.errors}


def _is_bool(value):
    return isinstance(value, bool)


def to_int(value):
    """Return int for integral input (5, 5.0, '5'), else None."""
    if value is None or _is_bool(value):
        return None
    if isinstance(value, int):
        return value
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite() or d != d.to_integral_value():
        return None
    return int(d)


def to_number(value):
    """Return Decimal for numeric input, else None."""
    if value is None or _is_bool(value) or (isinstance(value, str) and not value.strip()):
        return None
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return d if d.is_finite() else None


def _fits_money(value):
    try:
        value.quantize(CENTS)
    except InvalidOperation:
        return False
    return abs(value) < MONEY_LIMIT


class Validator:
    def __init__(self, data):
        self.data = data if isinstance(data, dict) else {}
        self.errors = []

    def error(self, field, message):
        self.errors.append({'field': field, 'message': message})

    def text(self, field, message, min_length=None, length_message=None, optional=False):
        raw = self.data.get(field)
        value = raw.strip() if isinstance(raw, str) else None
        if not value:
            if optional and raw in (None, ''):
                return None
            self.error(field, message)
            return None
        if min_length is not None and len(value) < min_length:
            self.error(field, length_message or message)
            return None
        return value

    def integer(self, field, message, minimum=None, optional=False, source=None):
        data = self.data if source is None else source
        raw = data.get(field) if isinstance(data, dict) else None
        if raw is None and optional:
            return None
        value = to_int(raw)
        if value is None or (minimum is not None and value < minimum):
            self.error(field, message)
            return None
        return value

    def number(self, field, message, minimum=None, optional=False):
        raw = self.data.get(field)
        if (raw is None or raw == '') and optional:
            return None
        value = to_number(raw)
        if value is not None and not _fits_money(value):
            value = None
        if value is None or (minimum is not None and value < minimum):
            self.error(field, message)
            return None
        return value

    def list(self, field, message, min_items=0):
        value = self.data.get(field)
        if not isinstance(value, list) or len(value) < min_items:
            self.error(field, message)
            return None
        return value

    def raise_if_errors(self):
        if self.errors:
            raise ValidationError(self.errors)


def validate_sale(data):
    v = Validator(data)
    items = v.list('items', 'At least one item is required', min_items=1) or []
    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            v.error(f'items[{index}]', 'Each item must be an object')
            continue
        product_id = v.integer('product_id', 'Valid product ID is required', minimum=1, source=item)
        qty = v.integer('qty', 'Quantity must be an integer greater than or equal to 1', minimum=1, source=item)
        if product_id is not None and qty is not None:
            lines.append({'product_id': product_id, 'qty': qty})
    for err in v.errors:
        if err['field'] in ('product_id', 'qty'):
            err['field'] = f"items.{err['field']}"
    total_amount = v.number('total_amount', 'Total amount must be a positive number', minimum=0, optional=True)
    paid_amount = v.number('paid_amount', 'Paid amount must be a positive number', minimum=0)
    customer_id = v.integer('customer_id', 'Valid customer ID is required', minimum=1, optional=True)
    v.raise_if_errors()
    name = data.get('customer_name')
    return {
        'items': lines,
        'total_amount': total_amount,
        'paid_amount': paid_amount,
        'customer_id': customer_id,
        'customer_name': name.strip() if isinstance(name, str) and name.strip() else None,
        'notes': data.get('notes') or None,
    }


def validate_product(data, partial=False):
    """Create requires every field; update (partial=True) never touches qty."""
    v = Validator(data)
    result = {
        'name': v.text('name', 'Product name is required'),
        'original_price': v.number('original_price', 'Original price must be a positive number', minimum=0),
        'sale_price': v.number('sale_price', 'Sale price must be a positive number', minimum=0),
        'unit_id': v.integer('unit_id', 'Valid unit is required', minimum=1),
    }
    if not partial:
        result['qty'] = v.integer('qty', 'Quantity must be an integer greater than or equal to 1', minimum=1)
    v.raise_if_errors()
    description = data.get('description')
    result['description'] = description.strip() if isinstance(description, str) and description.strip() else None
    return result


def validate_add_quantity(data):
    v = Validator(data)
    qty = v.integer('qty', 'Quantity must be an integer greater than or equal to 1', minimum=1)
    v.raise_if_errors()
    notes = data.get('notes')
    return {'qty': qty, 'notes': notes.strip() if isinstance(notes, str) and notes.strip() else None}


def validate_unit(data):
    v = Validator(data)
    value = v.text('value', 'Unit value is required')
    v.raise_if_errors()
    return {'value': value}


def validate_customer(data):
    v = Validator(data)
    name = v.text('name', 'Customer name is required')
    v.raise_if_errors()

    def _opt(key):
        raw = data.get(key)
        return raw.strip() if isinstance(raw, str) and raw.strip() else None

    return {'name': name, 'phone': _opt('phone'), 'address': _opt('address')}


def validate_user(data):
    v = Validator(data)
    username = v.text('username', 'Username is required', min_length=3,
                      length_message='Username must be at least 3 characters')
    full_name = v.text('full_name', 'Full name is required')
    permissions = v.list('permissions', 'Permissions must be an array')
    password = data.get('password')
    if password is not None and (not isinstance(password, str) or len(password) < 3):
        v.error('password', 'Password must be at least 3 characters')
    v.raise_if_errors()
    return {'username': username, 'full_name': full_name, 'permissions': permissions, 'password': password}


def validate_login(data):
    v = Validator(data)
    username = v.text('username', 'Username is required')
    password = data.get('password') if isinstance(data, dict) else None
    if not password:
        v.error('password', 'Password is required')
    v.raise_if_errors()
    return username, password
