from decimal import Decimal

import pytest

from routes.permissions import (Permission, parse_permissions, has_permission, is_admin,
                                permission_names, ADMIN_PERMISSIONS, ALL_PERMISSIONS)
from routes.validators import (ValidationError, to_int, to_number, validate_sale, validate_product,
                               validate_user, validate_customer)


@pytest.mark.parametrize('raw, expected', [
    (5, 5), ('5', 5), (5.0, 5), ('5.0', 5), (1.5, None), ('abc', None), (True, None), (None, None),
])
def test_to_int(raw, expected):
    assert to_int(raw) == expected


def test_to_number():
    assert to_number('12.50') == Decimal('12.50')
    assert to_number('') is None
    assert to_number('nan') is None


def test_validate_sale_normalises_payload():
    result = validate_sale({
        'items': [{'product_id': '3', 'qty': 2}],
        'paid_amount': '10.5',
        'customer_id': 7,
        'customer_name': '  Walk-in  ',
    })

    assert result['items'] == [{'product_id': 3, 'qty': 2}]
    assert result['paid_amount'] == Decimal('10.5')
    assert result['total_amount'] is None
    assert result['customer_id'] == 7
    assert result['customer_name'] == 'Walk-in'


def test_validate_sale_collects_every_error():
    with pytest.raises(ValidationError) as exc:
        validate_sale({'items': [{'product_id': 0, 'qty': 0}], 'total_amount': -1})

    fields = [e['field'] for e in exc.value.errors]
    assert fields == ['items.product_id', 'items.qty', 'total_amount', 'paid_amount']
    assert exc.value.to_dict()['success'] is False


def test_validate_product_update_ignores_qty():
    fields = validate_product({'name': 'Nail', 'original_price': 1, 'sale_price': 2, 'unit_id': 1, 'qty': 99},
                              partial=True)
    assert 'qty' not in fields

    with pytest.raises(ValidationError):
        validate_product({'name': 'Nail', 'original_price': 1, 'sale_price': 2, 'unit_id': 1, 'qty': 0})


def test_validate_user_and_customer():
    with pytest.raises(ValidationError) as exc:
        validate_user({'username': 'ab', 'full_name': 'X', 'permissions': 'sales', 'password': '1'})
    assert [e['field'] for e in exc.value.errors] == ['username', 'permissions', 'password']

    assert validate_customer({'name': ' Carol ', 'phone': ''}) == {'name': 'Carol', 'phone': None, 'address': None}


def test_parse_permissions_rejects_unknown_names():
    assert parse_permissions(['sales', 'logs']) == {Permission.SALES, Permission.LOGS}
    assert parse_permissions(['sales', 'admin'], strict=False) == {Permission.SALES}
    with pytest.raises(ValueError):
        parse_permissions(['sales', 'admin'])


def test_capability_checks():
    assert has_permission(['products', 'bogus'], Permission.PRODUCTS)
    assert not has_permission(['products'], 'sales')
    assert is_admin(permission_names(ADMIN_PERMISSIONS))
    assert not is_admin(['dashboard'])
    assert permission_names(ALL_PERMISSIONS)[0] == 'dashboard'
    assert permission_names({Permission.LOGS, Permission.SALES}) == ['sales', 'logs']


@pytest.mark.parametrize('price', ['1e30', 10 ** 16, '-0.5'])
def test_validate_product_rejects_prices_outside_money_range(price):
    with pytest.raises(ValidationError) as exc:
        validate_product({'name': 'Nail', 'original_price': 1, 'sale_price': price, 'unit_id': 1, 'qty': 1})
    assert [e['field'] for e in exc.value.errors] == ['sale_price']
