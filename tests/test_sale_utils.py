from decimal import Decimal
from itertools import product

import pytest

from routes.sale_utils import payment_status, apply_balance, reverse_balance

D = Decimal


@pytest.mark.parametrize('total, paid, expected', [
    ('10.00', '10', 'paid'),
    ('10.00', '10.01', 'overpaid'),
    ('10.00', '9.99', 'underpaid'),
    ('0', '0', 'paid'),
])
def test_payment_status(total, paid, expected):
    assert payment_status(D(total), D(paid)) == expected


def test_surplus_cancels_debt_before_becoming_credit():
    assert apply_balance(D('0'), D('20'), 'overpaid', D('100'), D('130')) == (D('10.00'), D('0.00'))
    assert apply_balance(D('5'), D('50'), 'overpaid', D('100'), D('130')) == (D('5.00'), D('20.00'))


def test_deficit_consumes_credit_before_becoming_debt():
    assert apply_balance(D('15'), D('0'), 'underpaid', D('50'), D('10')) == (D('0.00'), D('25.00'))
    assert apply_balance(D('60'), D('0'), 'underpaid', D('50'), D('10')) == (D('20.00'), D('0.00'))


def test_paid_sale_leaves_balances_alone():
    assert apply_balance(D('3'), D('0'), 'paid', D('10'), D('10')) == (D('3.00'), D('0.00'))


def test_reverse_spills_missing_credit_into_debt():
    assert reverse_balance(D('10'), D('0'), 'overpaid', D('100'), D('130')) == (D('0.00'), D('20.00'))
    assert reverse_balance(D('0'), D('25'), 'underpaid', D('50'), D('10')) == (D('15.00'), D('0.00'))


def test_balances_stay_non_negative_and_exclusive():
    amounts = [D('0'), D('7.5'), D('40')]
    sales = [(D('30'), D('0')), (D('30'), D('45')), (D('30'), D('30'))]
    for over, under, (total, paid) in product(amounts, amounts, sales):
        if over and under:
            continue
        status = payment_status(total, paid)
        new_over, new_under = apply_balance(over, under, status, total, paid)
        assert new_over >= 0 and new_under >= 0
        assert not (new_over > 0 and new_under > 0)
        # with nothing in between, reversal restores the starting point
        assert reverse_balance(new_over, new_under, status, total, paid) == (over, under)
