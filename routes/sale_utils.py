"""
Sale posting and reversal.

Both functions only stage changes on the current session; the caller owns
the commit/rollback and the audit row.
"""
from models import db, Product, Customer, Sale, SaleItem
from decimal import Decimal, ROUND_HALF_UP, getcontext
from collections import OrderedDict
import logging

getcontext().prec = 28

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
CENTS = Decimal('0.01')
DEFAULT_CUSTOMER_NAME = 'Normal Customer'


class SaleError(Exception):
    status_code = 400


class ProductNotFound(SaleError):
    status_code = 404

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f'Product with ID {product_id} not found')


class CustomerNotFound(SaleError):
    status_code = 404

    def __init__(self, customer_id):
        self.customer_id = customer_id
        super().__init__(f'Customer with ID {customer_id} not found')


class OutOfStockError(SaleError):
    def __init__(self, items):
        self.items = items
        super().__init__('Some items are out of stock')


def _money(value):
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def _plain(value):
    """Decimal quantity -> int when whole, else float (for JSON)."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def payment_status(total_amount, paid_amount):
    total = _money(total_amount)
    paid = _money(paid_amount)
    if paid == total:
        return 'paid'
    if paid > total:
        return 'overpaid'
    return 'underpaid'


def apply_balance(overpaid, underpaid, status, total_amount, paid_amount):
    """
    Fold one sale into a customer's running balance.

    A surplus first cancels existing debt and the rest becomes credit; a
    deficit first consumes existing credit and the rest becomes debt.
    Returns (overpaid, underpaid), both >= 0.
    """
    over = _money(overpaid)
    under = _money(underpaid)
    total = _money(total_amount)
    paid = _money(paid_amount)

    if status == 'overpaid':
        diff = paid - total
        reduction = min(under, diff)
        under -= reduction
        over += diff - reduction
    elif status == 'underpaid':
        diff = total - paid
        reduction = min(over, diff)
        over -= reduction
        under += diff - reduction

    return max(over, ZERO), max(under, ZERO)


def reverse_balance(overpaid, underpaid, status, total_amount, paid_amount):
    """
    Undo apply_balance for a deleted sale.

    Exact only when no other sale touched the customer in between; a surplus
    that was already spent against later debt shows up as new debt instead.
    """
    over = _money(overpaid)
    under = _money(underpaid)
    total = _money(total_amount)
    paid = _money(paid_amount)

    if status == 'overpaid':
        diff = paid - total
        if over >= diff:
            over -= diff
        else:
            under += diff - over
            over = ZERO
    elif status == 'underpaid':
        diff = total - paid
        if under >= diff:
            under -= diff
        else:
            over += diff - under
            under = ZERO

    return max(over, ZERO), max(under, ZERO)


def create_sale(payload):
    """
    Stage a sale from a validated payload (see validators.validate_sale).

    Raises ProductNotFound / CustomerNotFound / OutOfStockError before any
    row is written. Returns the flushed Sale.
    """
    lines = payload['items']

    requested = OrderedDict()
    for line in lines:
        requested[line['product_id']] = requested.get(line['product_id'], 0) + line['qty']

    customer = None
    if payload.get('customer_id') is not None:
        customer = db.session.get(Customer, payload['customer_id'], with_for_update=True)
        if customer is None:
            raise CustomerNotFound(payload['customer_id'])

    products = {}
    out_of_stock = []
    for product_id, qty in requested.items():
        product = db.session.get(Product, product_id, with_for_update=True)
        if product is None:
            raise ProductNotFound(product_id)
        products[product_id] = product
        if product.qty < Decimal(qty):
            out_of_stock.append({
                'product_id': product.id,
                'product_name': product.name,
                'available_qty': _plain(product.qty),
                'requested_qty': qty,
            })

    if out_of_stock:
        raise OutOfStockError(out_of_stock)

    computed_total = sum(
        (_money(products[line['product_id']].sale_price) * Decimal(line['qty']) for line in lines),
        ZERO,
    )
    total = _money(payload['total_amount']) if payload.get('total_amount') is not None else _money(computed_total)
    paid = _money(payload['paid_amount'])
    status = payment_status(total, paid)

    customer_name = payload.get('customer_name') or (customer.name if customer else DEFAULT_CUSTOMER_NAME)

    sale = Sale(
        customer_id=customer.id if customer else None,
        customer_name=customer_name,
        total_amount=total,
        paid_amount=paid,
        payment_status=status,
        notes=payload.get('notes'),
    )
    db.session.add(sale)

    for line in lines:
        product = products[line['product_id']]
        qty = Decimal(line['qty'])
        unit_price = _money(product.sale_price)
        sale.items.append(SaleItem(
            product_id=product.id,
            product_name=product.name,
            qty=qty,
            unit_price=unit_price,
            subtotal=_money(unit_price * qty),
        ))
        product.qty = product.qty - qty

    if customer is not None:
        customer.overpaid_amount, customer.underpaid_amount = apply_balance(
            customer.overpaid_amount, customer.underpaid_amount, status, total, paid)

    db.session.flush()
    logger.info("Sale %s staged: total=%s paid=%s status=%s", sale.id, total, paid, status)
    return sale


def delete_sale(sale):
    """Return stock, reverse the customer balance and stage deletion of `sale`."""
    for item in sale.items:
        product = db.session.get(Product, item.product_id, with_for_update=True)
        if product is None:
            logger.warning("Sale %s item %s references missing product %s", sale.id, item.id, item.product_id)
            continue
        product.qty = product.qty + item.qty

    if sale.customer_id is not None:
        customer = db.session.get(Customer, sale.customer_id, with_for_update=True)
        if customer is not None:
            customer.overpaid_amount, customer.underpaid_amount = reverse_balance(
                customer.overpaid_amount, customer.underpaid_amount,
                sale.payment_status, sale.total_amount, sale.paid_amount)

    db.session.delete(sale)
    db.session.flush()
