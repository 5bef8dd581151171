"""
Dashboard aggregates.

Grouping by period uses SQLite's strftime(); the store is SQLite only.
"""
from flask import Blueprint, request, current_app
from flask_login import login_required
from sqlalchemy import func
import logging

from models import db, Sale, SaleItem, PurchaseHistory, Customer, Product, Unit
from .decorators import permission_required
from .permissions import Permission
from .utils import success, failure, date_range_filters, arg_int, to_decimal

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/api/dashboard')

logger = logging.getLogger(__name__)

PERIOD_FORMATS = {
    'day': '%Y-%m-%d',
    'month': '%Y-%m',
    'year': '%Y',
}


def _range(column):
    return date_range_filters(column, request.args.get('start_date'), request.args.get('end_date'))


def _period_format():
    return PERIOD_FORMATS.get(request.args.get('group_by', 'day'), PERIOD_FORMATS['day'])


def _sum(column, *conditions):
    value = db.session.query(func.coalesce(func.sum(column), 0)).filter(*conditions).scalar()
    return to_decimal(value)


@dashboard_bp.route('/stats', methods=['GET'])
@login_required
@permission_required(Permission.DASHBOARD)
def stats():
    try:
        revenue = _sum(Sale.total_amount, *_range(Sale.sale_date))
        cost = _sum(PurchaseHistory.total_amount, *_range(PurchaseHistory.purchase_date))
        overpaid = _sum(Customer.overpaid_amount)
        underpaid = _sum(Customer.underpaid_amount)
        data = {
            'total_revenue': float(revenue),
            'total_cost': float(cost),
            'profit': float(revenue - cost),
            'total_customers': Customer.query.count(),
            'total_products': Product.query.count(),
            'total_overpaid': float(overpaid),
            'total_underpaid': float(underpaid),
            'net_balance': float(overpaid - underpaid),
        }
    except Exception as e:
        logger.exception("Error fetching dashboard stats")
        return failure(str(e), 500)
    return success(data)


@dashboard_bp.route('/top-products', methods=['GET'])
@login_required
@permission_required(Permission.DASHBOARD)
def top_products():
    limit = arg_int('limit', 10, minimum=1, maximum=100)
    total_revenue = func.sum(SaleItem.subtotal).label('total_revenue')
    rows = (db.session.query(
                SaleItem.product_id,
                SaleItem.product_name,
                func.sum(SaleItem.qty).label('total_qty_sold'),
                total_revenue,
                func.count(func.distinct(SaleItem.sale_id)).label('sale_count'))
            .join(Sale, SaleItem.sale_id == Sale.id)
            .filter(*_range(Sale.sale_date))
            .group_by(SaleItem.product_id, SaleItem.product_name)
            .order_by(total_revenue.desc())
            .limit(limit)
            .all())
    return success([{
        'product_id': r.product_id,
        'product_name': r.product_name,
        'total_qty_sold': float(r.total_qty_sold or 0),
        'total_revenue': float(to_decimal(r.total_revenue)),
        'sale_count': r.sale_count,
    } for r in rows])


@dashboard_bp.route('/sales-trend', methods=['GET'])
@login_required
@permission_required(Permission.DASHBOARD)
def sales_trend():
    period = func.strftime(_period_format(), Sale.sale_date).label('period')
    rows = (db.session.query(period, func.count(Sale.id), func.sum(Sale.total_amount))
            .filter(*_range(Sale.sale_date))
            .group_by(period)
            .order_by(period.asc())
            .all())
    return success([{
        'period': p,
        'sale_count': count,
        'total_revenue': float(to_decimal(total)),
    } for p, count, total in rows])


@dashboard_bp.route('/purchase-trend', methods=['GET'])
@login_required
@permission_required(Permission.DASHBOARD)
def purchase_trend():
    period = func.strftime(_period_format(), PurchaseHistory.purchase_date).label('period')
    rows = (db.session.query(period, func.count(PurchaseHistory.id), func.sum(PurchaseHistory.total_amount))
            .filter(*_range(PurchaseHistory.purchase_date))
            .group_by(period)
            .order_by(period.asc())
            .all())
    return success([{
        'period': p,
        'purchase_count': count,
        'total_cost': float(to_decimal(total)),
    } for p, count, total in rows])


@dashboard_bp.route('/low-stock', methods=['GET'])
@login_required
@permission_required(Permission.DASHBOARD)
def low_stock():
    threshold = arg_int('threshold', current_app.config.get('LOW_STOCK_THRESHOLD', 10), minimum=0)
    rows = (db.session.query(Product, Unit.value)
            .outerjoin(Unit, Product.unit_id == Unit.id)
            .filter(Product.qty < threshold)
            .order_by(Product.qty.asc(), Product.id.asc())
            .all())
    return success([{
        'id': product.id,
        'name': product.name,
        'qty': float(product.qty),
        'sale_price': float(product.sale_price),
        'unit_value': unit_value,
    } for product, unit_value in rows])
