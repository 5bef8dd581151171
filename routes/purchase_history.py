from flask import Blueprint, request
from flask_login import login_required

from models import db, PurchaseHistory, Product, Unit
from .decorators import permission_required
from .permissions import Permission
from .utils import success, date_range_filters
from .validators import to_int

purchase_history_bp = Blueprint('purchase_history', __name__, url_prefix='/api/purchase-history')


def _history_query():
    return (db.session.query(PurchaseHistory, Product.name, Unit.value)
            .outerjoin(Product, PurchaseHistory.product_id == Product.id)
            .outerjoin(Unit, Product.unit_id == Unit.id))


def _serialize(rows):
    data = []
    for entry, current_name, unit_value in rows:
        item = entry.to_dict()
        item['current_product_name'] = current_name
        item['unit_value'] = unit_value
        data.append(item)
    return data


@purchase_history_bp.route('', methods=['GET'])
@login_required
@permission_required(Permission.PRODUCTS)
def list_purchase_history():
    query = _history_query()
    product_id = to_int(request.args.get('product_id'))
    if product_id is not None:
        query = query.filter(PurchaseHistory.product_id == product_id)
    for condition in date_range_filters(PurchaseHistory.purchase_date,
                                        request.args.get('start_date'), request.args.get('end_date')):
        query = query.filter(condition)

    rows = query.order_by(PurchaseHistory.purchase_date.desc(), PurchaseHistory.id.desc()).all()
    return success(_serialize(rows))


@purchase_history_bp.route('/product/<int:product_id>', methods=['GET'])
@login_required
@permission_required(Permission.PRODUCTS)
def product_purchase_history(product_id):
    rows = (_history_query()
            .filter(PurchaseHistory.product_id == product_id)
            .order_by(PurchaseHistory.purchase_date.desc(), PurchaseHistory.id.desc())
            .all())
    return success(_serialize(rows))
