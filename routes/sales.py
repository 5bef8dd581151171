from flask import Blueprint, request
from flask_login import login_required
from sqlalchemy import func
import logging

from models import db, Sale, SaleItem
from .decorators import permission_required
from .permissions import Permission
from .utils import log_activity, success, failure, get_json_body, date_range_filters
from .validators import validate_sale, to_int
from .sale_utils import create_sale, delete_sale, SaleError, OutOfStockError

sales_bp = Blueprint('sales', __name__, url_prefix='/api/sales')

logger = logging.getLogger(__name__)


@sales_bp.route('', methods=['GET'])
@login_required
@permission_required(Permission.SALES)
def list_sales():
    item_count = func.count(SaleItem.id).label('item_count')
    query = (db.session.query(Sale, item_count)
             .outerjoin(SaleItem, SaleItem.sale_id == Sale.id)
             .group_by(Sale.id))

    for condition in date_range_filters(Sale.sale_date, request.args.get('start_date'), request.args.get('end_date')):
        query = query.filter(condition)
    customer_id = to_int(request.args.get('customer_id'))
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)

    rows = query.order_by(Sale.sale_date.desc(), Sale.id.desc()).all()
    data = []
    for sale, count in rows:
        entry = sale.to_dict(include_items=False)
        entry['item_count'] = count
        data.append(entry)
    return success(data)


@sales_bp.route('/<int:sale_id>', methods=['GET'])
@login_required
@permission_required(Permission.SALES)
def get_sale(sale_id):
    sale = db.session.get(Sale, sale_id)
    if not sale:
        return failure('Sale not found', 404)
    return success(sale.to_dict())


@sales_bp.route('', methods=['POST'])
@login_required
@permission_required(Permission.SALES)
def post_sale():
    data = get_json_body()
    payload = validate_sale(data)

    try:
        sale = create_sale(payload)
        db.session.commit()
    except OutOfStockError as e:
        db.session.rollback()
        log_activity('CREATE', 'sales', new_data=data, status='failed', error_message=str(e))
        return failure(str(e), 400, out_of_stock=e.items)
    except SaleError as e:
        db.session.rollback()
        log_activity('CREATE', 'sales', new_data=data, status='failed', error_message=str(e))
        return failure(str(e), e.status_code)
    except Exception as e:
        db.session.rollback()
        logger.exception("Error creating sale")
        log_activity('CREATE', 'sales', new_data=data, status='failed', error_message=str(e))
        return failure(str(e), 500)

    snapshot = sale.to_dict()
    log_activity('CREATE', 'sales', sale.id, new_data=snapshot)
    return success(snapshot, 'Sale created successfully', 201)


@sales_bp.route('/<int:sale_id>', methods=['DELETE'])
@login_required
@permission_required(Permission.SALES)
def remove_sale(sale_id):
    sale = db.session.get(Sale, sale_id)
    if not sale:
        return failure('Sale not found', 404)

    old_snapshot = sale.to_dict()
    try:
        delete_sale(sale)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error deleting sale %s", sale_id)
        log_activity('DELETE', 'sales', sale_id, old_data=old_snapshot, status='failed', error_message=str(e))
        return failure(str(e), 500)

    log_activity('DELETE', 'sales', sale_id, old_data=old_snapshot)
    return success(message='Sale deleted successfully')
