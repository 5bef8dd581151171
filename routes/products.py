from flask import Blueprint
from flask_login import login_required
from sqlalchemy import func
from decimal import Decimal, ROUND_HALF_UP
import logging

from models import db, Product, Unit, PurchaseHistory, SaleItem
from .decorators import permission_required
from .permissions import Permission
from .utils import log_activity, success, failure, get_json_body
from .validators import validate_product, validate_add_quantity

products_bp = Blueprint('products', __name__, url_prefix='/api/products')

logger = logging.getLogger(__name__)


def _name_taken(name, exclude_id=None):
    query = Product.query.filter(func.lower(Product.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


def _purchase_entry(product, qty, price, notes):
    qty = Decimal(qty)
    price = Decimal(price)
    return PurchaseHistory(
        product_id=product.id,
        product_name=product.name,
        qty=qty,
        price=price,
        total_amount=(qty * price).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP),
        notes=notes,
    )


@products_bp.route('', methods=['GET'])
@login_required
@permission_required(Permission.PRODUCTS)
def list_products():
    products = Product.query.order_by(Product.created_at.desc(), Product.id.desc()).all()
    return success([p.to_dict() for p in products])


@products_bp.route('/<int:product_id>', methods=['GET'])
@login_required
@permission_required(Permission.PRODUCTS)
def get_product(product_id):
    product = db.session.get(Product, product_id)
    if not product:
        return failure('Product not found', 404)
    return success(product.to_dict())


@products_bp.route('', methods=['POST'])
@login_required
@permission_required(Permission.PRODUCTS)
def create_product():
    data = get_json_body()
    fields = validate_product(data)

    if _name_taken(fields['name']):
        return failure('A product with this name already exists', 400)
    if not db.session.get(Unit, fields['unit_id']):
        return failure('Unit not found', 400)

    try:
        product = Product(**fields)
        db.session.add(product)
        db.session.flush()
        db.session.add(_purchase_entry(product, fields['qty'], fields['original_price'], 'Initial stock'))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error creating product %s", fields['name'])
        log_activity('CREATE', 'products', new_data=data, status='failed', error_message=str(e))
        return failure(str(e), 500)

    snapshot = product.to_dict()
    log_activity('CREATE', 'products', product.id, new_data=snapshot)
    return success(snapshot, 'Product created successfully', 201)


@products_bp.route('/<int:product_id>', methods=['PUT'])
@login_required
@permission_required(Permission.PRODUCTS)
def update_product(product_id):
    product = db.session.get(Product, product_id)
    if not product:
        return failure('Product not found', 404)

    data = get_json_body()
    fields = validate_product(data, partial=True)

    if fields['name'].lower() != product.name.lower() and _name_taken(fields['name'], exclude_id=product.id):
        return failure('A product with this name already exists', 400)
    if not db.session.get(Unit, fields['unit_id']):
        return failure('Unit not found', 400)

    old_snapshot = product.to_dict()
    try:
        for key, value in fields.items():
            setattr(product, key, value)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error updating product %s", product_id)
        log_activity('UPDATE', 'products', product_id, new_data=data, status='failed', error_message=str(e))
        return failure(str(e), 500)

    snapshot = product.to_dict()
    log_activity('UPDATE', 'products', product.id, old_data=old_snapshot, new_data=snapshot)
    return success(snapshot, 'Product updated successfully')


@products_bp.route('/<int:product_id>/add-quantity', methods=['POST'])
@login_required
@permission_required(Permission.PRODUCTS)
def add_quantity(product_id):
    fields = validate_add_quantity(get_json_body())

    product = db.session.get(Product, product_id, with_for_update=True)
    if not product:
        return failure('Product not found', 404)

    old_snapshot = product.to_dict()
    notes = fields['notes'] or ('Initial stock' if product.qty == 0 else 'Stock addition')
    try:
        product.qty = product.qty + Decimal(fields['qty'])
        db.session.add(_purchase_entry(product, fields['qty'], 0, notes))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error adding quantity to product %s", product_id)
        log_activity('UPDATE', 'products', product_id, new_data=fields, status='failed', error_message=str(e))
        return failure(str(e), 500)

    snapshot = product.to_dict()
    log_activity('UPDATE', 'products', product.id, old_data=old_snapshot,
                 new_data=dict(snapshot, added_qty=fields['qty'], notes=notes))
    return success(snapshot, 'Quantity added successfully')


@products_bp.route('/<int:product_id>', methods=['DELETE'])
@login_required
@permission_required(Permission.PRODUCTS)
def delete_product(product_id):
    product = db.session.get(Product, product_id)
    if not product:
        return failure('Product not found', 404)

    if SaleItem.query.filter_by(product_id=product.id).first() is not None:
        return failure('Cannot delete product that has been sold', 400)

    old_snapshot = product.to_dict()
    try:
        db.session.delete(product)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error deleting product %s", product_id)
        log_activity('DELETE', 'products', product_id, status='failed', error_message=str(e))
        return failure(str(e), 500)

    log_activity('DELETE', 'products', product_id, old_data=old_snapshot)
    return success(message='Product deleted successfully')
