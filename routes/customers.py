from flask import Blueprint
from flask_login import login_required
from sqlalchemy import func
import logging

from models import db, Customer
from .decorators import permission_required
from .permissions import Permission
from .utils import log_activity, success, failure, get_json_body
from .validators import validate_customer

customers_bp = Blueprint('customers', __name__, url_prefix='/api/customers')

logger = logging.getLogger(__name__)


def _name_taken(name, exclude_id=None):
    query = Customer.query.filter(func.lower(Customer.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    return query.first() is not None


@customers_bp.route('', methods=['GET'])
@login_required
@permission_required(Permission.CUSTOMERS)
def list_customers():
    customers = Customer.query.order_by(Customer.name.asc()).all()
    return success([c.to_dict() for c in customers])


@customers_bp.route('/<int:customer_id>', methods=['GET'])
@login_required
@permission_required(Permission.CUSTOMERS)
def get_customer(customer_id):
    customer = db.session.get(Customer, customer_id)
    if not customer:
        return failure('Customer not found', 404)
    return success(customer.to_dict())


@customers_bp.route('', methods=['POST'])
@login_required
@permission_required(Permission.CUSTOMERS)
def create_customer():
    data = get_json_body()
    fields = validate_customer(data)
    if _name_taken(fields['name']):
        return failure('A customer with this name already exists', 400)

    try:
        customer = Customer(**fields)
        db.session.add(customer)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error creating customer %s", fields['name'])
        log_activity('CREATE', 'customers', new_data=data, status='failed', error_message=str(e))
        return failure(str(e), 500)

    snapshot = customer.to_dict()
    log_activity('CREATE', 'customers', customer.id, new_data=snapshot)
    return success(snapshot, 'Customer created successfully', 201)


@customers_bp.route('/<int:customer_id>', methods=['PUT'])
@login_required
@permission_required(Permission.CUSTOMERS)
def update_customer(customer_id):
    customer = db.session.get(Customer, customer_id)
    if not customer:
        return failure('Customer not found', 404)

    data = get_json_body()
    fields = validate_customer(data)
    if _name_taken(fields['name'], exclude_id=customer.id):
        return failure('A customer with this name already exists', 400)

    old_snapshot = customer.to_dict()
    try:
        for key, value in fields.items():
            setattr(customer, key, value)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error updating customer %s", customer_id)
        log_activity('UPDATE', 'customers', customer_id, new_data=data, status='failed', error_message=str(e))
        return failure(str(e), 500)

    snapshot = customer.to_dict()
    log_activity('UPDATE', 'customers', customer.id, old_data=old_snapshot, new_data=snapshot)
    return success(snapshot, 'Customer updated successfully')


@customers_bp.route('/<int:customer_id>', methods=['DELETE'])
@login_required
@permission_required(Permission.CUSTOMERS)
def delete_customer(customer_id):
    customer = db.session.get(Customer, customer_id)
    if not customer:
        return failure('Customer not found', 404)

    old_snapshot = customer.to_dict()
    try:
        # Sales keep customer_name; their customer_id goes NULL.
        for sale in list(customer.sales):
            sale.customer_id = None
        db.session.delete(customer)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error deleting customer %s", customer_id)
        log_activity('DELETE', 'customers', customer_id, status='failed', error_message=str(e))
        return failure(str(e), 500)

    log_activity('DELETE', 'customers', customer_id, old_data=old_snapshot)
    return success(message='Customer deleted successfully')
