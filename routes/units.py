from flask import Blueprint
from flask_login import login_required
from sqlalchemy import func
import logging

from models import db, Unit, Product
from .decorators import permission_required
from .permissions import Permission
from .utils import log_activity, success, failure, get_json_body
from .validators import validate_unit

units_bp = Blueprint('units', __name__, url_prefix='/api/units')

logger = logging.getLogger(__name__)


def _value_taken(value, exclude_id=None):
    query = Unit.query.filter(func.lower(Unit.value) == value.lower())
    if exclude_id is not None:
        query = query.filter(Unit.id != exclude_id)
    return query.first() is not None


@units_bp.route('', methods=['GET'])
@login_required
def list_units():
    units = Unit.query.order_by(Unit.value.asc()).all()
    return success([u.to_dict() for u in units])


@units_bp.route('', methods=['POST'])
@login_required
@permission_required(Permission.UNITS)
def create_unit():
    data = get_json_body()
    fields = validate_unit(data)
    if _value_taken(fields['value']):
        return failure('A unit with this value already exists', 400)

    try:
        unit = Unit(value=fields['value'])
        db.session.add(unit)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error creating unit %s", fields['value'])
        log_activity('CREATE', 'units', new_data=data, status='failed', error_message=str(e))
        return failure(str(e), 500)

    snapshot = unit.to_dict()
    log_activity('CREATE', 'units', unit.id, new_data=snapshot)
    return success(snapshot, 'Unit created successfully', 201)


@units_bp.route('/<int:unit_id>', methods=['PUT'])
@login_required
@permission_required(Permission.UNITS)
def update_unit(unit_id):
    unit = db.session.get(Unit, unit_id)
    if not unit:
        return failure('Unit not found', 404)

    data = get_json_body()
    fields = validate_unit(data)
    if _value_taken(fields['value'], exclude_id=unit.id):
        return failure('A unit with this value already exists', 400)

    old_snapshot = unit.to_dict()
    try:
        unit.value = fields['value']
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error updating unit %s", unit_id)
        log_activity('UPDATE', 'units', unit_id, new_data=data, status='failed', error_message=str(e))
        return failure(str(e), 500)

    snapshot = unit.to_dict()
    log_activity('UPDATE', 'units', unit.id, old_data=old_snapshot, new_data=snapshot)
    return success(snapshot, 'Unit updated successfully')


@units_bp.route('/<int:unit_id>', methods=['DELETE'])
@login_required
@permission_required(Permission.UNITS)
def delete_unit(unit_id):
    unit = db.session.get(Unit, unit_id)
    if not unit:
        return failure('Unit not found', 404)

    if Product.query.filter_by(unit_id=unit.id).count() > 0:
        return failure('Cannot delete unit that is being used by products', 400)

    old_snapshot = unit.to_dict()
    try:
        db.session.delete(unit)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error deleting unit %s", unit_id)
        log_activity('DELETE', 'units', unit_id, status='failed', error_message=str(e))
        return failure(str(e), 500)

    log_activity('DELETE', 'units', unit_id, old_data=old_snapshot)
    return success(message='Unit deleted successfully')
