from flask import Blueprint
from flask_login import login_required
from sqlalchemy import inspect, text
from decimal import Decimal
from datetime import datetime, date
import logging

from models import db
from .decorators import dev_required
from .utils import success, failure, arg_int

database_view_bp = Blueprint('database_view', __name__, url_prefix='/api/database-view')

logger = logging.getLogger(__name__)

PREVIEW_ROWS = 100


def _table_names():
    return sorted(name for name in inspect(db.engine).get_table_names() if not name.startswith('sqlite_'))


def _columns(inspector, table_name):
    pk = set(inspector.get_pk_constraint(table_name).get('constrained_columns') or [])
    return [{
        'name': col['name'],
        'type': str(col['type']) or 'TEXT',
        'notnull': not col.get('nullable', True),
        'pk': col['name'] in pk,
        'dflt_value': col.get('default'),
    } for col in inspector.get_columns(table_name)]


def _cell(value):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.hex()
    return value


def _rows(table_name, limit, offset=0):
    # table_name comes from the inspector, never straight from the request
    result = db.session.execute(
        text(f'SELECT * FROM "{table_name}" LIMIT :limit OFFSET :offset'),
        {'limit': limit, 'offset': offset},
    )
    return [{key: _cell(value) for key, value in row._mapping.items()} for row in result]


def _count(table_name):
    return db.session.execute(text(f'SELECT COUNT(*) FROM "{table_name}"')).scalar() or 0


@database_view_bp.route('/tables', methods=['GET'])
@login_required
@dev_required
def list_tables():
    return success(_table_names())


@database_view_bp.route('/table/<table_name>', methods=['GET'])
@login_required
@dev_required
def table_data(table_name):
    if table_name not in _table_names():
        return failure('Invalid table name', 400)

    limit = arg_int('limit', 1000, minimum=1, maximum=10000)
    offset = arg_int('offset', 0, minimum=0)
    try:
        data = {
            'columns': _columns(inspect(db.engine), table_name),
            'rows': _rows(table_name, limit, offset),
            'totalCount': _count(table_name),
            'limit': limit,
            'offset': offset,
        }
    except Exception as e:
        logger.exception("Error fetching table data for %s", table_name)
        return failure(str(e), 500)
    return success(data)


@database_view_bp.route('/all', methods=['GET'])
@login_required
@dev_required
def all_tables():
    inspector = inspect(db.engine)
    tables = []
    for name in _table_names():
        try:
            tables.append({
                'name': name,
                'columns': _columns(inspector, name),
                'rowCount': _count(name),
                'previewData': _rows(name, PREVIEW_ROWS),
            })
        except Exception as e:
            logger.exception("Error fetching data for table %s", name)
            tables.append({'name': name, 'columns': [], 'rowCount': 0, 'previewData': [], 'error': str(e)})
    return success(tables)
