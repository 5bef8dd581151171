from flask import Blueprint, request
from flask_login import login_required, current_user
from sqlalchemy import func
from datetime import datetime, timedelta
import logging

from models import db, ActivityLog
from .decorators import permission_required
from .permissions import Permission, DEV_USERNAME
from .utils import success, failure, date_range_filters, paginate_query

logs_bp = Blueprint('logs', __name__, url_prefix='/api/logs')

logger = logging.getLogger(__name__)


def _counts(column, label, limit=None):
    count = func.count(ActivityLog.id).label('count')
    query = db.session.query(column, count).group_by(column).order_by(count.desc(), column.asc())
    if limit:
        query = query.limit(limit)
    return [{label: value, 'count': n} for value, n in query.all()]


@logs_bp.route('', methods=['GET'])
@login_required
@permission_required(Permission.LOGS)
def list_logs():
    query = ActivityLog.query
    args = request.args
    if args.get('username'):
        query = query.filter(ActivityLog.username.like(f"%{args['username']}%"))
    if args.get('table_name'):
        query = query.filter(ActivityLog.table_name == args['table_name'])
    if args.get('action'):
        query = query.filter(ActivityLog.action == args['action'])
    if args.get('status'):
        query = query.filter(ActivityLog.status == args['status'])
    for condition in date_range_filters(ActivityLog.created_at, args.get('start_date'), args.get('end_date')):
        query = query.filter(condition)

    page = paginate_query(query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()))
    return success({
        'logs': [entry.to_dict() for entry in page.items],
        'pagination': {
            'page': page.page,
            'limit': page.per_page,
            'total': page.total,
            'totalPages': page.pages,
        },
    })


@logs_bp.route('/stats', methods=['GET'])
@login_required
@permission_required(Permission.LOGS)
def log_stats():
    since = datetime.utcnow() - timedelta(days=1)
    return success({
        'total': ActivityLog.query.count(),
        'recent24h': ActivityLog.query.filter(ActivityLog.created_at >= since).count(),
        'byAction': _counts(ActivityLog.action, 'action'),
        'byTable': _counts(ActivityLog.table_name, 'table_name'),
        'byStatus': _counts(ActivityLog.status, 'status'),
        'topUsers': _counts(ActivityLog.username, 'username', limit=10),
    })


@logs_bp.route('', methods=['DELETE'])
@login_required
@permission_required(Permission.LOGS)
def clear_logs():
    if current_user.username != DEV_USERNAME:
        return failure('Only developer user can clear log history', 403)
    try:
        deleted = ActivityLog.query.delete()
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error clearing logs")
        return failure(str(e), 500)
    logger.info("Activity log cleared by %s (%d rows)", current_user.username, deleted)
    return success(message='Log history cleared successfully')


@logs_bp.route('/<int:log_id>', methods=['GET'])
@login_required
@permission_required(Permission.LOGS)
def get_log(log_id):
    entry = db.session.get(ActivityLog, log_id)
    if not entry:
        return failure('Log not found', 404)
    return success(entry.to_dict())
