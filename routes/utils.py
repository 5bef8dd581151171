from flask import request, jsonify
from flask_login import current_user
from models import db, ActivityLog
from flask_caching import Cache
from datetime import datetime, date, timedelta
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
import json
import logging

cache = Cache()

logger = logging.getLogger(__name__)


def to_decimal(value):
    """Coerce value (None, float, int, str, Decimal) -> Decimal quantized to 2dp.

    - Accepts strings with commas "1,234.56".
    - Returns Decimal('0.00') for invalid inputs instead of raising.
    """
    if value is None or value == '':
        return Decimal('0.00')
    try:
        if isinstance(value, Decimal):
            return value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
        if isinstance(value, str):
            value = value.strip().replace(',', '')
        return Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return Decimal('0.00')


def success(data=None, message=None, status=200, **extra):
    body = {'success': True}
    if message:
        body['message'] = message
    if data is not None:
        body['data'] = data
    body.update(extra)
    return jsonify(body), status


def failure(error, status=400, **extra):
    body = {'success': False, 'error': error}
    body.update(extra)
    return jsonify(body), status


def client_ip():
    try:
        return request.remote_addr
    except RuntimeError:
        return None


def get_json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _dump(snapshot):
    if snapshot is None:
        return None
    return json.dumps(snapshot, default=str)


def log_activity(action, table_name, record_id=None, old_data=None, new_data=None,
                 status='success', error_message=None, user=None):
    """
    Append one ActivityLog row and commit it.

    - Call after the business transaction has been committed or rolled back;
      the audit row is not part of that transaction.
    - Never raises: a logging failure must not fail the request. The failure
      is reported through the app logger instead.
    """
    try:
        actor = user
        if actor is None and getattr(current_user, 'is_authenticated', False):
            actor = current_user

        entry = ActivityLog(
            user_id=(actor.id if actor else None),
            username=(actor.username if actor else 'anonymous'),
            action=action,
            table_name=table_name,
            record_id=int(record_id) if record_id is not None else None,
            old_data=_dump(old_data),
            new_data=_dump(new_data),
            status=status,
            error_message=error_message,
            ip_address=client_ip(),
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except Exception:
        logger.exception("Failed to write activity log: %s %s #%s", action, table_name, record_id)
        try:
            db.session.rollback()
        except Exception:
            logger.exception("Rollback after activity log failure also failed")
        return None


def parse_date(date_str):
    """Parse 'YYYY-MM-DD' or an ISO datetime; None when missing or unparseable."""
    if not date_str:
        return None
    s = str(date_str).strip()
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(s.replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        logger.debug("parse_date: unrecognized date %r", date_str)
        return None


def date_range_filters(column, start_str, end_str):
    """
    SQLAlchemy conditions for an inclusive date range on `column`.
    A bare end date covers that whole day.
    """
    conditions = []
    start = parse_date(start_str)
    end = parse_date(end_str)
    if start is not None:
        if not isinstance(start, datetime):
            start = datetime.combine(start, datetime.min.time())
        conditions.append(column >= start)
    if end is not None:
        if isinstance(end, datetime):
            conditions.append(column <= end)
        else:
            conditions.append(column < datetime.combine(end + timedelta(days=1), datetime.min.time()))
    return conditions


def arg_int(name, default, minimum=None, maximum=None):
    """Defensively parse an integer query parameter."""
    try:
        value = int(request.args.get(name, default))
    except (ValueError, TypeError):
        value = default
    if minimum is not None and value < minimum:
        value = minimum
    if maximum is not None and value > maximum:
        value = maximum
    return value


def paginate_query(query, default_per_page=50):
    """Paginate a Flask-SQLAlchemy query using ?page= and ?limit=."""
    page = arg_int('page', 1, minimum=1)
    per_page = arg_int('limit', default_per_page, minimum=1, maximum=1000)
    try:
        return query.paginate(page=page, per_page=per_page, error_out=False)
    except Exception as e:
        logger.exception("Error while paginating query: %s", e)
        raise


def iso_today():
    return date.today().isoformat()
