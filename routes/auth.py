from flask import Blueprint, current_app, g
from flask_login import login_required, current_user
from itsdangerous import URLSafeTimedSerializer, BadSignature
from passlib.hash import pbkdf2_sha256
from datetime import datetime
import logging

from models import db, User
from extensions import limiter
from .utils import success, failure, get_json_body
from .validators import validate_login

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

logger = logging.getLogger(__name__)

TOKEN_SALT = 'ems-auth-token'


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def generate_token(user):
    return _serializer().dumps({'id': user.id, 'username': user.username})


def load_token_user(token):
    """
    Resolve a bearer token to an active User, or None.

    Sets g.token_error to 'invalid' (bad signature / expired) or 'inactive'
    (signature fine but the account is gone or disabled) on failure.
    """
    max_age = int(current_app.config.get('TOKEN_MAX_AGE_HOURS', 24)) * 3600
    try:
        payload = _serializer().loads(token, max_age=max_age)
    except BadSignature:
        g.token_error = 'invalid'
        return None

    user_id = payload.get('id') if isinstance(payload, dict) else None
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None or not user.is_active:
        g.token_error = 'inactive'
        return None
    return user


def verify_password(user, password):
    try:
        return pbkdf2_sha256.verify(password, user.password_hash)
    except (ValueError, TypeError):
        logger.warning("User %s has an unreadable password hash", user.id)
        return False


def user_payload(user):
    return {
        'id': user.id,
        'username': user.username,
        'full_name': user.full_name,
        'permissions': user.permissions,
    }


@auth_bp.route('/login', methods=['POST'])
@limiter.limit("10 per minute")
def login():
    username, password = validate_login(get_json_body())

    user = User.query.filter_by(username=username, is_active=True).first()
    if not user or not verify_password(user, password):
        logger.info("Failed login for %r", username)
        return failure('Invalid username or password', 401)

    try:
        user.last_login = datetime.utcnow()
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error during login: %s", e)
        return failure(str(e), 500)

    return success({'token': generate_token(user), 'user': user_payload(user)}, 'Login successful')


@auth_bp.route('/verify', methods=['GET'])
@login_required
def verify():
    data = user_payload(current_user)
    data['is_active'] = bool(current_user.is_active)
    return success(data)


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    # Tokens are stateless; the client discards its copy.
    return success(message='Logged out successfully')
