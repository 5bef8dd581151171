from flask import Blueprint
from models import db, User
from passlib.hash import pbkdf2_sha256
from flask_login import login_required, current_user
from sqlalchemy import func
import logging

from .decorators import permission_required
from .permissions import Permission, parse_permissions, permission_names, ADMIN_USERNAME, DEV_USERNAME
from .utils import log_activity, success, failure, get_json_body
from .validators import validate_user, ValidationError

user_bp = Blueprint('users', __name__, url_prefix='/api/users')

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD = '123'
MIN_UPDATE_PASSWORD = 6


def _checked_permissions(names):
    try:
        return permission_names(parse_permissions(names))
    except ValueError as e:
        raise ValidationError([{'field': 'permissions', 'message': str(e)}])


def _username_taken(username, exclude_id=None):
    query = User.query.filter(func.lower(User.username) == username.lower())
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


@user_bp.route('', methods=['GET'])
@login_required
@permission_required(Permission.USERS)
def list_users():
    query = User.query.order_by(User.created_at.desc(), User.id.desc())
    if current_user.username != DEV_USERNAME:
        query = query.filter(User.username != DEV_USERNAME)
    return success([u.to_dict() for u in query.all()])


@user_bp.route('/<int:user_id>', methods=['GET'])
@login_required
@permission_required(Permission.USERS)
def get_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        return failure('User not found', 404)
    return success(user.to_dict())


@user_bp.route('', methods=['POST'])
@login_required
@permission_required(Permission.USERS)
def create_user():
    data = get_json_body()
    fields = validate_user(data)
    permissions = _checked_permissions(fields['permissions'])

    if _username_taken(fields['username']):
        return failure('Username already exists', 400)

    try:
        user = User(
            username=fields['username'],
            password_hash=pbkdf2_sha256.hash(fields['password'] or DEFAULT_PASSWORD),
            full_name=fields['full_name'],
        )
        user.permissions = permissions
        db.session.add(user)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error creating user %s", fields['username'])
        log_activity('CREATE', 'users', new_data={'username': fields['username'], 'full_name': fields['full_name'],
                                                  'permissions': permissions},
                     status='failed', error_message=str(e))
        return failure(str(e), 500)

    snapshot = user.to_dict()
    log_activity('CREATE', 'users', user.id, new_data=snapshot)
    return success(snapshot, 'User created successfully', 201)


@user_bp.route('/<int:user_id>', methods=['PUT'])
@login_required
@permission_required(Permission.USERS)
def update_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        return failure('User not found', 404)

    data = get_json_body()
    is_active = data.get('is_active')

    if user.username == ADMIN_USERNAME and is_active is not None and not is_active:
        return failure('Cannot inactivate the default admin user', 400)
    if user.username == DEV_USERNAME and is_active is not None and not is_active:
        return failure('Cannot inactivate the developer user', 400)

    password = data.get('password')
    password = password.strip() if isinstance(password, str) else None
    if user.username == ADMIN_USERNAME and password and current_user.username != ADMIN_USERNAME:
        return failure('Only admin user can change admin password', 403)
    if user.username == DEV_USERNAME and current_user.username != DEV_USERNAME:
        return failure('Developer account cannot be modified by other users', 403)

    changes = {}
    username = data.get('username')
    if isinstance(username, str) and username.strip():
        username = username.strip()
        if len(username) < 3:
            raise ValidationError([{'field': 'username', 'message': 'Username must be at least 3 characters'}])
        if username != user.username and _username_taken(username, exclude_id=user.id):
            return failure('Username already exists', 400)
        changes['username'] = username

    full_name = data.get('full_name')
    if isinstance(full_name, str) and full_name.strip():
        changes['full_name'] = full_name.strip()

    if isinstance(data.get('permissions'), list):
        changes['permissions'] = _checked_permissions(data['permissions'])

    if is_active is not None:
        changes['is_active'] = bool(is_active)

    if password:
        if len(password) < MIN_UPDATE_PASSWORD:
            return failure(f'Password must be at least {MIN_UPDATE_PASSWORD} characters long', 400)
        changes['password_hash'] = pbkdf2_sha256.hash(password)

    if not changes:
        return failure('No fields to update', 400)

    old_snapshot = user.to_dict()
    try:
        for key, value in changes.items():
            setattr(user, key, value)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error updating user %s", user_id)
        safe_body = {k: v for k, v in data.items() if k != 'password'}
        log_activity('UPDATE', 'users', user_id, new_data=safe_body, status='failed', error_message=str(e))
        return failure(str(e), 500)

    snapshot = user.to_dict()
    log_activity('UPDATE', 'users', user.id, old_data=old_snapshot, new_data=snapshot)
    return success(snapshot, 'User updated successfully')


@user_bp.route('/<int:user_id>', methods=['DELETE'])
@login_required
@permission_required(Permission.USERS)
def delete_user(user_id):
    if user_id == current_user.id:
        return failure('Cannot delete your own account', 400)

    user = db.session.get(User, user_id)
    if not user:
        return failure('User not found', 404)
    if user.username == ADMIN_USERNAME:
        return failure('Cannot delete the default admin user', 400)
    if user.username == DEV_USERNAME:
        return failure('Cannot delete the developer user', 400)

    old_snapshot = {'username': user.username, 'full_name': user.full_name, 'permissions': user.permissions}
    try:
        db.session.delete(user)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error deleting user %s", user_id)
        log_activity('DELETE', 'users', user_id, status='failed', error_message=str(e))
        return failure(str(e), 500)

    log_activity('DELETE', 'users', user_id, old_data=old_snapshot)
    return success(message='User deleted successfully')
