from functools import wraps
from flask_login import current_user
from flask import jsonify
from .permissions import Permission, has_permission, DEV_USERNAME


def permission_required(permission):
    """
    Restrict an API view to users holding `permission`.
    Example: @permission_required(Permission.SALES)
    Put it below @login_required so anonymous requests get 401 first.
    """
    permission = Permission(permission)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'success': False, 'error': 'Access denied. No token provided.'}), 401
            if not has_permission(current_user.permissions, permission):
                return jsonify({
                    'success': False,
                    'error': f'Access denied. {permission.value} permission required.'
                }), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def dev_required(f):
    """Only the developer account may use the decorated view."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'success': False, 'error': 'Access denied. No token provided.'}), 401
        if current_user.username != DEV_USERNAME:
            return jsonify({'success': False, 'error': 'Access denied. Developer privileges required.'}), 403
        return f(*args, **kwargs)
    return decorated_function
