from flask import Blueprint
from flask_login import login_required, current_user
import logging

from models import db
from .decorators import permission_required
from .permissions import Permission, has_permission
from .utils import log_activity, success, failure, get_json_body
from .config_service import config_service, UnknownConfigKey, TEXT_CONFIG, APPEARANCE_CONFIG

config_bp = Blueprint('system_config', __name__, url_prefix='/api/config')

logger = logging.getLogger(__name__)


def _save(key, message):
    config = get_json_body().get('config')
    if config is None:
        return failure('Configuration data is required', 400)
    if not isinstance(config, dict):
        return failure('Configuration must be a JSON object', 400)

    try:
        previous, created = config_service.save(key, config, user_id=current_user.id)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error saving %s", key)
        log_activity('UPDATE', 'system_config', new_data={'config_key': key},
                     status='failed', error_message=str(e))
        return failure(str(e), 500)

    log_activity('CREATE' if created else 'UPDATE', 'system_config',
                 old_data={'config_key': key, 'value': previous},
                 new_data={'config_key': key, 'value': config})
    return success(config_service.load(key), message, saved=True)


@config_bp.route('/<config_key>', methods=['GET'])
@login_required
def get_config(config_key):
    try:
        return success(config_service.load(config_key))
    except UnknownConfigKey as e:
        return failure(str(e), 404)


@config_bp.route('/text_config', methods=['POST'])
@login_required
@permission_required(Permission.TEXT_CONFIG)
def save_text_config():
    return _save(TEXT_CONFIG, 'Text configuration saved successfully')


@config_bp.route('/appearance_config', methods=['POST'])
@login_required
@permission_required(Permission.APPEARANCE)
def save_appearance_config():
    return _save(APPEARANCE_CONFIG, 'Appearance configuration saved successfully')


@config_bp.route('/<config_key>', methods=['DELETE'])
@login_required
def reset_config(config_key):
    try:
        required = config_service.permission(config_key)
    except UnknownConfigKey as e:
        return failure(str(e), 404)
    if not has_permission(current_user.permissions, required):
        return failure(f'Access denied. {required.value} permission required.', 403)

    try:
        previous = config_service.reset(config_key)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error resetting %s", config_key)
        log_activity('DELETE', 'system_config', old_data={'config_key': config_key},
                     status='failed', error_message=str(e))
        return failure(str(e), 500)

    log_activity('DELETE', 'system_config', old_data={'config_key': config_key, 'value': previous})
    return success(config_service.load(config_key), 'Configuration reset successfully')
