from flask import Blueprint
import logging

from .utils import success, failure, get_json_body
from .license_utils import get_device_number, validate_license_key, write_license, license_status

license_bp = Blueprint('license', __name__, url_prefix='/api/license')

logger = logging.getLogger(__name__)


@license_bp.route('/device-number', methods=['GET'])
def device_number():
    return success(get_device_number())


@license_bp.route('/validate', methods=['POST'])
def validate():
    data = get_json_body()
    device = data.get('deviceNumber')
    key = data.get('licenseKey')
    if not device or not key:
        return failure('Device number and license key are required', 400)

    valid = validate_license_key(str(device), str(key))
    if valid:
        if not write_license(str(key).strip()):
            return failure('Failed to save license file', 500)
        logger.info("License accepted for device %s", device)
    return success(valid=valid)


@license_bp.route('/check', methods=['GET'])
def check():
    valid, has_license, device = license_status()
    return success(valid=valid, hasLicense=has_license, deviceNumber=device)
