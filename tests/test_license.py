import re

import pytest

from conftest import build_app, auth_headers
from models import db
from routes.license_utils import (generate_license_key, validate_license_key, device_number_from,
                                  FALLBACK_DEVICE_NUMBER)

DEVICE_PATTERN = re.compile(r'^\d{4}-\d{4}-\d{4}-\d{4}$')


def test_known_key():
    assert generate_license_key('1234-5678-9012-3456') == '7434-8185-9836-0587'
    assert generate_license_key('1234567890123456') == '7434-8185-9836-0587'


@pytest.mark.parametrize('bad', ['', '1234-5678', '1234-5678-9012-345x', '12345678901234567'])
def test_malformed_device_numbers_get_no_key(bad):
    assert generate_license_key(bad) == ''
    assert not validate_license_key(bad, '0000-0000-0000-0000')


def test_validation_ignores_dashes_and_whitespace():
    assert validate_license_key('1234-5678-9012-3456', ' 7434818598360587 ')
    assert not validate_license_key('1234-5678-9012-3456', '7434-8185-9836-0588')
    assert not validate_license_key('1234-5678-9012-3456', '')


def test_device_number_is_stable_and_well_formed():
    first = device_number_from('host-linux-x64-8')

    assert DEVICE_PATTERN.match(first)
    assert first == device_number_from('host-linux-x64-8')
    assert first != device_number_from('host-linux-x64-4')
    assert DEVICE_PATTERN.match(FALLBACK_DEVICE_NUMBER)


def test_validate_endpoint_stores_key(app, client, tmp_path):
    device = client.get('/api/license/device-number').get_json()['data']
    assert DEVICE_PATTERN.match(device)
    assert client.get('/api/license/check').get_json() == {
        'success': True, 'valid': False, 'hasLicense': False, 'deviceNumber': device}

    wrong = client.post('/api/license/validate', json={'deviceNumber': device, 'licenseKey': '1111-1111-1111-1111'})
    assert wrong.get_json()['valid'] is False
    assert not (tmp_path / 'EMS-license.txt').exists()

    key = generate_license_key(device)
    right = client.post('/api/license/validate', json={'deviceNumber': device, 'licenseKey': key})
    assert right.get_json()['valid'] is True
    assert (tmp_path / 'EMS-license.txt').read_text(encoding='utf-8') == key

    check = client.get('/api/license/check').get_json()
    assert check['valid'] is True
    assert check['hasLicense'] is True


def test_validate_requires_both_fields(client):
    resp = client.post('/api/license/validate', json={'deviceNumber': '1234-5678-9012-3456'})

    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Device number and license key are required'


def test_enforced_license_blocks_api_until_activated(tmp_path):
    app = build_app(tmp_path, LICENSE_ENFORCED=True)
    client = app.test_client()
    headers = auth_headers(app, 'admin')
    try:
        blocked = client.get('/api/products', headers=headers)
        assert blocked.status_code == 403
        assert blocked.get_json()['error'] == 'A valid license is required.'
        assert client.get('/api/health').status_code == 200
        assert client.post('/api/auth/login', json={'username': 'admin', 'password': '123'}).status_code == 200

        device = client.get('/api/license/device-number').get_json()['data']
        client.post('/api/license/validate', json={'deviceNumber': device, 'licenseKey': generate_license_key(device)})

        assert client.get('/api/products', headers=headers).status_code == 200
    finally:
        with app.app_context():
            db.session.remove()
            db.drop_all()
