"""
Offline device-bound license keys.

- The device number is derived from host facts (hostname, platform,
  architecture, CPU count) and formatted as dddd-dddd-dddd-dddd.
- A license key is a fixed digit-wise transform of the device number, so the
  vendor can issue keys without a server.
- The accepted key is stored as plain text in the license file
  (app.config['LICENSE_FILE']).
"""
import hashlib
import os
import platform
import socket
import sys
import logging
from pathlib import Path

from flask import current_app

from .utils import cache

logger = logging.getLogger(__name__)

FALLBACK_DEVICE_NUMBER = '0000-0000-0000-0000'
PRIMES = (7, 11, 13, 17)

# Normalise machine names so the same box yields the same number everywhere.
_ARCH_ALIASES = {
    'x86_64': 'x64',
    'amd64': 'x64',
    'aarch64': 'arm64',
    'arm64': 'arm64',
    'i386': 'ia32',
    'i686': 'ia32',
    'x86': 'ia32',
}


def _strip(value):
    return (value or '').replace('-', '')


def format_groups(digits):
    return '-'.join(digits[i:i + 4] for i in range(0, 16, 4))


def device_fingerprint():
    arch = platform.machine().lower()
    return '{}-{}-{}-{}'.format(
        socket.gethostname(),
        sys.platform,
        _ARCH_ALIASES.get(arch, arch),
        os.cpu_count() or 1,
    )


def device_number_from(fingerprint):
    """
    md5(fingerprint) -> first 16 hex chars -> each char's decimal value
    (0..15) concatenated -> first 16 digits, grouped by four.
    """
    digest = hashlib.md5(fingerprint.encode('utf-8')).hexdigest()
    digits = ''.join(str(int(ch, 16)) for ch in digest[:16])
    return format_groups(digits[:16])


def compute_device_number():
    try:
        return device_number_from(device_fingerprint())
    except Exception:
        logger.exception("Error generating device number")
        return FALLBACK_DEVICE_NUMBER


@cache.memoize(timeout=3600)
def get_device_number():
    return compute_device_number()


def generate_license_key(device_number):
    """Key for a device number; '' when the input is not 16 digits."""
    cleaned = _strip(device_number)
    if len(cleaned) != 16 or not cleaned.isdigit() or not cleaned.isascii():
        return ''
    groups = []
    for g in range(4):
        group = cleaned[g * 4:(g + 1) * 4]
        groups.append(''.join(
            str((int(digit) * PRIMES[p] + g * 3 + p * 2) % 10)
            for p, digit in enumerate(group)
        ))
    return '-'.join(groups)


def validate_license_key(device_number, license_key):
    if not device_number or not license_key:
        return False
    expected = generate_license_key(device_number)
    if not expected:
        return False
    return _strip(expected) == _strip(str(license_key).strip())


def license_path():
    return Path(current_app.config['LICENSE_FILE'])


def read_license():
    path = license_path()
    try:
        if path.exists():
            return path.read_text(encoding='utf-8').strip() or None
    except OSError:
        logger.exception("Error reading license file %s", path)
    return None


def write_license(license_key):
    path = license_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(license_key, encoding='utf-8')
        return True
    except OSError:
        logger.exception("Error writing license file %s", path)
        return False


def license_status():
    """(valid, has_license, device_number) for this machine."""
    device_number = get_device_number()
    stored = read_license()
    if not stored:
        return False, False, device_number
    return validate_license_key(device_number, stored), True, device_number


def has_valid_license():
    return license_status()[0]
