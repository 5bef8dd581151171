import os
import configparser
import tempfile
from pathlib import Path
import sys


def _user_data_dir():
    if os.name == 'nt':
        return Path(os.environ.get('APPDATA', Path.home() / 'AppData' / 'Roaming')) / 'EMS'
    return Path.home() / '.local' / 'share' / 'ems'


def resolve_log_dir(base_dir):
    """First writable of: $EMS_LOG_DIR, the user data dir, base_dir/logs; else the temp dir."""
    candidates = []
    if os.environ.get('EMS_LOG_DIR'):
        candidates.append(Path(os.environ['EMS_LOG_DIR']))
    candidates.append(_user_data_dir() / 'logs')
    candidates.append(Path(base_dir) / 'logs')

    for log_dir in candidates:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            return log_dir
        except OSError:
            continue
    return Path(tempfile.gettempdir()) / 'ems_logs'


def load_secret_key(*paths):
    """Read the first existing key file, or persist a new random key to the last path."""
    for path in paths:
        try:
            if path.exists():
                return path.read_text().strip()
        except OSError:
            continue
    key = os.urandom(32).hex()
    target = paths[-1]
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(key)
        os.chmod(target, 0o600)
    except OSError:
        pass
    return key


def default_license_path():
    if os.name == 'nt':
        return Path('C:/EMS-license.txt')
    return Path.home() / 'EMS-license.txt'


class Config:
    if getattr(sys, 'frozen', False):
        BASE_DIR = Path(sys.executable).parent
    else:
        BASE_DIR = Path(__file__).resolve().parent

    RESOURCE_DIR = Path(getattr(sys, '_MEIPASS', BASE_DIR))

    CONFIG_FILE_RUNTIME = BASE_DIR / 'app_config.ini'
    CONFIG_FILE_BUNDLED = RESOURCE_DIR / 'app_config.ini'

    LOG_DIR = resolve_log_dir(BASE_DIR)
    LOG_FILE = LOG_DIR / 'ems.log'

    config_parser = configparser.ConfigParser()
    if CONFIG_FILE_RUNTIME.exists():
        config_parser.read(CONFIG_FILE_RUNTIME)
    elif CONFIG_FILE_BUNDLED.exists():
        config_parser.read(CONFIG_FILE_BUNDLED)

    if config_parser.sections():
        db_path = config_parser.get('database', 'path', fallback=str(BASE_DIR / 'ems.db'))
        SQLALCHEMY_DATABASE_URI = config_parser.get('database', 'url', fallback=f'sqlite:///{db_path}')
        DEBUG = config_parser.getboolean('app', 'debug', fallback=False)
        TOKEN_MAX_AGE_HOURS = config_parser.getint('app', 'token_max_age_hours', fallback=24)
        ADMIN_DEFAULT_PASSWORD = config_parser.get('app', 'admin_default_password', fallback='123')
        DEV_PASSWORD = config_parser.get('app', 'dev_password', fallback='') or None
        LICENSE_FILE = config_parser.get('license', 'file', fallback=str(default_license_path()))
        LICENSE_ENFORCED = config_parser.getboolean('license', 'enforced', fallback=False)
    else:
        db_path = os.environ.get('DB_PATH', str(BASE_DIR / 'ems.db'))
        SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', f'sqlite:///{db_path}')
        DEBUG = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
        TOKEN_MAX_AGE_HOURS = int(os.environ.get('TOKEN_MAX_AGE_HOURS', 24))
        ADMIN_DEFAULT_PASSWORD = os.environ.get('ADMIN_DEFAULT_PASSWORD', '123')
        DEV_PASSWORD = os.environ.get('DEV_PASSWORD') or None
        LICENSE_FILE = os.environ.get('LICENSE_FILE', str(default_license_path()))
        LICENSE_ENFORCED = os.environ.get('LICENSE_ENFORCED', 'False').lower() == 'true'

    SECRET_KEY = os.environ.get('SECRET_KEY')
    if not SECRET_KEY and config_parser.sections():
        SECRET_KEY = config_parser.get('app', 'secret_key', fallback=None)
        if SECRET_KEY == 'AUTO_GENERATED':
            SECRET_KEY = None
    if not SECRET_KEY:
        # a key file beside the executable wins over the per-user one
        SECRET_KEY = load_secret_key(BASE_DIR / '.secret_key', _user_data_dir() / '.secret_key')

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
    }

    CACHE_TYPE = 'SimpleCache'
    CACHE_DEFAULT_TIMEOUT = 300

    RATELIMIT_STORAGE_URI = 'memory://'

    JSON_SORT_KEYS = False
    LOW_STOCK_THRESHOLD = 10
