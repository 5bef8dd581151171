import configparser
import sys
from pathlib import Path


def get_base_dir():
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    return Path(__file__).parent


def _ask(prompt, default=''):
    suffix = f" [{default}]" if default else ''
    return input(f"{prompt}{suffix}: ").strip() or default


def build_config(answers):
    """Turn collected answers into the app_config.ini layout read by config.Config."""
    config = configparser.ConfigParser()
    config['database'] = {
        'path': answers['db_path'],
    }
    config['app'] = {
        'secret_key': 'AUTO_GENERATED',
        'debug': 'False',
        'token_max_age_hours': answers['token_max_age_hours'],
        'admin_default_password': answers['admin_default_password'],
        'dev_password': answers['dev_password'],
    }
    config['license'] = {
        'file': answers['license_file'],
        'enforced': answers['license_enforced'],
    }
    return config


def run_setup():
    print("=" * 60)
    print("EMS - First Time Setup")
    print("=" * 60)

    base_dir = get_base_dir()

    print("\n[DATABASE CONFIGURATION]")
    db_path = _ask("SQLite database file", str(base_dir / 'ems.db'))

    print("\n[APPLICATION SETTINGS]")
    token_hours = _ask("Login session length in hours", '24')
    admin_password = _ask("Initial admin password", '123')
    dev_password = _ask("Developer account password (blank to skip)")

    print("\n[LICENSE]")
    default_license = 'C:/EMS-license.txt' if sys.platform == 'win32' else str(Path.home() / 'EMS-license.txt')
    license_file = _ask("License file", default_license)
    enforced = _ask("Require a valid license (yes/no)", 'no').lower() in ('y', 'yes', 'true', '1')

    config = build_config({
        'db_path': db_path,
        'token_max_age_hours': token_hours,
        'admin_default_password': admin_password,
        'dev_password': dev_password,
        'license_file': license_file,
        'license_enforced': 'True' if enforced else 'False',
    })

    config_file = base_dir / 'app_config.ini'
    with open(config_file, 'w') as f:
        config.write(f)

    print(f"\nConfiguration saved to {config_file}")
    print("\nYou can now start the server with: python run.py")
    input("\nPress Enter to continue...")


if __name__ == '__main__':
    run_setup()
