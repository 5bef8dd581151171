"""
Server-side UI configuration.

Each known key has a defaults document. Only the user's override is stored
(system_config.config_value, JSON); reads return the override deep-merged
onto the defaults, so new default entries show up without a migration.
"""
from copy import deepcopy
import json
import logging

from models import db, SystemConfig
from .permissions import Permission

logger = logging.getLogger(__name__)

TEXT_CONFIG = 'text_config'
APPEARANCE_CONFIG = 'appearance_config'

TEXT_DEFAULTS = {
    'appName': 'EMS',
    'appFullName': 'Enterprise Management System',
    'nav': {
        'dashboard': 'Dashboard',
        'products': 'Products',
        'sales': 'Sales',
        'customers': 'Customers',
        'settings': 'Settings',
        'logs': 'Log History',
        'databaseView': 'Database View',
    },
    'auth': {
        'login': 'Login',
        'logout': 'Logout',
        'username': 'Username',
        'password': 'Password',
    },
    'common': {
        'actions': 'Actions',
        'cancel': 'Cancel',
        'close': 'Close',
        'confirm': 'Confirm',
        'delete': 'Delete',
        'edit': 'Edit',
        'loading': 'Loading...',
        'noData': 'No data available',
        'of': 'of',
        'rowsPerPage': 'Rows per page',
        'search': 'Search',
    },
    'dashboard': {
        'title': 'Dashboard',
        'stats': {
            'totalRevenue': 'Total Revenue',
            'totalCost': 'Total Cost',
            'profit': 'Profit',
            'totalCustomers': 'Total Customers',
            'totalProducts': 'Total Products',
            'totalOverpaid': 'Total Overpaid',
            'totalUnderpaid': 'Total Underpaid',
            'netBalance': 'Net Balance',
        },
        'charts': {
            'salesTrend': 'Sales Trend',
            'purchaseTrend': 'Purchase Trend',
            'topProducts': 'Top Selling Products',
            'lowStock': 'Low Stock Alert',
            'revenue': 'Revenue',
            'cost': 'Cost',
        },
    },
    'products': {'title': 'Products', 'addButton': 'Add Product', 'addQuantity': 'Add Quantity'},
    'sales': {'title': 'Sales', 'addButton': 'New Sale'},
    'customers': {'title': 'Customers', 'addButton': 'Add Customer'},
    'settings': {'title': 'Settings', 'units': 'Units', 'users': 'Users'},
    'logs': {'title': 'Log History'},
    'databaseView': {'title': 'Database View'},
}

APPEARANCE_DEFAULTS = {
    'fontFamily': 'Roboto, sans-serif',
    'fontSize': '14',
    'inputFontFamily': 'Roboto, sans-serif',
    'inputFontSize': '14',
    'headingFontFamily': 'Roboto, sans-serif',
    'borderRadius': '4',
    'primaryColor': '#1976d2',
    'secondaryColor': '#dc004e',
    'successColor': '#2e7d32',
    'errorColor': '#d32f2f',
    'warningColor': '#ed6c02',
    'infoColor': '#0288d1',
    'backgroundColor': '#f5f5f5',
    'timezoneOffset': '9',
    'currencySymbol': '$',
    'currencyPosition': 'before',
    'currencySymbolColor': '#666666',
    'currencySymbolWeight': 'bold',
    'currencySymbolSize': '1em',
}

KNOWN_CONFIGS = {
    TEXT_CONFIG: (TEXT_DEFAULTS, Permission.TEXT_CONFIG),
    APPEARANCE_CONFIG: (APPEARANCE_DEFAULTS, Permission.APPEARANCE),
}


class UnknownConfigKey(KeyError):
    def __init__(self, key):
        super().__init__(key)
        self.key = key

    def __str__(self):
        return f'Unknown configuration key: {self.key}'


def deep_merge(base, override):
    """
    Merge `override` onto a copy of `base`.
    Nested dicts merge recursively; anything else in override replaces.
    """
    result = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)
    return result


class ConfigService:
    def _spec(self, key):
        try:
            return KNOWN_CONFIGS[key]
        except KeyError:
            raise UnknownConfigKey(key)

    def defaults(self, key):
        return deepcopy(self._spec(key)[0])

    def permission(self, key):
        return self._spec(key)[1]

    def _row(self, key):
        return SystemConfig.query.filter_by(config_key=key).first()

    def load_override(self, key):
        """Stored override as a dict, or None when nothing (readable) is stored."""
        self._spec(key)
        row = self._row(key)
        if row is None:
            return None
        try:
            value = json.loads(row.config_value)
        except (TypeError, ValueError):
            logger.warning("Stored config %s is not valid JSON; ignoring it", key)
            return None
        return value if isinstance(value, dict) else None

    def load(self, key):
        override = self.load_override(key)
        base = self.defaults(key)
        return deep_merge(base, override) if override else base

    def save(self, key, override, user_id=None):
        """Upsert the override. Returns (previous override, created). Caller commits."""
        self._spec(key)
        if not isinstance(override, dict):
            raise ValueError('Configuration must be a JSON object')
        previous = self.load_override(key)
        row = self._row(key)
        created = row is None
        if created:
            row = SystemConfig(config_key=key, config_type='json')
            db.session.add(row)
        row.config_value = json.dumps(override)
        row.updated_by = user_id
        return previous, created

    def reset(self, key):
        """Drop the override. Returns the previous override. Caller commits."""
        self._spec(key)
        previous = self.load_override(key)
        row = self._row(key)
        if row is not None:
            db.session.delete(row)
        return previous


config_service = ConfigService()
