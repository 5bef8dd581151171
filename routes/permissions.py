"""
Explicit permission set for API capabilities.

Permissions are stored on the user as a JSON list of names. Names outside
the Permission enum are rejected when users are created or updated, and
silently ignored when read back from old rows.
"""
from enum import Enum


class Permission(Enum):
    DASHBOARD = 'dashboard'
    PRODUCTS = 'products'
    SALES = 'sales'
    CUSTOMERS = 'customers'
    UNITS = 'settings.units'
    USERS = 'settings.users'
    TEXT_CONFIG = 'settings.textConfig'
    APPEARANCE = 'settings.appearance'
    LOGS = 'logs'


ALL_PERMISSIONS = frozenset(Permission)

# Holding every one of these makes a user an administrator.
ADMIN_PERMISSIONS = frozenset({
    Permission.DASHBOARD, Permission.PRODUCTS, Permission.SALES, Permission.CUSTOMERS,
    Permission.UNITS, Permission.USERS, Permission.TEXT_CONFIG, Permission.APPEARANCE,
})

DEFAULT_PERMISSIONS = (Permission.PRODUCTS, Permission.SALES, Permission.CUSTOMERS, Permission.UNITS)

DEV_USERNAME = 'dev'
ADMIN_USERNAME = 'admin'


def parse_permissions(names, strict=True):
    """
    Turn a list of permission names into a set of Permission members.

    strict=True raises ValueError naming the first unknown entry; otherwise
    unknown entries are dropped.
    """
    result = set()
    for name in names or []:
        try:
            result.add(Permission(name))
        except ValueError:
            if strict:
                raise ValueError(f'Unknown permission: {name!r}')
    return result


def has_permission(granted, required):
    """Capability check: is `required` among the granted permissions?"""
    if not isinstance(granted, (set, frozenset)):
        granted = parse_permissions(granted, strict=False)
    return Permission(required) in granted


def is_admin(granted):
    if not isinstance(granted, (set, frozenset)):
        granted = parse_permissions(granted, strict=False)
    return ADMIN_PERMISSIONS <= granted


def permission_names(perms):
    """Stable, enum-ordered list of names for storage and JSON."""
    return [p.value for p in Permission if p in perms]
