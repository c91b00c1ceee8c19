"""
Authentication decorators for route protection.

The API is JSON-only, so failures are 401/403 JSON bodies rather
than redirects.
"""

from functools import wraps
from flask import jsonify
from flask_login import current_user


def login_required(f):
    """
    Decorator to require login for a route.

    Returns 401 if not authenticated, 403 if the account is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'error': 'Authentication required'}), 401

        if not current_user.is_active:
            return jsonify({'error': 'Account is deactivated'}), 403

        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """
    Decorator to require admin role for a route.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'error': 'Authentication required'}), 401

        if not current_user.is_admin:
            return jsonify({'error': 'Admin access required'}), 403

        return f(*args, **kwargs)
    return decorated_function
