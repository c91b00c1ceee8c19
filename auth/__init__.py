"""
Authentication module for GeoTag Pro.

Provides user accounts with subscription tiers, the server-side
download counter, friend codes and UPI subscription requests.
"""

from auth.models import db, User, UserUsage, FriendCode, SubscriptionRequest
from auth.routes import auth_bp, admin_bp
from auth.decorators import login_required, admin_required
from auth.identity import current_identity, refresh_identity

__all__ = [
    'db',
    'User',
    'UserUsage',
    'FriendCode',
    'SubscriptionRequest',
    'auth_bp',
    'admin_bp',
    'login_required',
    'admin_required',
    'current_identity',
    'refresh_identity',
]
