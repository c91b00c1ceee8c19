"""
Identity provider for the usage ledger.

Maps Flask-Login's ``current_user`` onto the quota-relevant Identity.
"""
import logging
from typing import Optional

from flask import has_request_context
from flask_login import current_user

from auth.models import db, User
from core.models import Identity

logger = logging.getLogger(__name__)


def current_identity() -> Optional[Identity]:
    """Identity of the signed-in user, or None for anonymous visitors."""
    if not has_request_context():
        return None
    if not current_user.is_authenticated:
        return None
    return current_user.to_identity()


def refresh_identity(user_id) -> Optional[Identity]:
    """
    Reload a user's profile from the database.

    Used after a plan change (friend code, approved payment) so the
    new limit applies without signing out.
    """
    user = db.session.get(User, int(user_id))
    if user is None:
        logger.warning(f"Cannot refresh identity: user {user_id} not found")
        return None
    db.session.refresh(user)
    return user.to_identity()
