"""
Friend codes: single-use codes that move an account to the friend plan.
"""
import logging
import secrets
from datetime import datetime
from typing import List

from sqlalchemy.exc import IntegrityError

import config
from auth.models import db, FriendCode, User
from core.errors import FriendCodeError
from core.models import SubscriptionTier

logger = logging.getLogger(__name__)


def random_code(fmt: str = None, alphabet: str = None) -> str:
    """Fill every 'X' in ``fmt`` with a random character from ``alphabet``."""
    fmt = fmt or config.FRIEND_CODE_FORMAT
    alphabet = alphabet or config.FRIEND_CODE_ALPHABET
    return ''.join(secrets.choice(alphabet) if ch == 'X' else ch for ch in fmt)


def generate_friend_codes(count: int = 1, fmt: str = None) -> List[FriendCode]:
    """
    Create ``count`` new active friend codes.

    A code that collides with an existing one is skipped, so fewer
    than ``count`` codes may come back.
    """
    if count < 1 or count > config.FRIEND_CODE_MAX_BATCH:
        raise FriendCodeError(f"Count must be between 1 and {config.FRIEND_CODE_MAX_BATCH}")
    fmt = fmt or config.FRIEND_CODE_FORMAT
    if 'X' not in fmt:
        raise FriendCodeError("Format must contain at least one 'X' placeholder")

    created = []
    for _ in range(count):
        friend_code = FriendCode(code=random_code(fmt), is_active=True)
        db.session.add(friend_code)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.warning(f"Skipping duplicate friend code {friend_code.code}")
            continue
        created.append(friend_code)

    logger.info(f"Generated {len(created)} friend codes")
    return created


def redeem_friend_code(user: User, code: str) -> User:
    """
    Redeem ``code`` for ``user`` and activate the friend plan.

    The code is claimed with a single conditional UPDATE, so of two
    concurrent redemptions only one matches the unredeemed row.
    """
    code = (code or '').strip().upper()
    if not code:
        raise FriendCodeError("Code is required")

    claimed = FriendCode.query.filter_by(code=code, is_active=True, redeemed_by=None).update(
        {'is_active': False, 'redeemed_by': user.id, 'redeemed_at': datetime.utcnow()},
        synchronize_session=False
    )
    if claimed == 0:
        db.session.rollback()
        raise FriendCodeError("Invalid or already used friend code")

    user.activate_plan(SubscriptionTier.FRIEND.value)
    db.session.commit()

    logger.info(f"User {user.id} redeemed friend code {code}")
    return user


def list_friend_codes() -> List[FriendCode]:
    """All codes, newest first."""
    return FriendCode.query.order_by(FriendCode.created_at.desc(), FriendCode.id.desc()).all()


def toggle_friend_code(code_id: int) -> FriendCode:
    """Enable or disable a code; a redeemed code cannot be enabled again."""
    friend_code = db.session.get(FriendCode, code_id)
    if friend_code is None:
        raise FriendCodeError(f"Friend code {code_id} not found")
    if friend_code.redeemed_by is not None:
        raise FriendCodeError(f"Friend code {friend_code.code} was already redeemed")

    friend_code.is_active = not friend_code.is_active
    db.session.commit()

    logger.info(f"Friend code {friend_code.code} {'enabled' if friend_code.is_active else 'disabled'}")
    return friend_code
