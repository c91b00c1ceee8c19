"""
Database models for accounts, subscriptions and download usage.

Models:
- User: Accounts with role and subscription tier/status
- UserUsage: Server-side download counter (one row per user)
- FriendCode: Single-use codes that grant the friend plan
- SubscriptionRequest: UPI payments awaiting admin approval
"""

from datetime import datetime, timedelta
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from core.models import ACTIVE_STATUS, CounterRow, Identity, SubscriptionTier

db = SQLAlchemy()


class User(UserMixin, db.Model):
    """User account with subscription profile."""

    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(50), nullable=False, default='user')  # 'admin' or 'user'
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = db.Column(db.DateTime, nullable=True)

    # Subscription profile
    subscription_tier = db.Column(db.String(32), nullable=False, default=SubscriptionTier.FREE.value)
    subscription_status = db.Column(db.String(32), nullable=False, default='inactive')
    subscription_start_date = db.Column(db.DateTime, nullable=True)
    subscription_end_date = db.Column(db.DateTime, nullable=True)

    # Relationships
    usage = db.relationship('UserUsage', backref='user', uselist=False, lazy=True,
                            cascade='all, delete-orphan')
    subscription_requests = db.relationship('SubscriptionRequest', backref='user', lazy='dynamic',
                                            cascade='all, delete-orphan')

    def set_password(self, password: str) -> None:
        """Hash and set the user's password."""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        """Verify the password against the hash."""
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        """Check if user has admin role."""
        return self.role == 'admin'

    @property
    def effective_status(self) -> str:
        """Subscription status, reported inactive once the paid period has ended."""
        if (self.subscription_status == ACTIVE_STATUS
                and self.subscription_end_date is not None
                and datetime.utcnow() >= self.subscription_end_date):
            return 'inactive'
        return self.subscription_status

    def update_last_login(self) -> None:
        """Update last login timestamp."""
        self.last_login = datetime.utcnow()

    def activate_plan(self, tier: str, duration_days: int = None) -> None:
        """Switch to ``tier`` and mark it active, optionally for a fixed period."""
        now = datetime.utcnow()
        self.subscription_tier = tier
        self.subscription_status = ACTIVE_STATUS
        self.subscription_start_date = now
        self.subscription_end_date = now + timedelta(days=duration_days) if duration_days else None

    def cancel_plan(self) -> None:
        """Drop back to the free tier; the plan ends now."""
        self.subscription_tier = SubscriptionTier.FREE.value
        self.subscription_status = 'canceled'
        self.subscription_end_date = datetime.utcnow()

    def to_identity(self) -> Identity:
        """Quota-relevant view of this user."""
        return Identity(
            user_id=str(self.id),
            email=self.email,
            subscription_tier=self.subscription_tier,
            subscription_status=self.effective_status
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'subscription_tier': self.subscription_tier,
            'subscription_status': self.effective_status,
            'subscription_end_date': (self.subscription_end_date.isoformat()
                                      if self.subscription_end_date else None),
        }

    def __repr__(self) -> str:
        return f'<User {self.email} {self.subscription_tier}/{self.subscription_status}>'


class UserUsage(db.Model):
    """Authoritative download counter per user."""

    __tablename__ = 'user_usage'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)
    downloads_used = db.Column(db.Integer, default=0, nullable=False)
    last_updated = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @classmethod
    def create_for_user(cls, user_id: int, downloads_used: int = 0) -> 'UserUsage':
        """Create the counter row on first sync."""
        return cls(
            user_id=user_id,
            downloads_used=downloads_used,
            last_updated=datetime.utcnow()
        )

    def to_counter_row(self) -> CounterRow:
        return CounterRow(
            user_id=str(self.user_id),
            downloads_used=self.downloads_used,
            last_updated=self.last_updated
        )

    def __repr__(self) -> str:
        return f'<UserUsage user_id={self.user_id} downloads_used={self.downloads_used}>'


class FriendCode(db.Model):
    """Single-use code that grants the friend plan."""

    __tablename__ = 'friend_codes'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    redeemed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    redeemed_at = db.Column(db.DateTime, nullable=True)

    redeemer = db.relationship('User', foreign_keys=[redeemed_by])

    @property
    def is_redeemable(self) -> bool:
        return self.is_active and self.redeemed_by is None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'code': self.code,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'is_active': self.is_active,
            'redeemed_by': self.redeemed_by,
            'redeemed_by_email': self.redeemer.email if self.redeemer else None,
            'redeemed_at': self.redeemed_at.isoformat() if self.redeemed_at else None,
        }

    def __repr__(self) -> str:
        return f'<FriendCode {self.code} active={self.is_active}>'


class SubscriptionRequest(db.Model):
    """UPI payment reported by a user, approved or rejected by an admin."""

    __tablename__ = 'subscription_requests'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    transaction_id = db.Column(db.String(128), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    plan_type = db.Column(db.String(16), nullable=False)  # monthly, yearly
    status = db.Column(db.String(16), nullable=False, default='pending')
    # Status: pending, approved, rejected
    screenshot_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    decided_at = db.Column(db.DateTime, nullable=True)

    @property
    def is_pending(self) -> bool:
        return self.status == 'pending'

    def mark_decided(self, status: str) -> None:
        self.status = status
        self.decided_at = datetime.utcnow()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'user_email': self.user.email if self.user else None,
            'user_name': self.user.name if self.user else None,
            'transaction_id': self.transaction_id,
            'amount': self.amount,
            'plan_type': self.plan_type,
            'status': self.status,
            'screenshot_url': self.screenshot_url,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'decided_at': self.decided_at.isoformat() if self.decided_at else None,
        }

    def __repr__(self) -> str:
        return f'<SubscriptionRequest {self.transaction_id} status={self.status}>'
