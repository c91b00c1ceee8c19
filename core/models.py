"""
Data models for the usage ledger.

This module defines the value types shared by the ledger, the
reconciliation protocol, the HTTP routes and the CLI.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

# Unbounded download limit (premium and friend plans)
UNLIMITED = float('inf')

Limit = Union[int, float]


def is_unlimited(limit: Limit) -> bool:
    """Check whether a limit is the unbounded sentinel."""
    return limit == UNLIMITED


class SubscriptionTier(str, Enum):
    """Subscription class of a user."""
    FREE = "free"
    FRIEND = "friend"
    PREMIUM = "premium"


ACTIVE_STATUS = "active"


@dataclass(frozen=True)
class ImageLimits:
    """Download limits per plan."""
    anonymous: Limit = 1
    free: Limit = 15
    premium: Limit = UNLIMITED
    friend: Limit = UNLIMITED

    @classmethod
    def from_config(cls) -> 'ImageLimits':
        """Build limits from config overrides."""
        import config
        return cls(
            anonymous=config.ANONYMOUS_IMAGE_LIMIT,
            free=config.FREE_IMAGE_LIMIT,
        )


@dataclass(frozen=True)
class Identity:
    """
    The signed-in user as seen by the ledger.

    Only the fields the quota depends on are carried; the rest of the
    profile stays in the database.
    """
    user_id: str
    email: Optional[str] = None
    subscription_tier: str = SubscriptionTier.FREE.value
    subscription_status: str = "inactive"

    @property
    def is_premium(self) -> bool:
        return (self.subscription_tier == SubscriptionTier.PREMIUM.value
                and self.subscription_status == ACTIVE_STATUS)

    @property
    def is_friend(self) -> bool:
        return (self.subscription_tier == SubscriptionTier.FRIEND.value
                and self.subscription_status == ACTIVE_STATUS)

    @property
    def has_subscription(self) -> bool:
        """Any paid-or-gifted plan that is currently active."""
        return (self.subscription_tier != SubscriptionTier.FREE.value
                and self.subscription_status == ACTIVE_STATUS)


@dataclass(frozen=True)
class CounterRow:
    """One row of the server-side usage table."""
    user_id: str
    downloads_used: int
    last_updated: Optional[datetime] = None


class SyncAction(str, Enum):
    """What a reconciliation round did."""
    CREATED = "created"      # No server row existed; created from local count
    PULLED = "pulled"        # Server was ahead; local ledger padded
    PUSHED = "pushed"        # Local was ahead; server counter raised
    UNCHANGED = "unchanged"  # Both sides already agreed
    SKIPPED = "skipped"      # Anonymous or no counter store configured
    FAILED = "failed"        # I/O failure; nothing changed locally


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation round."""
    action: SyncAction
    local_before: int
    server_before: Optional[int] = None
    final_count: Optional[int] = None
    attempts: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.action not in (SyncAction.FAILED, SyncAction.SKIPPED)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "action": self.action.value,
            "local_before": self.local_before,
            "server_before": self.server_before,
            "final_count": self.final_count,
            "attempts": self.attempts,
            "error": self.error,
        }


@dataclass
class UsageSnapshot:
    """Quota state rendered by badges, progress bars and the download button."""
    limit: Limit
    used: int
    remaining: Limit

    @property
    def unlimited(self) -> bool:
        return is_unlimited(self.limit)

    @property
    def can_consume(self) -> bool:
        return self.remaining > 0

    @property
    def usage_percentage(self) -> float:
        """Get usage as percentage (0-100)."""
        if self.unlimited:
            return 0.0
        if self.limit == 0:
            return 100.0
        return min(100.0, (self.used / self.limit) * 100)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization (unbounded -> None)."""
        return {
            "limit": None if self.unlimited else int(self.limit),
            "used": self.used,
            "remaining": None if self.unlimited else int(self.remaining),
            "unlimited": self.unlimited,
            "can_consume": self.can_consume,
            "usage_percentage": round(self.usage_percentage, 1),
        }
