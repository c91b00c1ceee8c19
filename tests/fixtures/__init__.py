"""
Shared test fixtures for GeoTag tests.

This module provides reusable identities, ledgers and counter stores.
"""
from pathlib import Path
import sys
from typing import Dict, List, Optional

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from core.errors import CounterStoreError
from core.models import Identity
from services.counter_store import InMemoryCounterStore
from services.ledger_storage import InMemoryLedgerStorage
from services.reconciliation import Reconciler
from services.usage_ledger import UsageLedger


def create_identity(
    tier: str = "free",
    status: str = "inactive",
    user_id: str = "1"
) -> Identity:
    """Create an Identity for testing."""
    return Identity(
        user_id=user_id,
        email=f"user{user_id}@example.com",
        subscription_tier=tier,
        subscription_status=status
    )


def create_ledger(
    identity: Optional[Identity] = None,
    counter_store=None,
    initial: Optional[List[str]] = None,
    executor=None
) -> UsageLedger:
    """Create an in-memory ledger; syncs run inline unless an executor is given."""
    reconciler = Reconciler(counter_store) if counter_store is not None else None
    return UsageLedger(
        storage=InMemoryLedgerStorage(initial=initial),
        identity_provider=lambda: identity,
        reconciler=reconciler,
        executor=executor
    )


class FailingCounterStore(InMemoryCounterStore):
    """Counter store whose every call fails like an unreachable backend."""

    def read(self, user_id):
        raise CounterStoreError("read", "connection refused")

    def insert_if_absent(self, user_id, count):
        raise CounterStoreError("insert", "connection refused")

    def compare_and_set(self, user_id, expected, new_count):
        raise CounterStoreError("update", "connection refused")


class RacingCounterStore(InMemoryCounterStore):
    """
    Counter store where another device bumps the counter right before
    each of our first ``races`` conditional updates.
    """

    def __init__(self, initial: Optional[Dict[str, int]] = None, races: int = 1, bump: int = 1):
        super().__init__(initial)
        self.races = races
        self.bump = bump
        self.cas_calls = 0

    def compare_and_set(self, user_id, expected, new_count):
        self.cas_calls += 1
        if self.races > 0:
            self.races -= 1
            row = self.read(user_id)
            super().compare_and_set(user_id, row.downloads_used, row.downloads_used + self.bump)
        return super().compare_and_set(user_id, expected, new_count)
