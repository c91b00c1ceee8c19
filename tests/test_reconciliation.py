"""
Reconciliation tests.

Tests for:
- First sync (row creation)
- Server ahead (pull) / local ahead (push) / equal
- Max-merge law and idempotence
- Lost races on insert and conditional update
- Failure handling
"""
import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.models import SyncAction
from services.counter_store import InMemoryCounterStore
from services.reconciliation import Reconciler
from tests.fixtures import create_identity, create_ledger, FailingCounterStore, RacingCounterStore


def _ledger_with(count, store, user_id="1"):
    return create_ledger(
        identity=create_identity("free", user_id=user_id),
        counter_store=store,
        initial=[f"local-{i}" for i in range(count)]
    )


class TestReconcileRounds:
    """One reconciliation round per scenario."""

    def test_first_sync_creates_row_from_local_count(self):
        store = InMemoryCounterStore()
        ledger = _ledger_with(3, store)

        result = ledger.reconcile()

        assert result.action == SyncAction.CREATED
        assert result.server_before is None
        assert store.read("1").downloads_used == 3
        assert ledger.local_count() == 3

    def test_server_ahead_pads_local_ledger(self):
        store = InMemoryCounterStore({"1": 7})
        ledger = _ledger_with(2, store)

        result = ledger.reconcile()

        assert result.action == SyncAction.PULLED
        assert ledger.local_count() == 7
        assert store.read("1").downloads_used == 7
        # Padding does not hand quota back
        assert ledger.get_remaining_edits() == 15 - 7

    def test_local_ahead_raises_server_counter(self):
        store = InMemoryCounterStore({"1": 1})
        ledger = _ledger_with(4, store)

        result = ledger.reconcile()

        assert result.action == SyncAction.PUSHED
        assert result.server_before == 1
        assert result.final_count == 4
        assert store.read("1").downloads_used == 4
        assert ledger.local_count() == 4

    def test_equal_counts_change_nothing(self):
        store = InMemoryCounterStore({"1": 5})
        ledger = _ledger_with(5, store)
        before = ledger.edited_images
        stamp = store.read("1").last_updated

        result = ledger.reconcile()

        assert result.action == SyncAction.UNCHANGED
        assert ledger.edited_images == before
        assert store.read("1").last_updated == stamp

    def test_cleared_local_storage_does_not_restore_quota(self):
        """Wiping the browser cache is undone by the next sync."""
        store = InMemoryCounterStore()
        ledger = _ledger_with(0, store)
        for _ in range(15):
            assert ledger.consume_generated()
        assert not ledger.can_consume_more()

        ledger.reset()
        assert ledger.can_consume_more()
        ledger.reconcile()

        assert ledger.local_count() == 15
        assert not ledger.can_consume_more()


class TestMaxMergeLaw:
    """After a round both sides equal max(L, S)."""

    @pytest.mark.parametrize("local,server", [
        (0, 0), (0, 4), (4, 0), (3, 9), (9, 3), (6, 6),
    ])
    def test_both_sides_converge_on_max(self, local, server):
        store = InMemoryCounterStore({"1": server})
        ledger = _ledger_with(local, store)

        ledger.reconcile()

        assert ledger.local_count() == max(local, server)
        assert store.read("1").downloads_used == max(local, server)

    @pytest.mark.parametrize("local,server", [(2, 7), (7, 2), (0, None), (5, None)])
    def test_second_round_is_noop(self, local, server):
        store = InMemoryCounterStore({} if server is None else {"1": server})
        ledger = _ledger_with(local, store)

        ledger.reconcile()
        local_after, server_after = ledger.local_count(), store.read("1").downloads_used
        second = ledger.reconcile()

        assert second.action == SyncAction.UNCHANGED
        assert ledger.local_count() == local_after
        assert store.read("1").downloads_used == server_after


class TestRaces:
    """Concurrent devices updating the same counter."""

    def test_lost_update_retries_and_pushes(self):
        store = RacingCounterStore({"1": 2}, races=1, bump=1)
        ledger = _ledger_with(5, store)

        result = ledger.reconcile()

        assert result.action == SyncAction.PUSHED
        assert result.attempts == 2
        assert store.read("1").downloads_used == 5

    def test_lost_update_to_a_larger_count_pulls(self):
        store = RacingCounterStore({"1": 2}, races=1, bump=10)
        ledger = _ledger_with(5, store)

        result = ledger.reconcile()

        assert result.action == SyncAction.PULLED
        assert ledger.local_count() == 12
        assert store.read("1").downloads_used == 12

    def test_row_created_concurrently_is_merged(self):
        class LateRowStore(InMemoryCounterStore):
            def insert_if_absent(self, user_id, count):
                # Another device creates the row first
                super().insert_if_absent(user_id, 9)
                return super().insert_if_absent(user_id, count)

        store = LateRowStore()
        ledger = _ledger_with(3, store)

        result = ledger.reconcile()

        assert result.action == SyncAction.PULLED
        assert ledger.local_count() == 9

    def test_gives_up_after_max_attempts(self):
        store = RacingCounterStore({"1": 0}, races=10, bump=1)
        ledger = create_ledger(identity=create_identity("free"), initial=[str(i) for i in range(10)])
        reconciler = Reconciler(store, max_attempts=3)

        result = reconciler.reconcile(ledger, create_identity("free"))

        assert result.action == SyncAction.FAILED
        assert "concurrently" in result.error
        assert store.cas_calls == 3
        assert ledger.local_count() == 10

    def test_single_attempt_is_honoured(self):
        store = RacingCounterStore({"1": 0}, races=10, bump=1)
        ledger = create_ledger(identity=create_identity("free"), initial=[str(i) for i in range(10)])

        result = Reconciler(store, max_attempts=1).reconcile(ledger, create_identity("free"))

        assert result.action == SyncAction.FAILED
        assert store.cas_calls == 1

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValueError):
            Reconciler(InMemoryCounterStore(), max_attempts=0)


class TestFailures:
    """I/O failures are swallowed and leave the ledger alone."""

    def test_unreachable_backend(self):
        ledger = _ledger_with(2, FailingCounterStore())
        before = ledger.edited_images

        result = ledger.reconcile()

        assert result.action == SyncAction.FAILED
        assert "connection refused" in result.error
        assert ledger.edited_images == before

    def test_unexpected_exception_is_contained(self):
        class BrokenStore(InMemoryCounterStore):
            def read(self, user_id):
                raise KeyError("downloads_used")

        ledger = _ledger_with(2, BrokenStore())

        result = ledger.reconcile()

        assert result.action == SyncAction.FAILED
        assert ledger.local_count() == 2
        assert not result.succeeded
