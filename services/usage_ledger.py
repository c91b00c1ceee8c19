"""
Usage Ledger.

Tracks how many downloads a browser profile has consumed, enforces the
plan limit, and hands off to the reconciler so the local count and the
server counter converge on the larger of the two.
"""
import logging
import uuid
from concurrent.futures import Executor, Future
from pathlib import Path
from typing import Callable, List, Optional

from core.models import (
    ImageLimits,
    Identity,
    Limit,
    ReconciliationResult,
    SyncAction,
    UNLIMITED,
    UsageSnapshot,
    is_unlimited,
)
from services.ledger_storage import JsonFileLedgerStorage, LedgerStorage, lock_for

logger = logging.getLogger(__name__)

IdentityProvider = Callable[[], Optional[Identity]]


def limit_for_identity(identity: Optional[Identity], limits: ImageLimits) -> Limit:
    """
    Download limit for the given identity.

    Anonymous visitors get the anonymous allowance. Premium and friend
    plans are unbounded only while their status is active; a lapsed
    plan, or an unknown tier, falls back to the free allowance.
    """
    if identity is None:
        return limits.anonymous

    if identity.is_premium:
        return limits.premium
    if identity.is_friend:
        return limits.friend

    return limits.free


def remaining_for(limit: Limit, used: int) -> Limit:
    """Remaining downloads; unbounded stays unbounded, never negative."""
    if is_unlimited(limit):
        return UNLIMITED
    return max(0, limit - used)


class UsageLedger:
    """
    Per-profile download ledger.

    The stored list of edit identifiers is the local count; only its
    length matters. All mutations reload from storage under the lock
    shared by every ledger bound to the same storage key.
    """

    def __init__(
        self,
        storage: LedgerStorage,
        identity_provider: IdentityProvider,
        reconciler=None,
        executor: Optional[Executor] = None,
        limits: Optional[ImageLimits] = None
    ):
        """
        Args:
            storage: Local cache port for edit identifiers
            identity_provider: Zero-arg callable returning the current Identity or None
            reconciler: Reconciler used after each consume and on demand (optional)
            executor: Where fire-and-forget syncs run; inline when None
            limits: Plan limits (defaults to 1 anonymous / 15 free / unbounded paid)
        """
        self.storage = storage
        self.identity_provider = identity_provider
        self.reconciler = reconciler
        self.executor = executor
        self.limits = limits or ImageLimits()
        self._lock = lock_for(storage.key)
        self._last_sync: Optional[Future] = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def edited_images(self) -> List[str]:
        """Copy of the stored edit identifiers."""
        with self._lock:
            return self.storage.load()

    def local_count(self) -> int:
        return len(self.edited_images)

    def get_image_limit(self) -> Limit:
        return limit_for_identity(self.identity_provider(), self.limits)

    def get_remaining_edits(self) -> Limit:
        return remaining_for(self.get_image_limit(), self.local_count())

    def can_consume_more(self) -> bool:
        return self.get_remaining_edits() > 0

    def snapshot(self) -> UsageSnapshot:
        """Limit, used and remaining read against a single identity lookup."""
        limit = self.get_image_limit()
        used = self.local_count()
        return UsageSnapshot(limit=limit, used=used, remaining=remaining_for(limit, used))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def consume_one(self, edit_id: str) -> bool:
        """
        Consume one download unit.

        Returns False without touching the ledger when the quota is
        used up. On success a signed-in user's counter is synced in the
        background; a failed sync never undoes the local append.
        """
        identity = self.identity_provider()
        limit = limit_for_identity(identity, self.limits)

        with self._lock:
            items = self.storage.load()
            if remaining_for(limit, len(items)) <= 0:
                logger.info(f"Download refused for {self.storage.key}: {len(items)}/{limit} used")
                return False
            items.append(str(edit_id))
            self.storage.save(items)
            used = len(items)

        logger.debug(f"Consumed edit {edit_id} ({used}/{limit})")

        if identity is not None:
            self._schedule_sync(identity)
        return True

    def consume_generated(self) -> bool:
        """Consume one unit under a freshly generated identifier."""
        return self.consume_one(str(uuid.uuid4()))

    def reset(self) -> None:
        """Clear the ledger. Administrative use only."""
        with self._lock:
            self.storage.save([])
        logger.warning(f"Edit ledger {self.storage.key} reset")

    def align_to(self, count: int) -> int:
        """
        Pad the ledger with fresh identifiers up to ``count``.

        Used when the server knows of more consumption than this
        profile. Never shrinks the ledger. Returns the number added.
        """
        with self._lock:
            items = self.storage.load()
            missing = count - len(items)
            if missing <= 0:
                return 0
            items.extend(str(uuid.uuid4()) for _ in range(missing))
            self.storage.save(items)
        return missing

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(self) -> ReconciliationResult:
        """
        Run one reconciliation round now.

        Entry point for session start and manual refresh.
        """
        identity = self.identity_provider()
        if identity is None or self.reconciler is None:
            return ReconciliationResult(action=SyncAction.SKIPPED, local_before=self.local_count())
        return self.reconciler.reconcile(self, identity)

    def wait_for_sync(self, timeout: Optional[float] = None) -> Optional[ReconciliationResult]:
        """Block until the last background sync finishes."""
        if self._last_sync is None:
            return None
        return self._last_sync.result(timeout=timeout)

    def _schedule_sync(self, identity: Identity) -> None:
        if self.reconciler is None:
            return

        if self.executor is None:
            self.reconciler.reconcile(self, identity)
            return

        try:
            self._last_sync = self.executor.submit(self.reconciler.reconcile, self, identity)
        except RuntimeError as e:
            # Executor already shut down (app teardown)
            logger.warning(f"Could not schedule usage sync for user {identity.user_id}: {e}")


class LedgerFactory:
    """Builds a ledger for a browser profile key, wired to shared collaborators."""

    def __init__(
        self,
        ledger_dir: Path,
        identity_provider: IdentityProvider,
        reconciler=None,
        executor: Optional[Executor] = None,
        limits: Optional[ImageLimits] = None
    ):
        self.ledger_dir = Path(ledger_dir)
        self.identity_provider = identity_provider
        self.reconciler = reconciler
        self.executor = executor
        self.limits = limits or ImageLimits()

    def for_profile(self, profile_key: str) -> UsageLedger:
        return UsageLedger(
            storage=JsonFileLedgerStorage(self.ledger_dir, profile_key),
            identity_provider=self.identity_provider,
            reconciler=self.reconciler,
            executor=self.executor,
            limits=self.limits,
        )
