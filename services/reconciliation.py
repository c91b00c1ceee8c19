"""
Reconciliation between a browser's edit ledger and the server counter.

Counts only ever grow, so the merge rule is max(local, server):
- no server row: create it from the local count
- server ahead: pad the local ledger (no quota is re-consumed)
- local ahead: raise the server counter with a conditional update
- equal: nothing to do

Any I/O failure is logged and swallowed; the local ledger is left as
it was and the next natural trigger (download, login, manual refresh)
tries again.
"""
import logging
from typing import Optional

import config
from core.errors import ConcurrentUpdateError, CounterStoreError
from core.models import Identity, ReconciliationResult, SyncAction
from services.counter_store import CounterStore

logger = logging.getLogger(__name__)


class Reconciler:
    """Runs max-merge rounds against a counter store."""

    def __init__(self, counter_store: CounterStore, max_attempts: Optional[int] = None):
        self.counter_store = counter_store
        self.max_attempts = max_attempts if max_attempts is not None else config.RECONCILE_MAX_ATTEMPTS
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    def reconcile(self, ledger, identity: Identity) -> ReconciliationResult:
        """
        Run one reconciliation round for ``identity`` against ``ledger``.

        Never raises. A lost race on insert or conditional update
        restarts the round, up to ``max_attempts`` times.
        """
        local_before = ledger.local_count()

        try:
            return self._reconcile(ledger, identity, local_before)
        except (CounterStoreError, ConcurrentUpdateError) as e:
            logger.warning(f"Usage sync failed for user {identity.user_id}: {e}")
            return ReconciliationResult(
                action=SyncAction.FAILED,
                local_before=local_before,
                error=str(e)
            )
        except Exception as e:
            logger.exception(f"Unexpected error syncing usage for user {identity.user_id}")
            return ReconciliationResult(
                action=SyncAction.FAILED,
                local_before=local_before,
                error=str(e)
            )

    def _reconcile(self, ledger, identity: Identity, local_before: int) -> ReconciliationResult:
        user_id = identity.user_id
        server_before = None

        for attempt in range(1, self.max_attempts + 1):
            row = self.counter_store.read(user_id)
            local_count = ledger.local_count()

            if row is None:
                if self.counter_store.insert_if_absent(user_id, local_count):
                    logger.info(f"Created usage row for user {user_id} with {local_count} downloads")
                    return ReconciliationResult(
                        action=SyncAction.CREATED,
                        local_before=local_before,
                        server_before=None,
                        final_count=local_count,
                        attempts=attempt
                    )
                logger.debug(f"Usage row for user {user_id} appeared concurrently, retrying")
                continue

            server_count = row.downloads_used or 0
            if server_before is None:
                server_before = server_count

            if server_count > local_count:
                added = ledger.align_to(server_count)
                logger.info(
                    f"Pulled usage for user {user_id}: server {server_count} > local {local_count} "
                    f"({added} entries added)"
                )
                return ReconciliationResult(
                    action=SyncAction.PULLED,
                    local_before=local_before,
                    server_before=server_before,
                    final_count=server_count,
                    attempts=attempt
                )

            if local_count > server_count:
                if self.counter_store.compare_and_set(user_id, server_count, local_count):
                    logger.info(f"Pushed usage for user {user_id}: {server_count} -> {local_count}")
                    return ReconciliationResult(
                        action=SyncAction.PUSHED,
                        local_before=local_before,
                        server_before=server_before,
                        final_count=local_count,
                        attempts=attempt
                    )
                logger.debug(f"Usage counter for user {user_id} moved during update, retrying")
                continue

            return ReconciliationResult(
                action=SyncAction.UNCHANGED,
                local_before=local_before,
                server_before=server_before,
                final_count=server_count,
                attempts=attempt
            )

        raise ConcurrentUpdateError(user_id, self.max_attempts)
