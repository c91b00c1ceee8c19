"""
Test suite for GeoTag Pro.

Test Structure:
--------------
- test_usage_ledger.py    : Plan limits, consumption, reset
- test_reconciliation.py  : Max-merge sync with the server counter
- test_ledger_storage.py  : Local edit cache (JSON file, in-memory)
- test_counter_store.py   : SQL and REST counter backends
- test_subscriptions.py   : Friend codes and UPI subscription requests
- test_api.py             : API endpoint tests
- test_cli.py             : Ledger maintenance CLI
- fixtures/               : Shared identities, ledgers and counter stores

Running Tests:
-------------
Run all tests:
    python -m pytest tests

Run a specific test file:
    python -m pytest tests/test_usage_ledger.py -v
"""

from tests.fixtures import (
    create_identity,
    create_ledger,
    FailingCounterStore,
    RacingCounterStore,
)

__all__ = [
    'create_identity',
    'create_ledger',
    'FailingCounterStore',
    'RacingCounterStore',
]
