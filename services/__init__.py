"""
Service modules for GeoTag Pro.

- ledger_storage: Local edit cache port (JSON file per profile, in-memory)
- usage_ledger: Download quota ledger and per-profile factory
- counter_store: Server-side usage counter backends
- reconciliation: Max-merge sync between ledger and counter
- friend_codes: Friend plan codes
- subscriptions: UPI subscription requests

Import modules directly, e.g.:
    from services.usage_ledger import UsageLedger
"""

__all__ = []
