"""
Request-scoped access to the usage ledger.

The composition root (app.py) stores a LedgerFactory on the app;
routes ask for the ledger of the browser profile making the request.
"""
from typing import Optional

from flask import current_app, request

import config
from services.ledger_storage import is_valid_profile_key
from services.usage_ledger import LedgerFactory, UsageLedger

EXTENSION_KEY = 'geotag_ledgers'


def ledger_factory() -> LedgerFactory:
    return current_app.extensions[EXTENSION_KEY]


def profile_key_from_request() -> Optional[str]:
    """Browser profile key from the X-Profile-Id header or profile_id cookie."""
    key = request.headers.get(config.PROFILE_HEADER) or request.cookies.get(config.PROFILE_COOKIE)
    if key:
        key = key.strip()
    return key or None


def ledger_for_request() -> Optional[UsageLedger]:
    """Ledger for the requesting profile, or None when the profile key is missing or malformed."""
    key = profile_key_from_request()
    if not is_valid_profile_key(key):
        return None
    return ledger_factory().for_profile(key)
