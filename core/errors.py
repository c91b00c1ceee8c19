"""
Custom exceptions for the GeoTag usage ledger.

All exceptions must be explicit and provide clear error messages
explaining how to fix the issue.

Running out of downloads is NOT an error: the ledger reports it
with False / 0, never with an exception.
"""


class GeoTagError(Exception):
    """Base exception for all GeoTag errors."""
    pass


class CounterStoreError(GeoTagError):
    """Raised when the persisted usage counter cannot be read or written."""

    def __init__(self, operation: str, reason: str = ""):
        message = f"Usage counter {operation} failed"
        if reason:
            message += f": {reason}"
        message += "\nFix: Check the counter backend connection (DATABASE_URL or BAAS_URL)"
        super().__init__(message)
        self.operation = operation
        self.reason = reason


class ConcurrentUpdateError(GeoTagError):
    """Raised when the usage counter keeps changing under a conditional update."""

    def __init__(self, user_id: str, attempts: int):
        message = f"Usage counter for user {user_id} changed concurrently {attempts} times"
        message += "\nFix: Retry the sync; another device is updating the same account"
        super().__init__(message)
        self.user_id = user_id
        self.attempts = attempts


class LedgerStorageError(GeoTagError):
    """Raised when the local edit cache cannot be persisted."""

    def __init__(self, key: str, reason: str = ""):
        message = f"Failed to persist edit ledger '{key}'"
        if reason:
            message += f": {reason}"
        message += "\nFix: Ensure LEDGER_DIR exists and is writable"
        super().__init__(message)
        self.key = key
        self.reason = reason


class FriendCodeError(GeoTagError):
    """Raised when a friend code cannot be generated or redeemed."""

    def __init__(self, reason: str = ""):
        message = "Friend code request failed"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.reason = reason


class SubscriptionRequestError(GeoTagError):
    """Raised when a subscription request is invalid or already decided."""

    def __init__(self, reason: str = ""):
        message = "Subscription request failed"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.reason = reason
