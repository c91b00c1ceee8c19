"""
Local edit cache for the usage ledger.

The browser keeps the list of consumed edit identifiers in local
storage; here that is a pluggable port so the ledger can be driven by
a JSON file per profile, or kept in memory for tests.
"""
import json
import logging
import os
import re
import tempfile
import itertools
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from core.errors import LedgerStorageError

logger = logging.getLogger(__name__)

# Persisted document shape, same key the web client used
STORAGE_FIELD = "editedImages"

_locks: Dict[str, threading.RLock] = {}
_locks_guard = threading.Lock()
_memory_ids = itertools.count(1)

MAX_PROFILE_KEY_LENGTH = 128
_PROFILE_KEY = re.compile(r'[A-Za-z0-9_.-]+')


def is_valid_profile_key(profile_key: Optional[str]) -> bool:
    """Profile keys name the ledger file directly, so only a safe charset is accepted."""
    return (bool(profile_key)
            and len(profile_key) <= MAX_PROFILE_KEY_LENGTH
            and _PROFILE_KEY.fullmatch(profile_key) is not None
            and profile_key not in ('.', '..'))


def lock_for(key: str) -> threading.RLock:
    """
    Get the process-wide lock for a storage key.

    Every ledger bound to the same key shares one lock, so two
    ledger instances over the same profile cannot interleave a
    check-then-append.
    """
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _locks[key] = lock
        return lock


class LedgerStorage(ABC):
    """Storage port: load and save the ordered list of edit identifiers."""

    key: str

    @abstractmethod
    def load(self) -> List[str]:
        """Load the stored identifiers (empty list if nothing stored)."""
        pass

    @abstractmethod
    def save(self, edited_images: List[str]) -> None:
        """Replace the stored identifiers."""
        pass


class InMemoryLedgerStorage(LedgerStorage):
    """Ledger storage kept in process memory."""

    def __init__(self, key: str = "memory", initial: Optional[List[str]] = None):
        self.key = f"memory:{key}:{next(_memory_ids)}"
        self._items = list(initial or [])

    def load(self) -> List[str]:
        return list(self._items)

    def save(self, edited_images: List[str]) -> None:
        self._items = list(edited_images)


class JsonFileLedgerStorage(LedgerStorage):
    """
    One JSON document per browser profile.

    File layout: ``{"editedImages": ["<uuid>", ...]}``. A missing,
    unreadable or malformed file loads as an empty ledger; the next
    reconciliation pulls the server count back in.
    """

    def __init__(self, directory: Path, profile_key: str):
        if not is_valid_profile_key(profile_key):
            raise ValueError(
                f"profile_key must be 1-{MAX_PROFILE_KEY_LENGTH} characters from "
                f"[A-Za-z0-9_.-], got {profile_key!r}"
            )
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.path = self.directory / f"{profile_key}.json"
        self.key = f"file:{self.path.resolve()}"

    def load(self) -> List[str]:
        if not self.path.exists():
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Ignoring unreadable ledger file {self.path}: {e}")
            return []

        items = data.get(STORAGE_FIELD) if isinstance(data, dict) else None
        if not isinstance(items, list):
            logger.warning(f"Ledger file {self.path} has no '{STORAGE_FIELD}' list, treating as empty")
            return []
        return [str(item) for item in items]

    def save(self, edited_images: List[str]) -> None:
        payload = {STORAGE_FIELD: list(edited_images)}
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_path, self.path)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            raise LedgerStorageError(str(self.path), str(e)) from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)
