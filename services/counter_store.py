"""
Persisted usage counter: one row per signed-in user.

The server-side ``user_usage`` row is the source of truth whenever it
disagrees with a browser's local ledger. Three operations are needed:
point read, insert-if-absent, and a conditional update that only
applies if nobody else changed the row in between.

Backends:
- SQLAlchemyCounterStore: the app's own database (Flask-SQLAlchemy)
- RestCounterStore: hosted Postgres REST endpoint (PostgREST filters)
- InMemoryCounterStore: tests and local development
"""
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional

import requests
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

import config
from core.errors import CounterStoreError
from core.models import CounterRow

logger = logging.getLogger(__name__)


def _check_monotonic(expected: int, new_count: int) -> None:
    if new_count < expected:
        raise CounterStoreError(
            "update",
            f"refusing to lower downloads_used from {expected} to {new_count}"
        )


class CounterStore(ABC):
    """Port for the server-side usage counter."""

    @abstractmethod
    def read(self, user_id: str) -> Optional[CounterRow]:
        """Read the user's row, or None if it was never created."""
        pass

    @abstractmethod
    def insert_if_absent(self, user_id: str, count: int) -> bool:
        """Create the row. Returns False if one already exists."""
        pass

    @abstractmethod
    def compare_and_set(self, user_id: str, expected: int, new_count: int) -> bool:
        """
        Set downloads_used to new_count if it still equals expected.

        Returns False when the stored value moved on (or the row
        vanished). Raises CounterStoreError if new_count < expected.
        """
        pass


class InMemoryCounterStore(CounterStore):
    """Dict-backed counter store."""

    def __init__(self, initial: Optional[Dict[str, int]] = None):
        self._lock = threading.Lock()
        self._rows: Dict[str, CounterRow] = {}
        for user_id, count in (initial or {}).items():
            self._rows[str(user_id)] = CounterRow(str(user_id), count, datetime.utcnow())

    def read(self, user_id: str) -> Optional[CounterRow]:
        with self._lock:
            return self._rows.get(str(user_id))

    def insert_if_absent(self, user_id: str, count: int) -> bool:
        with self._lock:
            if str(user_id) in self._rows:
                return False
            self._rows[str(user_id)] = CounterRow(str(user_id), count, datetime.utcnow())
            return True

    def compare_and_set(self, user_id: str, expected: int, new_count: int) -> bool:
        _check_monotonic(expected, new_count)
        with self._lock:
            row = self._rows.get(str(user_id))
            if row is None or row.downloads_used != expected:
                return False
            self._rows[str(user_id)] = CounterRow(str(user_id), new_count, datetime.utcnow())
            return True


class SQLAlchemyCounterStore(CounterStore):
    """
    Counter store over the ``user_usage`` table.

    Each call pushes its own app context so the store can be used from
    the background sync executor as well as from request handlers.
    """

    def __init__(self, app):
        self.app = app

    def read(self, user_id: str) -> Optional[CounterRow]:
        from auth.models import UserUsage

        with self.app.app_context():
            try:
                row = UserUsage.query.filter_by(user_id=int(user_id)).first()
            except SQLAlchemyError as e:
                raise CounterStoreError("read", str(e)) from e
            return row.to_counter_row() if row is not None else None

    def insert_if_absent(self, user_id: str, count: int) -> bool:
        from auth.models import db, UserUsage

        with self.app.app_context():
            try:
                db.session.add(UserUsage.create_for_user(int(user_id), count))
                db.session.commit()
                return True
            except IntegrityError:
                db.session.rollback()
                logger.debug(f"Usage row for user {user_id} already exists")
                return False
            except SQLAlchemyError as e:
                db.session.rollback()
                raise CounterStoreError("insert", str(e)) from e

    def compare_and_set(self, user_id: str, expected: int, new_count: int) -> bool:
        from auth.models import db, UserUsage

        _check_monotonic(expected, new_count)
        with self.app.app_context():
            try:
                updated = (
                    UserUsage.query
                    .filter_by(user_id=int(user_id), downloads_used=expected)
                    .update(
                        {
                            UserUsage.downloads_used: new_count,
                            UserUsage.last_updated: datetime.utcnow(),
                        },
                        synchronize_session=False
                    )
                )
                db.session.commit()
            except SQLAlchemyError as e:
                db.session.rollback()
                raise CounterStoreError("update", str(e)) from e
            return updated == 1


class RestCounterStore(CounterStore):
    """
    Counter store over a hosted Postgres REST API.

    Uses PostgREST query filters (``user_id=eq.<id>``); the conditional
    update adds ``downloads_used=eq.<expected>`` and asks for the
    updated rows back, so an empty response means the race was lost.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        table: str = None,
        timeout: float = None,
        session: Optional[requests.Session] = None
    ):
        if not base_url:
            raise ValueError("base_url is required for RestCounterStore (set BAAS_URL)")
        self.endpoint = f"{base_url.rstrip('/')}/rest/v1/{table or config.BAAS_USAGE_TABLE}"
        self.timeout = timeout if timeout is not None else config.SYNC_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        })

    def _request(self, operation: str, method: str, **kwargs) -> requests.Response:
        try:
            response = self.session.request(method, self.endpoint, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise CounterStoreError(operation, str(e)) from e
        return response

    @staticmethod
    def _parse_row(data: dict) -> CounterRow:
        last_updated = data.get("last_updated")
        if isinstance(last_updated, str):
            last_updated = datetime.fromisoformat(last_updated.replace("Z", "+00:00"))
        return CounterRow(
            user_id=str(data["user_id"]),
            downloads_used=int(data.get("downloads_used") or 0),
            last_updated=last_updated
        )

    def read(self, user_id: str) -> Optional[CounterRow]:
        response = self._request(
            "read", "GET",
            params={"user_id": f"eq.{user_id}", "select": "user_id,downloads_used,last_updated"}
        )
        if response.status_code != 200:
            raise CounterStoreError("read", f"HTTP {response.status_code}: {response.text[:200]}")

        rows = response.json()
        if not rows:
            return None
        return self._parse_row(rows[0])

    def insert_if_absent(self, user_id: str, count: int) -> bool:
        response = self._request(
            "insert", "POST",
            json={
                "user_id": user_id,
                "downloads_used": count,
                "last_updated": datetime.utcnow().isoformat(),
            },
            headers={"Prefer": "return=minimal"}
        )
        if response.status_code == 409:
            return False
        if response.status_code not in (200, 201, 204):
            raise CounterStoreError("insert", f"HTTP {response.status_code}: {response.text[:200]}")
        return True

    def compare_and_set(self, user_id: str, expected: int, new_count: int) -> bool:
        _check_monotonic(expected, new_count)
        response = self._request(
            "update", "PATCH",
            params={"user_id": f"eq.{user_id}", "downloads_used": f"eq.{expected}"},
            json={
                "downloads_used": new_count,
                "last_updated": datetime.utcnow().isoformat(),
            },
            headers={"Prefer": "return=representation"}
        )
        if response.status_code != 200:
            raise CounterStoreError("update", f"HTTP {response.status_code}: {response.text[:200]}")
        return len(response.json()) > 0
