"""
Pytest configuration and shared fixtures.

Provides in-memory stand-ins for the account and profile stores so the
reconciler can be exercised without databases. The fakes mirror the adapter
methods the reconciler calls and keep rows in plain dicts.
"""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set

import pytest

from customer_sync.address import split_legacy_address
from customer_sync.auth import RequestContext, ROLE_CAPABILITIES
from customer_sync.errors import StoreError


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: needs live core1/core2 PostgreSQL databases"
    )


class FakeConnection:
    """Records transaction calls made by the reconciler."""

    def __init__(self, name: str):
        self.name = name
        self.begins = 0
        self.commits = 0
        self.rollbacks = 0
        self.closed = False
        self.fail_commit = False

    def begin(self):
        self.begins += 1

    def commit(self):
        if self.fail_commit:
            raise StoreError(self.name, "Reconnect and commit retry failed: server closed the connection")
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True


class FakeAccountStore:
    """In-memory `users` table."""

    def __init__(self, users: Optional[List[Dict[str, Any]]] = None):
        self.connection = FakeConnection("core2.users")
        self.users: Dict[int, Dict[str, Any]] = {}
        self.update_calls: List[Dict[str, Any]] = []
        self.fail_updates = False
        for user in users or []:
            self.add(**user)

    @property
    def name(self):
        return self.connection.name

    def add(self, user_id: int, role: str = "customer", **fields):
        row = {
            "user_id": user_id,
            "role": role,
            "firstname": "Juan",
            "lastname": "Dela Cruz",
            "email": f"user{user_id}@example.com",
            "phone": "09171234567",
            "status": "active",
            "profile_picture": None,
            "password": "old-hash",
        }
        row.update(fields)
        self.users[user_id] = row
        return row

    def find_email_owner(self, email, exclude_user_id):
        for user_id, row in self.users.items():
            if row["email"] == email and user_id != exclude_user_id:
                return user_id
        return None

    def customer_exists(self, user_id):
        row = self.users.get(user_id)
        return row is not None and row["role"] == "customer"

    def update_customer(self, user_id, fields):
        if self.fail_updates:
            raise StoreError(self.name, "Lost connection to server during query")
        self.update_calls.append(fields.as_dict())
        if not self.customer_exists(user_id):
            return 0
        self.users[user_id].update(fields.as_dict())
        return 1

    def set_status(self, user_id, status):
        from customer_sync.stores.fields import FieldSet
        return self.update_customer(user_id, FieldSet({"status": status}))

    def get_customer(self, user_id):
        if not self.customer_exists(user_id):
            return None
        row = dict(self.users[user_id])
        row.pop("password")
        row.pop("role")
        return row

    def get_contact(self, user_id):
        row = self.users.get(user_id)
        if row is None:
            return None
        return {name: row[name] for name in ("firstname", "lastname", "phone", "email")}

    def load_customer_accounts(self):
        return {
            user_id: row for user_id, row in self.users.items()
            if row["role"] == "customer"
        }


class FakeProfileStore:
    """In-memory `customers` table with its own auto-increment key."""

    def __init__(self):
        self.connection = FakeConnection("core1.customers")
        self.rows: List[Dict[str, Any]] = []
        self._ids = itertools.count(100)
        self.fail_writes = False
        self.fail_inserts_for: Set[int] = set()

    @property
    def name(self):
        return self.connection.name

    def add(self, user_id: int, **fields):
        row = {
            "customer_id": next(self._ids),
            "user_id": user_id,
            "address": "",
            "city": "",
            "state": "",
            "zip": "",
            "status": "offline",
            "latitude": None,
            "longitude": None,
            "location_updated_at": None,
            "created_at": None,
            "updated_at": None,
        }
        row.update(fields)
        self.rows.append(row)
        return row

    def rows_for(self, user_id):
        return [row for row in self.rows if row["user_id"] == user_id]

    def find_customer_id(self, user_id):
        rows = self.rows_for(user_id)
        return rows[0]["customer_id"] if rows else None

    def update_by_user(self, user_id, fields):
        if self.fail_writes:
            raise StoreError(self.name, "Table 'customers' is read only")
        rows = self.rows_for(user_id)
        for row in rows:
            row.update(fields.as_dict())
        return len(rows)

    def insert(self, fields):
        values = fields.as_dict()
        if self.fail_writes or values["user_id"] in self.fail_inserts_for:
            raise StoreError(self.name, f"duplicate key value for user_id {values['user_id']}")
        self.add(**values)
        return 1

    def insert_default(self, user_id, now):
        from customer_sync.stores.fields import FieldSet
        return self.insert(FieldSet({
            "user_id": user_id,
            "status": "offline",
            "created_at": now,
            "updated_at": now,
        }))

    def load_user_ids(self):
        return {row["user_id"] for row in self.rows}

    def get_by_user(self, user_id):
        rows = self.rows_for(user_id)
        return split_legacy_address(rows[0]) if rows else None

    def load_located(self):
        return [
            dict(row) for row in self.rows
            if row["latitude"] not in (None, 0) and row["longitude"] not in (None, 0)
        ]

    def update_location(self, customer_id, latitude, longitude, now):
        matched = 0
        for row in self.rows:
            if row["customer_id"] == customer_id:
                row.update(latitude=latitude, longitude=longitude, location_updated_at=now)
                matched += 1
        return matched


class FakeImageStore:

    def __init__(self, ok: bool = True, reason: str = "File is too large. Maximum size is 2MB."):
        from customer_sync.images import ImageStoreResult

        self.calls = []
        self.discarded = []
        self._result = (
            ImageStoreResult.stored("customer_profiles/juan_dela_cruz_7/profile_1700000000.png")
            if ok else ImageStoreResult.failed(reason)
        )

    def store(self, image_bytes, subject_kind="customer", subject_id=0, name_hints=None):
        self.calls.append((subject_kind, subject_id, name_hints))
        return self._result

    def discard(self, stored_filename):
        self.discarded.append(stored_filename)
        return True


class FakeAudit:

    def __init__(self, ok: bool = True):
        self.ok = ok
        self.records = []

    def record(self, actor_id, action, description, source_ip):
        self.records.append((actor_id, action, description, source_ip))
        return self.ok


class SteppingClock:
    """Returns a strictly increasing time on every call."""

    def __init__(self, start: Optional[datetime] = None, step: timedelta = timedelta(seconds=1)):
        self.now = start or datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        self.now = self.now + self.step
        return self.now


@pytest.fixture
def accounts():
    return FakeAccountStore()


@pytest.fixture
def profiles():
    return FakeProfileStore()


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def audit():
    return FakeAudit()


@pytest.fixture
def image_store():
    return FakeImageStore()


@pytest.fixture
def admin_context():
    return RequestContext(
        user_id=1,
        role="admin",
        capabilities=ROLE_CAPABILITIES["admin"],
        source_ip="10.0.0.5"
    )


@pytest.fixture
def dispatch_context():
    return RequestContext(
        user_id=2,
        role="dispatch",
        capabilities=ROLE_CAPABILITIES["dispatch"],
        source_ip="10.0.0.6"
    )


@pytest.fixture
def reconciler(accounts, profiles, image_store, audit, clock):
    from customer_sync.reconciliation.reconciler import CustomerReconciler

    return CustomerReconciler(
        accounts,
        profiles,
        image_store=image_store,
        audit=audit,
        clock=clock,
        password_hasher=lambda password: f"hashed:{password}"
    )


@pytest.fixture
def fake_image_store_factory():
    return FakeImageStore


@pytest.fixture
def fake_audit_factory():
    return FakeAudit
