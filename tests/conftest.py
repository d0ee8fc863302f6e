from __future__ import annotations

from pathlib import Path
import itertools
import sys
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone

import pytest
from werkzeug.security import generate_password_hash

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from recipehub import create_app
from recipehub.config import Settings
from recipehub.errors import BackendError
from recipehub.models import PRIMARY_KEYS, USERS, User
from recipehub.session import SessionContext
from recipehub.storage import conflict_key

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)
PUBLIC_PREFIX = "https://storage.example.test/recipehub/"


class InMemoryTableStore:
    """Table store used for tests. ``broken`` holds (operation, table) pairs that fail."""

    def __init__(self) -> None:
        self.tables = defaultdict(dict)
        self.broken = set()
        self._clock = itertools.count(1)

    def _check(self, operation, table):
        if (operation, table) in self.broken:
            raise BackendError(f"{operation} on {table} rejected")

    def _now(self):
        return BASE_TIME + timedelta(seconds=next(self._clock))

    @staticmethod
    def _matches(row, filters):
        return all(row.get(column) == value for column, value in (filters or {}).items())

    def select(self, table, *, filters=None, order_by=None, descending=False, limit=None):
        self._check("select", table)
        if order_by and any(column != order_by for column in (filters or {})):
            # Firestore rejects this without a composite index.
            raise BackendError(f"select on {table} filtered on {sorted(filters)} and ordered by {order_by} needs an index")
        rows = [dict(row) for row in self.tables[table].values() if self._matches(row, filters)]
        if order_by:
            rows.sort(key=lambda row: (row.get(order_by) is None, row.get(order_by)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def insert(self, table, values):
        self._check("insert", table)
        row = dict(values)
        row[PRIMARY_KEYS[table]] = uuid.uuid4().hex
        row.setdefault("created_at", self._now())
        self.tables[table][row[PRIMARY_KEYS[table]]] = row
        return dict(row)

    def upsert(self, table, values, *, on):
        self._check("upsert", table)
        key = conflict_key(values, on)
        row = dict(self.tables[table].get(key, {}))
        row.update(values)
        row[PRIMARY_KEYS[table]] = key
        row.setdefault("created_at", self._now())
        self.tables[table][key] = row
        return dict(row)

    def update(self, table, filters, values):
        self._check("update", table)
        updated = []
        for row in self.tables[table].values():
            if self._matches(row, filters):
                row.update(values)
                updated.append(dict(row))
        return updated

    def delete(self, table, filters):
        self._check("delete", table)
        doomed = [key for key, row in self.tables[table].items() if self._matches(row, filters)]
        for key in doomed:
            del self.tables[table][key]
        return len(doomed)

    def count(self, table, filters=None):
        self._check("count", table)
        return sum(1 for row in self.tables[table].values() if self._matches(row, filters))

    def rows(self, table):
        return list(self.tables[table].values())


class InMemoryObjectStore:
    """Object store used for tests; records every upload and delete."""

    def __init__(self) -> None:
        self.blobs = {}
        self.uploads = []
        self.deletes = []
        self.reject_uploads_containing = set()
        self.reject_deletes = False

    def upload(self, path, data, *, content_type=None, cache_control="max-age=3600", overwrite=False):
        if any(marker in path for marker in self.reject_uploads_containing):
            raise BackendError(f"Upload of '{path}' failed: rejected")
        if not overwrite and path in self.blobs:
            raise BackendError(f"Upload of '{path}' failed: object exists")
        self.blobs[path] = data if isinstance(data, bytes) else data.read()
        self.uploads.append(path)
        return self.public_url(path)

    def delete(self, paths):
        for path in paths:
            if self.reject_deletes:
                raise BackendError(f"Delete of '{path}' failed: rejected")
            self.deletes.append(path)
            self.blobs.pop(path, None)

    def public_url(self, path):
        return f"{PUBLIC_PREFIX}{path}"

    def path_from_url(self, url):
        if url.startswith(PUBLIC_PREFIX):
            return url[len(PUBLIC_PREFIX):]
        if "://" in url:
            return None
        return url.lstrip("/")

    def seed(self, path, data=b"image"):
        self.blobs[path] = data
        return self.public_url(path)


@pytest.fixture
def tables():
    return InMemoryTableStore()


@pytest.fixture
def objects():
    return InMemoryObjectStore()


@pytest.fixture
def app(tables, objects):
    app = create_app(tables=tables, objects=objects, settings=Settings(secret_key="test-secret", upload_workers=2))
    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(tables):
    def _make_user(name="Alice", email=None, role="User", password="secret123"):
        row = tables.insert(
            USERS,
            {
                "user_name": name,
                "email": email or f"{name.lower()}@example.com",
                "role": role,
                "about_me": "",
                "image_url": None,
                "password_hash": generate_password_hash(password),
            },
        )
        return User.from_row(row)

    return _make_user


@pytest.fixture
def login(client):
    def _login(user, password="secret123"):
        return client.post("/login", data={"email": user.email, "password": password})

    return _login


@pytest.fixture
def context_for():
    def _context_for(user, saved_ids=()):
        return SessionContext(user=user, saved_ids=set(saved_ids))

    return _context_for
