"""
Shared fixtures: an in-memory stand-in for the supabase client.

FakeSupabase implements the part of the PostgREST query builder the handlers
use (select with embedded relations, insert, update, delete, upsert, eq,
is_, not_, order, limit) plus storage uploads, so handler tests exercise
real queries against in-memory tables.
"""

import copy
import re
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import httpx
import pytest
from postgrest.exceptions import APIError

from portfolio_mcp.context import ToolContext
from portfolio_mcp.env_config import Settings
from portfolio_mcp.google_client import GoogleClient
from portfolio_mcp.handlers import build_registry
from portfolio_mcp.mailer import Mailer
from portfolio_mcp.store import Store

# parent table -> foreign key column its children carry
PARENT_KEYS = {"companies": "company_id", "deployments": "deployment_id"}

TABLE_DEFAULTS = {
    "companies": {"status": "discovery", "tools": [], "description": None},
    "milestones": {"status": "pending", "order_index": 0, "completed_at": None, "due_date": None, "notes": None},
    "requirements": {"status": "needed", "notes": None},
    "activity": {"type": "note", "author": "Chris"},
    "contacts": {"is_primary": False},
    "documents": {"company_id": None, "url": None, "file_type": None},
    "dev_tasks": {
        "status": "todo", "priority": "medium", "steps": [], "company_id": None,
        "due_date": None, "completed_at": None,
    },
    "deployments": {"status": "active"},
    "deployment_components": {"status": "not_configured", "config": {}, "error_message": None, "last_checked": None},
}


def split_columns(columns: str):
    """Split a select string on top-level commas."""
    parts, depth, current = [], 0, ""
    for ch in columns:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append(current.strip())
            current = ""
        else:
            current += ch
    if current.strip():
        parts.append(current.strip())
    return parts


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.columns = "*"
        self.payload = None
        self.on_conflict = None
        self.filters = []
        self.orders = []
        self.limit_count = None
        self.negate_next = False

    # Operations

    def select(self, columns="*"):
        self.op, self.columns = "select", columns
        return self

    def insert(self, payload):
        self.op, self.payload = "insert", payload
        return self

    def upsert(self, payload, on_conflict=None):
        self.op, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def update(self, payload):
        self.op, self.payload = "update", payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    # Filters and modifiers

    def _filter(self, predicate):
        if self.negate_next:
            self.negate_next = False
            self.filters.append(lambda row: not predicate(row))
        else:
            self.filters.append(predicate)
        return self

    @property
    def not_(self):
        self.negate_next = True
        return self

    def eq(self, column, value):
        return self._filter(lambda row: row.get(column) == value)

    def is_(self, column, value):
        assert value == "null"
        return self._filter(lambda row: row.get(column) is None)

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def limit(self, count):
        self.limit_count = count
        return self

    # Execution

    def execute(self):
        failure = self.db.failures.get((self.table, self.op))
        if failure:
            raise APIError({"message": failure, "code": "500", "hint": None, "details": None})
        self.db.calls.append((self.table, self.op))
        rows = self.db.tables.setdefault(self.table, [])
        handler = getattr(self, f"_execute_{self.op}")
        return SimpleNamespace(data=handler(rows))

    def _matching(self, rows):
        return [row for row in rows if all(f(row) for f in self.filters)]

    def _execute_select(self, rows):
        result = self._matching(rows)
        for column, desc in reversed(self.orders):
            present = [r for r in result if r.get(column) is not None]
            missing = [r for r in result if r.get(column) is None]
            present.sort(key=lambda r: r[column], reverse=desc)
            # PostgreSQL puts NULLs last ascending and first descending
            result = missing + present if desc else present + missing
        if self.limit_count is not None:
            result = result[: self.limit_count]
        return [self._project(row) for row in result]

    def _project(self, row):
        out = {}
        for part in split_columns(self.columns):
            match = re.match(r"^(\w+)\((.*)\)$", part)
            if match:
                name, inner = match.group(1), match.group(2)
                out[name] = self._embed(row, name, inner)
            elif part == "*":
                out.update(copy.deepcopy(row))
            else:
                out[part] = copy.deepcopy(row.get(part))
        return out

    def _embed(self, row, name, inner):
        sub = FakeQuery(self.db, name).select(inner)
        key = PARENT_KEYS.get(name)
        if key and key in row and self.table != name:
            parent = next((r for r in self.db.tables.get(name, []) if r["id"] == row[key]), None)
            return sub._project(parent) if parent else None
        child_key = PARENT_KEYS[self.table]
        return [sub._project(r) for r in self.db.tables.get(name, []) if r.get(child_key) == row["id"]]

    def _new_row(self, values):
        row = copy.deepcopy(TABLE_DEFAULTS.get(self.table, {}))
        row.update(copy.deepcopy(values))
        row.setdefault("id", str(uuid.uuid4()))
        stamp = self.db.tick()
        if self.table == "documents":
            row.setdefault("uploaded_at", stamp)
        else:
            row.setdefault("created_at", stamp)
        return row

    def _execute_insert(self, rows):
        payload = self.payload if isinstance(self.payload, list) else [self.payload]
        created = [self._new_row(values) for values in payload]
        rows.extend(created)
        return copy.deepcopy(created)

    def _execute_upsert(self, rows):
        payload = self.payload if isinstance(self.payload, list) else [self.payload]
        result = []
        for values in payload:
            existing = next((r for r in rows if r.get(self.on_conflict) == values.get(self.on_conflict)), None)
            if existing:
                existing.update(copy.deepcopy(values))
                result.append(copy.deepcopy(existing))
            else:
                row = self._new_row(values)
                rows.append(row)
                result.append(copy.deepcopy(row))
        return result

    def _execute_update(self, rows):
        updated = []
        for row in self._matching(rows):
            row.update(copy.deepcopy(self.payload))
            updated.append(copy.deepcopy(row))
        return updated

    def _execute_delete(self, rows):
        doomed = self._matching(rows)
        for row in doomed:
            rows.remove(row)
        # cascade deployment components like the real foreign key
        if self.table == "deployments":
            ids = {row["id"] for row in doomed}
            components = self.db.tables.get("deployment_components", [])
            components[:] = [c for c in components if c.get("deployment_id") not in ids]
        return copy.deepcopy(doomed)


class FakeBucket:
    def __init__(self, db, name):
        self.db = db
        self.name = name

    def upload(self, path, data, file_options=None):
        self.db.uploads.append({"bucket": self.name, "path": path, "data": data, "options": file_options})
        return SimpleNamespace(path=path)

    def get_public_url(self, path):
        return f"https://storage.example.test/{self.name}/{path}"


class FakeSupabase:
    """In-memory supabase client."""

    def __init__(self):
        self.tables = {}
        self.failures = {}
        self.calls = []
        self.uploads = []
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)
        self.storage = SimpleNamespace(from_=lambda bucket: FakeBucket(self, bucket))

    def tick(self):
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def table(self, name):
        return FakeQuery(self, name)

    def fail(self, table, op, message="simulated store failure"):
        """Make every `op` on `table` raise APIError."""
        self.failures[(table, op)] = message

    def add(self, table, **values):
        """Insert a row directly and return it."""
        return FakeQuery(self, table).insert(values).execute().data[0]

    def rows(self, table):
        return self.tables.get(table, [])


def not_found_transport(request):
    return httpx.Response(404, text="not found")


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def store(fake_db):
    return Store(fake_db)


@pytest.fixture
def http_client():
    return httpx.AsyncClient(transport=httpx.MockTransport(not_found_transport))


@pytest.fixture
def ctx(store, http_client):
    return ToolContext(
        store=store,
        mailer=Mailer(None, None),
        google=GoogleClient(http_client, None, None, None),
        http=http_client,
        settings=Settings(),
    )


@pytest.fixture
def registry():
    return build_registry()


@pytest.fixture
def dtiq(fake_db):
    return fake_db.add(
        "companies",
        slug="dtiq",
        name="DTIQ",
        description="Video surveillance",
        status="active",
        tools=["Zendesk"],
    )
