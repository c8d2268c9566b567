"""Shared fixtures: an in-memory stand-in for the Supabase query builder and seeded console data."""

from __future__ import annotations

import re
from collections import Counter
from types import SimpleNamespace
from typing import Any, Callable, Dict, List

import pytest

from dbconsole.modules.permissions.cache import PermissionCache, permission_cache
from dbconsole.modules.permissions.schemas import PermissionGrant, PermissionType, Principal, Role


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.action = "select"
        self.columns = "*"
        self.payload: Any = None
        self.filters: List[Callable[[dict], bool]] = []
        self.order_by = None
        self.limit_to = None
        self.offset_by = 0
        self.count = None

    def select(self, columns: str = "*", count: str = None) -> "FakeQuery":
        self.action = "select"
        self.columns = columns
        self.count = count
        return self

    def insert(self, payload) -> "FakeQuery":
        self.action = "insert"
        self.payload = payload
        return self

    def update(self, payload: dict) -> "FakeQuery":
        self.action = "update"
        self.payload = payload
        return self

    def delete(self) -> "FakeQuery":
        self.action = "delete"
        return self

    def eq(self, column: str, value) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column: str, values) -> "FakeQuery":
        allowed = list(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        return self

    def ilike(self, column: str, pattern: str) -> "FakeQuery":
        regex = re.compile(".*".join(re.escape(part) for part in pattern.split("%")), re.IGNORECASE)
        self.filters.append(lambda row: row.get(column) is not None and regex.fullmatch(row[column]) is not None)
        return self

    def is_(self, column: str, value: str) -> "FakeQuery":
        assert value == "null"
        self.filters.append(lambda row: row.get(column) is None)
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.order_by = (column, desc)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self.limit_to = count
        return self

    def offset(self, count: int) -> "FakeQuery":
        self.offset_by = count
        return self

    def _project(self, row: dict) -> dict:
        if self.columns.strip() == "*":
            return dict(row)
        names = [name.strip() for name in self.columns.split(",")]
        return {name: row.get(name) for name in names}

    def execute(self):
        rows = self.db.tables.setdefault(self.table, [])
        self.db.calls[(self.table, self.action)] += 1

        if self.action == "insert":
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            created = []
            for item in items:
                row = dict(item)
                row.setdefault("id", self.db.next_id(self.table))
                rows.append(row)
                created.append(dict(row))
            return SimpleNamespace(data=created)

        matched = [row for row in rows if all(check(row) for check in self.filters)]

        if self.action == "update":
            for row in matched:
                row.update(self.payload)
            return SimpleNamespace(data=[dict(row) for row in matched])

        if self.action == "delete":
            self.db.tables[self.table] = [row for row in rows if row not in matched]
            return SimpleNamespace(data=[dict(row) for row in matched])

        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda row: row.get(column), reverse=desc)
        total = len(matched) if self.count else None
        matched = matched[self.offset_by:]
        if self.limit_to is not None:
            matched = matched[:self.limit_to]
        return SimpleNamespace(data=[self._project(row) for row in matched], count=total)


class FakeAuth:
    def __init__(self, tokens: Dict[str, str]):
        self.tokens = tokens

    def get_user(self, jwt: str):
        if jwt not in self.tokens:
            raise ValueError("invalid JWT")
        return SimpleNamespace(user=SimpleNamespace(id=self.tokens[jwt]))


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[dict]] = {}
        self.calls: Counter = Counter()
        self.auth = FakeAuth({})
        self._ids: Counter = Counter()

    def next_id(self, table: str) -> int:
        existing = [row["id"] for row in self.tables.get(table, []) if "id" in row]
        self._ids[table] = max([self._ids[table], *existing]) + 1
        return self._ids[table]

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


@pytest.fixture(autouse=True)
def clear_permission_cache():
    permission_cache.clear()
    yield
    permission_cache.clear()


@pytest.fixture
def cache() -> PermissionCache:
    return PermissionCache(ttl_seconds=300, max_size=100)


@pytest.fixture
def supabase() -> FakeSupabase:
    """
    users:  1 alice (ADMIN), 2 bob (Analyst), 3 carol (no roles), 4 dave (VIEWER + Analyst)
    roles:  1 ADMIN (system), 2 VIEWER (system), 3 Analyst, 4 Auditor (no holders)
    """
    db = FakeSupabase()
    db.tables = {
        "users": [
            {"id": 1, "auth_user_id": "auth-alice", "username": "alice", "active": True},
            {"id": 2, "auth_user_id": "auth-bob", "username": "bob", "active": True},
            {"id": 3, "auth_user_id": "auth-carol", "username": "carol", "active": True},
            {"id": 4, "auth_user_id": "auth-dave", "username": "dave", "active": False},
        ],
        "roles": [
            {"id": 1, "name": "ADMIN", "description": "System administrator",
             "is_system_role": True, "role_class": "SYSTEM_ADMIN"},
            {"id": 2, "name": "VIEWER", "description": "Read everything",
             "is_system_role": True, "role_class": "SYSTEM_VIEWER"},
            {"id": 3, "name": "Analyst", "description": "Sales analyst",
             "is_system_role": False, "role_class": "STANDARD"},
            {"id": 4, "name": "Auditor", "description": None,
             "is_system_role": False, "role_class": None},
        ],
        "role_permissions": [
            {"id": 1, "role_id": 2, "permission_type": "READ",
             "schema_name": None, "table_name": None, "view_name": None},
            {"id": 2, "role_id": 3, "permission_type": "READ",
             "schema_name": "sales", "table_name": None, "view_name": None},
            {"id": 3, "role_id": 3, "permission_type": "WRITE",
             "schema_name": "sales", "table_name": "orders", "view_name": None},
            {"id": 4, "role_id": 4, "permission_type": "READ",
             "schema_name": "audit", "table_name": None, "view_name": "events"},
        ],
        "user_roles": [
            {"id": 1, "user_id": 1, "role_id": 1},
            {"id": 2, "user_id": 2, "role_id": 3},
            {"id": 3, "user_id": 4, "role_id": 2},
            {"id": 4, "user_id": 4, "role_id": 3},
        ],
    }
    db.auth = FakeAuth({
        "token-alice": "auth-alice",
        "token-bob": "auth-bob",
        "token-dave": "auth-dave",
        "token-ghost": "auth-ghost",
    })
    return db


def grant(permission_type: str, schema: str = None, table: str = None, view: str = None) -> PermissionGrant:
    return PermissionGrant(
        permission_type=PermissionType(permission_type),
        schema_name=schema,
        table_name=table,
        view_name=view,
    )


def role(role_id: int, name: str, *grants: PermissionGrant, **fields) -> Role:
    return Role(id=role_id, name=name, grants=frozenset(grants), **fields)


def principal(*roles: Role, principal_id: int = 1) -> Principal:
    return Principal(id=principal_id, username="tester", roles=list(roles))
