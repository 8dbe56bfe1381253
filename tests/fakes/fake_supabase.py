"""In-memory stand-in for the Supabase client.

Supports the subset of the query builder the repositories use:
select/insert/update with eq, neq, in_, is_, ilike, or_, order, limit.
"""

import itertools
import re
from collections.abc import Callable
from copy import deepcopy
from typing import Any
from uuid import uuid4

_counter = itertools.count()


class FakeResponse:
    def __init__(self, data: list[dict[str, Any]]):
        self.data = data


def _like_to_regex(pattern: str) -> re.Pattern[str]:
    parts = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            parts.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
        i += 1
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def _split_top_level(expr: str) -> list[str]:
    parts, depth, current = [], 0, []
    for ch in expr:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    if current:
        parts.append("".join(current))
    return parts


def _or_clause(clause: str) -> Callable[[dict[str, Any]], bool]:
    column, op, value = clause.split(".", 2)
    if op == "is" and value == "null":
        return lambda row: row.get(column) is None
    if op == "eq":
        return lambda row: str(row.get(column)) == value
    if op == "in":
        values = set(value.strip("()").split(",")) if value.strip("()") else set()
        return lambda row: row.get(column) is not None and str(row.get(column)) in values
    raise ValueError(f"unsupported or_ clause: {clause}")


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.operation = "select"
        self.columns = "*"
        self.payload: Any = None
        self.filters: list[Callable[[dict[str, Any]], bool]] = []
        self.order_by: list[tuple[str, bool]] = []
        self.limit_count: int | None = None

    # Operations
    def select(self, columns: str = "*") -> "FakeQuery":
        self.operation = "select"
        self.columns = columns
        return self

    def insert(self, payload: dict[str, Any] | list[dict[str, Any]]) -> "FakeQuery":
        self.operation = "insert"
        self.payload = payload
        return self

    def update(self, payload: dict[str, Any]) -> "FakeQuery":
        self.operation = "update"
        self.payload = payload
        return self

    # Filters
    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column: str, values: list[Any]) -> "FakeQuery":
        allowed = list(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        return self

    def is_(self, column: str, value: Any) -> "FakeQuery":
        if value in ("null", None):
            self.filters.append(lambda row: row.get(column) is None)
        else:
            self.filters.append(lambda row: row.get(column) == value)
        return self

    def ilike(self, column: str, pattern: str) -> "FakeQuery":
        regex = _like_to_regex(pattern)
        self.filters.append(
            lambda row: isinstance(row.get(column), str) and regex.fullmatch(row[column]) is not None
        )
        return self

    def or_(self, expression: str) -> "FakeQuery":
        clauses = [_or_clause(c) for c in _split_top_level(expression)]
        self.filters.append(lambda row: any(clause(row) for clause in clauses))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.order_by.append((column, desc))
        return self

    def limit(self, count: int) -> "FakeQuery":
        self.limit_count = count
        return self

    # Execution
    def _matches(self, row: dict[str, Any]) -> bool:
        return all(f(row) for f in self.filters)

    def _project(self, row: dict[str, Any]) -> dict[str, Any]:
        if self.columns.strip() == "*":
            return deepcopy(row)
        names = [c.strip() for c in self.columns.split(",")]
        return {name: deepcopy(row.get(name)) for name in names}

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.table_name, self.operation, deepcopy(self.payload)))
        if self.db.before_write and self.operation in ("insert", "update"):
            self.db.before_write(self.table_name, self.operation, self.payload)

        rows = self.db.tables.setdefault(self.table_name, [])

        if self.operation == "insert":
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for item in items:
                row = deepcopy(item)
                row.setdefault("id", str(uuid4()))
                row.setdefault("created_at", f"2025-01-01T00:00:00.{next(_counter):06d}+00:00")
                rows.append(row)
                inserted.append(deepcopy(row))
            return FakeResponse(inserted)

        if self.operation == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(deepcopy(self.payload))
                    updated.append(deepcopy(row))
            return FakeResponse(updated)

        selected = [row for row in rows if self._matches(row)]
        for column, desc in reversed(self.order_by):
            selected.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        if self.limit_count is not None:
            selected = selected[: self.limit_count]
        return FakeResponse([self._project(row) for row in selected])


class FakeBucket:
    def __init__(self, files: dict[str, bytes]):
        self.files = files

    def download(self, path: str) -> bytes:
        if path not in self.files:
            raise Exception(f"Object not found: {path}")
        return self.files[path]


class FakeStorage:
    def __init__(self):
        self.buckets: dict[str, dict[str, bytes]] = {}

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self.buckets.setdefault(bucket, {}))


class FakeSupabase:
    """Tables are lists of row dicts keyed by table name."""

    def __init__(self):
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.storage = FakeStorage()
        self.calls: list[tuple[str, str, Any]] = []
        # Hook to simulate write failures: raise from it to fail the call
        self.before_write: Callable[[str, str, Any], None] | None = None

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, name: str) -> list[dict[str, Any]]:
        return self.tables.get(name, [])

    def seed(self, name: str, *rows: dict[str, Any]) -> list[dict[str, Any]]:
        """Insert rows directly, filling id and created_at."""
        return [self.table(name).insert(row).execute().data[0] for row in rows]
