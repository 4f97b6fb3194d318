"""In-memory stand-in for the Supabase query builder used by the services.

Supports the subset of the PostgREST builder the services call: select (with
``count="exact"``), insert, update and delete, the eq/neq/in_/lt/lte/gt/gte
filters, order, limit, maybe_single and single. Stored values are normalized
the way PostgREST returns them: UUIDs as strings, datetimes as ISO strings.
"""

from __future__ import annotations

import copy
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import UUID, uuid4


@dataclass
class FakeResponse:
    data: Any
    count: int | None = None


def _normalize(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, list):
        return [_normalize(v) for v in value]
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items()}
    return value


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return value


class FakeQuery:
    """One chained query against a single table."""

    def __init__(self, client: FakeSupabaseClient, table: str) -> None:
        self.client = client
        self.table_name = table
        self.operation = "select"
        self.payload: Any = None
        self.count_mode: str | None = None
        self.filters: list[Callable[[dict[str, Any]], bool]] = []
        self.ordering: list[tuple[str, bool]] = []
        self.row_limit: int | None = None
        self.single_mode: str | None = None

    # Operations

    def select(self, columns: str = "*", count: str | None = None) -> FakeQuery:
        self.operation = "select"
        self.count_mode = count
        return self

    def insert(self, rows: dict[str, Any] | list[dict[str, Any]]) -> FakeQuery:
        self.operation = "insert"
        self.payload = rows
        return self

    def update(self, values: dict[str, Any]) -> FakeQuery:
        self.operation = "update"
        self.payload = values
        return self

    def delete(self) -> FakeQuery:
        self.operation = "delete"
        return self

    # Filters

    def _filter(self, column: str, predicate: Callable[[Any], bool]) -> FakeQuery:
        self.filters.append(lambda row: column in row and predicate(row[column]))
        return self

    def eq(self, column: str, value: Any) -> FakeQuery:
        expected = _normalize(value)
        return self._filter(column, lambda v: v == expected)

    def neq(self, column: str, value: Any) -> FakeQuery:
        expected = _normalize(value)
        return self._filter(column, lambda v: v != expected)

    def in_(self, column: str, values: list[Any]) -> FakeQuery:
        expected = {_normalize(v) for v in values}
        return self._filter(column, lambda v: v in expected)

    def lt(self, column: str, value: Any) -> FakeQuery:
        bound = _comparable(_normalize(value))
        return self._filter(column, lambda v: v is not None and _comparable(v) < bound)

    def lte(self, column: str, value: Any) -> FakeQuery:
        bound = _comparable(_normalize(value))
        return self._filter(column, lambda v: v is not None and _comparable(v) <= bound)

    def gt(self, column: str, value: Any) -> FakeQuery:
        bound = _comparable(_normalize(value))
        return self._filter(column, lambda v: v is not None and _comparable(v) > bound)

    def gte(self, column: str, value: Any) -> FakeQuery:
        bound = _comparable(_normalize(value))
        return self._filter(column, lambda v: v is not None and _comparable(v) >= bound)

    # Modifiers

    def order(self, column: str, desc: bool = False) -> FakeQuery:
        self.ordering.append((column, desc))
        return self

    def limit(self, count: int) -> FakeQuery:
        self.row_limit = count
        return self

    def maybe_single(self) -> FakeQuery:
        self.single_mode = "maybe"
        return self

    def single(self) -> FakeQuery:
        self.single_mode = "single"
        return self

    # Execution

    def _matching(self) -> list[dict[str, Any]]:
        return [row for row in self.client.tables[self.table_name] if all(f(row) for f in self.filters)]

    def execute(self) -> FakeResponse:
        self.client.calls.append((self.table_name, self.operation))
        failure = self.client.failures.get((self.table_name, self.operation))
        if failure is not None:
            raise failure

        if self.operation == "insert":
            return FakeResponse(data=self._insert())
        if self.operation == "update":
            rows = self._matching()
            values = _normalize(self.payload)
            for row in rows:
                row.update(values)
            return FakeResponse(data=copy.deepcopy(rows))
        if self.operation == "delete":
            rows = self._matching()
            self.client.tables[self.table_name] = [r for r in self.client.tables[self.table_name] if r not in rows]
            return FakeResponse(data=copy.deepcopy(rows))

        rows = self._matching()
        for column, desc in reversed(self.ordering):
            rows = sorted(
                rows,
                key=lambda r: (r.get(column) is None, "" if r.get(column) is None else _comparable(r.get(column))),
                reverse=desc,
            )
        total = len(rows)
        if self.row_limit is not None:
            rows = rows[: self.row_limit]
        rows = copy.deepcopy(rows)

        if self.single_mode:
            if len(rows) > 1:
                raise RuntimeError(f"Multiple rows returned from {self.table_name}")
            if not rows and self.single_mode == "single":
                raise RuntimeError(f"No rows returned from {self.table_name}")
            return FakeResponse(data=rows[0] if rows else None, count=total if self.count_mode else None)

        return FakeResponse(data=rows, count=total if self.count_mode else None)

    def _insert(self) -> list[dict[str, Any]]:
        rows = self.payload if isinstance(self.payload, list) else [self.payload]
        now = datetime.now(timezone.utc).isoformat()
        inserted = []
        for row in rows:
            stored = _normalize(dict(row))
            stored.setdefault("id", str(uuid4()))
            stored.setdefault("created_at", now)
            self.client.tables[self.table_name].append(stored)
            inserted.append(copy.deepcopy(stored))
        return inserted


class FakeSupabaseClient:
    """Supabase client double with in-memory tables."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.failures: dict[tuple[str, str], Exception] = {}
        self.calls: list[tuple[str, str]] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def seed(self, table: str, **values: Any) -> dict[str, Any]:
        """Insert one row directly and return it."""
        return FakeQuery(self, table).insert(values).execute().data[0]

    def rows(self, table: str, **filters: Any) -> list[dict[str, Any]]:
        expected = _normalize(filters)
        return [
            copy.deepcopy(row)
            for row in self.tables[table]
            if all(row.get(k) == v for k, v in expected.items())
        ]

    def fail_on(self, table: str, operation: str, error: Exception | None = None) -> None:
        """Make every ``operation`` on ``table`` raise."""
        self.failures[(table, operation)] = error or RuntimeError(f"{operation} on {table} failed")
