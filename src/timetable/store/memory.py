"""Dict-backed store with the same semantics as the REST adapter.

Used by the test-suite and for offline development. Every call is recorded
in ``calls`` and failures can be injected per operation and table.
"""

import asyncio
import itertools
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, NamedTuple

from src.timetable.errors import PermanentStoreError, StoreError
from src.timetable.store.base import MEMBERSHIP_TYPES, Filters


class StoreCall(NamedTuple):
    operation: str
    table: str
    filters: dict[str, Any]


def _same(a: Any, b: Any) -> bool:
    # Keys are compared loosely: 7 matches "7"
    if a is None or b is None:
        return a is b
    return a == b or str(a) == str(b)


def _sort_key(value: Any) -> tuple:
    if value is None:
        return (2, 0, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value, "")
    return (1, 0, str(value))


def _matches(row: Mapping[str, Any], filters: Filters) -> bool:
    for column, expected in filters.items():
        actual = row.get(column)
        if isinstance(expected, MEMBERSHIP_TYPES):
            if not any(_same(actual, value) for value in expected):
                return False
        elif not _same(actual, expected):
            return False
    return True


class InMemoryStore:
    """In-memory relational store.

    Args:
        tables: Initial rows per table name.
        key_factory: Produces primary keys for inserted rows without one.
            Defaults to incrementing integers per table.
        returned_key_field: Column under which inserts echo the new key back.
    """

    def __init__(
        self,
        tables: Mapping[str, Iterable[Mapping[str, Any]]] | None = None,
        *,
        key_factory: Callable[[str], Any] | None = None,
        returned_key_field: str = "id",
    ) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self.calls: list[StoreCall] = []
        self.returned_key_field = returned_key_field
        self._key_factory = key_factory
        self._counters: dict[str, itertools.count] = {}
        self._failures: dict[tuple[str, str], list[Any]] = {}

    def fail(
        self,
        operation: str,
        table: str,
        error: Exception | None = None,
        *,
        times: int | None = None,
    ) -> None:
        """Make ``operation`` on ``table`` raise ``error``.

        ``times=None`` fails every call, otherwise only the next ``times``.
        """
        error = error or StoreError(f"{operation} on {table} failed")
        slot = self._failures.setdefault((operation, table), [])
        slot.append([error, times])

    def count_calls(self, operation: str | None = None, table: str | None = None) -> int:
        return sum(
            1
            for call in self.calls
            if (operation is None or call.operation == operation)
            and (table is None or call.table == table)
        )

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(table, [])

    async def _enter(self, operation: str, table: str, filters: Filters | None) -> None:
        self.calls.append(StoreCall(operation, table, dict(filters or {})))
        await asyncio.sleep(0)
        for entry in self._failures.get((operation, table), []):
            error, remaining = entry
            if remaining is None:
                raise error
            if remaining > 0:
                entry[1] = remaining - 1
                raise error

    def _next_key(self, table: str) -> Any:
        if self._key_factory is not None:
            return self._key_factory(table)
        if table not in self._counters:
            existing = [
                row["id"] for row in self.rows(table) if isinstance(row.get("id"), int)
            ]
            self._counters[table] = itertools.count(max(existing, default=0) + 1)
        return next(self._counters[table])

    async def select(
        self,
        table: str,
        columns: Sequence[str] | None = None,
        filters: Filters | None = None,
        ordering: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        await self._enter("select", table, filters)
        found = [dict(row) for row in self.rows(table) if _matches(row, filters or {})]
        for column in reversed(list(ordering or [])):
            descending = column.startswith("-")
            key = column.lstrip("-")
            found.sort(key=lambda row: _sort_key(row.get(key)), reverse=descending)
        if columns:
            found = [{c: row.get(c) for c in columns} for row in found]
        return found

    async def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        await self._enter("insert", table, None)
        stored = dict(row)
        if stored.get("id") is None:
            stored["id"] = self._next_key(table)
        self.rows(table).append(stored)
        echoed = dict(stored)
        if self.returned_key_field != "id":
            echoed[self.returned_key_field] = echoed.pop("id")
        return echoed

    async def update(
        self, table: str, patch: Mapping[str, Any], filters: Filters
    ) -> list[dict[str, Any]]:
        await self._enter("update", table, filters)
        if not filters:
            raise PermanentStoreError("update without filters refused")
        changed = []
        for row in self.rows(table):
            if _matches(row, filters):
                row.update(patch)
                changed.append(dict(row))
        return changed

    async def delete(self, table: str, filters: Filters) -> int:
        await self._enter("delete", table, filters)
        if not filters:
            raise PermanentStoreError("delete without filters refused")
        rows = self.rows(table)
        kept = [row for row in rows if not _matches(row, filters)]
        removed = len(rows) - len(kept)
        rows[:] = kept
        return removed
