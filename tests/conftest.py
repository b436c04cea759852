"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import pytest

from row_graph.mapping.plan import Statement


class FakeCursor:
    """In-memory DB-API cursor.

    Usage:
        FakeCursor(["id", "name"], [(1, "Alice"), (2, "Bob")])
    """

    def __init__(
        self,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        types: Sequence[Any] | None = None,
        *,
        fail_at: int | None = None,
    ) -> None:
        type_codes = list(types) if types is not None else [None] * len(columns)
        self.description = [(name, code, None, None, None, None, None) for name, code in zip(columns, type_codes)]
        self._rows = [tuple(r) for r in rows]
        self._pos = 0
        self._fail_at = fail_at
        self.closed = False
        self.fetch_count = 0

    def fetchone(self) -> tuple[Any, ...] | None:
        if self.closed:
            raise RuntimeError("cursor is closed")
        if self._fail_at is not None and self._pos == self._fail_at:
            raise RuntimeError("connection lost")
        self.fetch_count += 1
        if self._pos >= len(self._rows):
            return None
        row = self._rows[self._pos]
        self._pos += 1
        return row

    def close(self) -> None:
        self.closed = True


class MultiResultCursor:
    """Fake cursor exposing several result sets through nextset()."""

    def __init__(self, *result_sets: tuple[Sequence[str], Sequence[Sequence[Any]]]) -> None:
        self._cursors = [FakeCursor(columns, rows) for columns, rows in result_sets]
        self._index = 0
        self.closed = False

    @property
    def description(self) -> Any:
        return self._cursors[self._index].description

    def fetchone(self) -> Any:
        return self._cursors[self._index].fetchone()

    def nextset(self) -> bool | None:
        if self._index + 1 >= len(self._cursors):
            return None
        self._index += 1
        return True

    def close(self) -> None:
        self.closed = True


class CountingRunner:
    """StatementRunner serving canned rows and recording every call."""

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[[Any], Any]] = {}
        self.calls: list[tuple[str, Any]] = []
        self.cursors: list[Any] = []

    def register(
        self,
        statement_id: str,
        columns: Sequence[str],
        rows: Callable[[Any], Sequence[Sequence[Any]]] | Sequence[Sequence[Any]],
    ) -> None:
        def _handler(parameters: Any) -> FakeCursor:
            data = rows(parameters) if callable(rows) else rows
            return FakeCursor(columns, data)

        self._handlers[statement_id] = _handler

    def register_cursor(self, statement_id: str, factory: Callable[[Any], Any]) -> None:
        self._handlers[statement_id] = factory

    def run(self, statement: Statement, parameters: Any) -> Any:
        self.calls.append((statement.id, parameters))
        cursor = self._handlers[statement.id](parameters)
        self.cursors.append(cursor)
        return cursor

    def count(self, statement_id: str) -> int:
        return sum(1 for sid, _ in self.calls if sid == statement_id)


@pytest.fixture
def make_cursor() -> Callable[..., FakeCursor]:
    """Factory for FakeCursor instances."""
    return FakeCursor


@pytest.fixture
def runner() -> CountingRunner:
    return CountingRunner()


@pytest.fixture
def make_multi_cursor() -> Callable[..., MultiResultCursor]:
    """Factory for cursors with several result sets."""
    return MultiResultCursor
