"""Unit tests for Lazy values and nested result extraction."""

from __future__ import annotations

import pytest

from row_graph.core.exceptions import MultipleRowsError
from row_graph.mapping.factory import ObjectFactory
from row_graph.mapping.lazy import Lazy, extract_result, unwrap
from row_graph.mapping.plan import Statement


class TestLazy:
    def test_loader_runs_once(self) -> None:
        calls = []

        def _load() -> str:
            calls.append(1)
            return "value"

        lazy = Lazy(_load)
        assert not lazy.loaded
        assert lazy.get() == "value"
        assert lazy.get() == "value"
        assert lazy.loaded
        assert len(calls) == 1

    def test_none_result_is_memoized(self) -> None:
        calls = []
        lazy = Lazy(lambda: calls.append(1))
        lazy.get()
        lazy.get()
        assert len(calls) == 1

    def test_realized(self) -> None:
        lazy = Lazy.realized(42)
        assert lazy.loaded
        assert lazy.get() == 42
        assert repr(lazy) == "Lazy(realized=42)"

    def test_loader_error_propagates_and_retries(self) -> None:
        attempts = []

        def _load() -> int:
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("boom")
            return 1

        lazy = Lazy(_load)
        with pytest.raises(RuntimeError):
            lazy.get()
        assert lazy.get() == 1

    def test_unwrap(self) -> None:
        assert unwrap(Lazy(lambda: 5)) == 5
        assert unwrap(5) == 5


class TestExtractResult:
    STATEMENT = Statement(id="customer.by_id")

    def test_collection_target(self) -> None:
        factory = ObjectFactory()
        assert extract_result([1, 2], list[int], self.STATEMENT, factory) == [1, 2]
        assert extract_result([1, 1], set[int], self.STATEMENT, factory) == {1}
        assert extract_result([], list, self.STATEMENT, factory) == []
        assert extract_result([1, 2], tuple[int, ...], self.STATEMENT, factory) == (1, 2)

    def test_single_target(self) -> None:
        factory = ObjectFactory()
        assert extract_result([], int, self.STATEMENT, factory) is None
        assert extract_result([7], int, self.STATEMENT, factory) == 7

    def test_too_many_rows(self) -> None:
        with pytest.raises(MultipleRowsError, match="customer.by_id"):
            extract_result([1, 2], int, self.STATEMENT, ObjectFactory())
