"""Lazily mapped cursor.

Wraps one open result set and maps objects only as they are requested.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING, Generic, TypeVar

import structlog

from row_graph.core.context import DEFAULT_ROW_BOUNDS, ResultContext, RowBounds
from row_graph.core.enums import CursorState
from row_graph.core.exceptions import CursorStateError

if TYPE_CHECKING:
    from row_graph.core.engine import MappingEngine
    from row_graph.mapping.plan import ResultMap
    from row_graph.mapping.wrapper import ResultSetWrapper

T = TypeVar("T")

logger = structlog.get_logger(__name__)


class _SingleObjectHandler(Generic[T]):
    """Takes one object per pass and stops the engine."""

    def __init__(self) -> None:
        self.result: T | None = None
        self.fetched = False

    def handle_result(self, context: ResultContext) -> None:
        self.result = context.result_object
        self.fetched = True
        context.stop()

    def reset(self) -> None:
        self.result = None
        self.fetched = False


class MappedCursor(Generic[T]):
    """Forward-only sequence of mapped objects that can be iterated once.

    The underlying cursor is closed once it is exhausted, on the first error
    and on close(). Use it as a context manager to release it early::

        with engine.materialize_lazy(cursor, result_map) as orders:
            for order in orders:
                ...
    """

    def __init__(
        self,
        engine: MappingEngine,
        result_map: ResultMap,
        rsw: ResultSetWrapper,
        row_bounds: RowBounds = DEFAULT_ROW_BOUNDS,
    ) -> None:
        self._engine = engine
        self._result_map = result_map
        self._rsw = rsw
        self._row_bounds = row_bounds
        self._handler: _SingleObjectHandler[T] = _SingleObjectHandler()
        self._state = CursorState.CREATED
        self._iterator_handed_out = False
        self._index = 0

    @property
    def state(self) -> CursorState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is CursorState.OPEN

    @property
    def is_consumed(self) -> bool:
        return self._state is CursorState.CONSUMED

    @property
    def current_index(self) -> int:
        """Number of objects handed out so far."""
        return self._index

    def __iter__(self) -> Iterator[T]:
        if self._state is CursorState.CLOSED:
            raise CursorStateError("A closed cursor cannot be iterated")
        if self._iterator_handed_out:
            raise CursorStateError("A mapped cursor can only be iterated once")
        self._iterator_handed_out = True
        return self._iterate()

    def _iterate(self) -> Iterator[T]:
        self._state = CursorState.OPEN
        try:
            while self._rsw is not None and self._index < self._row_bounds.limit:
                found, obj = self._fetch_next()
                if not found:
                    break
                self._index += 1
                yield obj  # type: ignore[misc]
        finally:
            # Runs on exhaustion, on error and when the generator is closed
            if self._state is CursorState.OPEN:
                self._state = CursorState.CONSUMED
            self._release()

    def _fetch_next(self) -> tuple[bool, T | None]:
        if self._index == 0 and self._row_bounds.offset:
            skipped = 0
            while skipped < self._row_bounds.offset:
                found, _ = self._fetch_one()
                if not found:
                    return False, None
                skipped += 1
        return self._fetch_one()

    def _fetch_one(self) -> tuple[bool, T | None]:
        self._handler.reset()
        self._engine.handle_row_values(
            self._rsw,
            self._result_map,
            self._handler,
            DEFAULT_ROW_BOUNDS,
            None,
            custom_handler=True,
        )
        return self._handler.fetched, self._handler.result

    def close(self) -> None:
        if self._state is not CursorState.CLOSED and self._state is not CursorState.CONSUMED:
            self._state = CursorState.CLOSED
        self._release()

    def _release(self) -> None:
        if self._rsw is not None:
            self._rsw.close()
            self._rsw = None  # type: ignore[assignment]
            self._engine.cleanup_after_result_set()
            logger.debug("mapped_cursor_released", result_map=self._result_map.id, objects=self._index)

    def __enter__(self) -> MappedCursor[T]:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
