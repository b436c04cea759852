"""Lazy values and nested query loaders."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

import structlog

from row_graph.core.exceptions import MultipleRowsError
from row_graph.mapping.factory import ObjectFactory, raw_type

if TYPE_CHECKING:
    from row_graph.core.cache_key import CacheKey
    from row_graph.core.executor import Executor
    from row_graph.mapping.plan import Statement

T = TypeVar("T")

logger = structlog.get_logger(__name__)

_PENDING = object()


class Lazy(Generic[T]):
    """A value that is either realized or pending a loader.

    get() runs the loader on first access only and memoizes its result.
    """

    __slots__ = ("_loader", "_value")

    def __init__(self, loader: Callable[[], T]) -> None:
        self._loader: Callable[[], T] | None = loader
        self._value: Any = _PENDING

    @classmethod
    def realized(cls, value: T) -> Lazy[T]:
        lazy: Lazy[T] = cls(lambda: value)
        lazy._value = value
        lazy._loader = None
        return lazy

    @property
    def loaded(self) -> bool:
        return self._value is not _PENDING

    def get(self) -> T:
        if self._value is _PENDING:
            loader = self._loader
            assert loader is not None
            self._value = loader()
            self._loader = None
        return self._value  # type: ignore[no-any-return]

    def __repr__(self) -> str:
        if self.loaded:
            return f"Lazy(realized={self._value!r})"
        return "Lazy(pending)"


def unwrap(value: Any) -> Any:
    """Return the realized value of a Lazy, loading it if needed."""
    return value.get() if isinstance(value, Lazy) else value


class ResultLoader:
    """Runs one nested query and shapes its result for the target property."""

    def __init__(
        self,
        executor: Executor,
        statement: Statement,
        parameters: Any,
        target_type: Any,
        cache_key: CacheKey,
        object_factory: ObjectFactory,
    ) -> None:
        self.executor = executor
        self.statement = statement
        self.parameters = parameters
        self.target_type = target_type
        self.cache_key = cache_key
        self._object_factory = object_factory

    def load_result(self) -> Any:
        logger.debug(
            "nested_query_load",
            statement=self.statement.id,
            parameters=self.parameters,
        )
        rows = self.executor.query(self.statement, self.parameters, cache_key=self.cache_key)
        return extract_result(rows, self.target_type, self.statement, self._object_factory)


def extract_result(
    rows: list[Any],
    target_type: Any,
    statement: Statement,
    object_factory: ObjectFactory,
) -> Any:
    """Return a collection for collection targets, else the single row value."""
    if target_type is not None and object_factory.is_collection(target_type):
        cls = object_factory.resolve_interface(raw_type(target_type))
        if cls is list or not isinstance(cls, type):
            return list(rows)
        return cls(rows)
    if target_type is not None and object_factory.is_immutable_collection(target_type):
        return object_factory.create(target_type, [list], [list(rows)])
    if not rows:
        return None
    if len(rows) > 1:
        raise MultipleRowsError(statement.id, len(rows))
    return rows[0]
