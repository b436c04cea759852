"""Statement executor.

Runs statements through a StatementRunner, maps their results with a fresh
MappingEngine per statement and keeps a local cache of results keyed by
(statement id, parameters) for the lifetime of the executor.

Nested queries that hit a result still being built (a cycle through nested
queries) are deferred and resolved once the outermost query returns.
"""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
from typing import Any

import structlog

from row_graph.adapters.dbapi import iter_result_sets
from row_graph.adapters.protocol import StatementRunner
from row_graph.core.cache_key import CacheKey
from row_graph.core.context import DEFAULT_ROW_BOUNDS, ResultHandler, RowBounds
from row_graph.core.engine import MappingEngine
from row_graph.core.exceptions import ExecutionError, RowGraphError
from row_graph.core.registry import MappingRegistry
from row_graph.core.settings import Settings
from row_graph.mapping.converters import ConverterRegistry
from row_graph.mapping.factory import ObjectFactory
from row_graph.mapping.lazy import extract_result
from row_graph.mapping.meta import MetaObject
from row_graph.mapping.plan import Statement

logger = structlog.get_logger(__name__)


class _ExecutionPlaceholder:
    def __repr__(self) -> str:
        return "EXECUTION_PLACEHOLDER"


EXECUTION_PLACEHOLDER = _ExecutionPlaceholder()


@dataclass
class DeferredLoad:
    """Assigns a cached nested query result to a property once it is complete."""

    meta_object: MetaObject
    property: str
    key: CacheKey
    target_type: Any
    statement: Statement

    def can_load(self, local_cache: dict[CacheKey, Any]) -> bool:
        value = local_cache.get(self.key)
        return value is not None and value is not EXECUTION_PLACEHOLDER

    def load(self, local_cache: dict[CacheKey, Any], object_factory: ObjectFactory) -> None:
        rows = local_cache[self.key]
        value = extract_result(rows, self.target_type, self.statement, object_factory)
        self.meta_object.set_value(self.property, value)


class Executor:
    """Runs statements and their nested queries.

    Not thread-safe: use one executor per unit of work.

    Args:
        registry: Result maps and statements.
        runner: Executes statements against the data source.
        settings: Mapping behavior switches.
        converters: Column value converters.
        object_factory: Instance construction service.
    """

    def __init__(
        self,
        registry: MappingRegistry,
        runner: StatementRunner,
        *,
        settings: Settings | None = None,
        converters: ConverterRegistry | None = None,
        object_factory: ObjectFactory | None = None,
    ) -> None:
        self._registry = registry
        self._runner = runner
        self._settings = settings or Settings()
        self._converters = converters or ConverterRegistry()
        self._object_factory = object_factory or ObjectFactory()
        self._local_cache: dict[CacheKey, Any] = {}
        self._deferred_loads: list[DeferredLoad] = []
        self._query_stack = 0

    @property
    def registry(self) -> MappingRegistry:
        return self._registry

    def create_cache_key(self, statement: Statement, parameters: Any) -> CacheKey:
        return CacheKey(statement.id, parameters)

    def is_cached(self, statement: Statement, key: CacheKey) -> bool:
        return key in self._local_cache

    def defer_load(
        self,
        statement: Statement,
        meta_object: MetaObject,
        property_name: str,
        key: CacheKey,
        target_type: Any,
    ) -> None:
        deferred = DeferredLoad(meta_object, property_name, key, target_type, statement)
        if deferred.can_load(self._local_cache):
            deferred.load(self._local_cache, self._object_factory)
        else:
            self._deferred_loads.append(deferred)

    def query(
        self,
        statement: Statement | str,
        parameters: Any = None,
        *,
        cache_key: CacheKey | None = None,
        row_bounds: RowBounds = DEFAULT_ROW_BOUNDS,
        result_handler: ResultHandler | None = None,
    ) -> list[Any]:
        """Run a statement and return its mapped results.

        Results are served from the local cache when the same statement ran
        with equal parameters before. A custom result_handler always runs the
        statement and receives the objects instead of the returned list.

        Raises:
            StatementNotFoundError: If statement is an unknown id.
            ExecutionError: If the runner fails, or a nested query refers back
                to a result that is still being built from a constructor.
        """
        if isinstance(statement, str):
            statement = self._registry.get_statement(statement)
        key = cache_key if cache_key is not None else self.create_cache_key(statement, parameters)

        self._query_stack += 1
        try:
            cached = None if result_handler is not None else self._local_cache.get(key)
            if cached is EXECUTION_PLACEHOLDER:
                raise ExecutionError(
                    f"Statement '{statement.id}' refers back to a result that is still "
                    "being built; map the cyclic property as a nested query property "
                    "instead of a constructor argument"
                )
            if cached is not None:
                logger.debug("local_cache_hit", statement=statement.id)
                result = cached
            else:
                result = self._query_from_database(
                    statement, parameters, key, row_bounds, result_handler
                )
        finally:
            self._query_stack -= 1

        if self._query_stack == 0:
            self._resolve_deferred_loads()
        return result  # type: ignore[no-any-return]

    def clear_local_cache(self) -> None:
        self._local_cache.clear()

    def _resolve_deferred_loads(self) -> None:
        deferred_loads, self._deferred_loads = self._deferred_loads, []
        for deferred in deferred_loads:
            deferred.load(self._local_cache, self._object_factory)
        if deferred_loads:
            logger.debug("deferred_loads_resolved", count=len(deferred_loads))

    def _query_from_database(
        self,
        statement: Statement,
        parameters: Any,
        key: CacheKey,
        row_bounds: RowBounds,
        result_handler: ResultHandler | None,
    ) -> list[Any]:
        self._local_cache[key] = EXECUTION_PLACEHOLDER
        try:
            try:
                cursor = self._runner.run(statement, parameters)
            except RowGraphError:
                raise
            except Exception as e:
                raise ExecutionError(f"Statement '{statement.id}' failed: {e}") from e

            engine = MappingEngine(
                self._registry,
                settings=self._settings,
                converters=self._converters,
                object_factory=self._object_factory,
                executor=self,
                statement=statement,
            )
            with contextlib.closing(iter_result_sets(cursor)) as result_sets:
                result = engine.handle_result_sets(
                    result_sets, row_bounds=row_bounds, result_handler=result_handler
                )
        finally:
            del self._local_cache[key]
        self._local_cache[key] = result
        logger.debug("statement_executed", statement=statement.id, results=len(result))
        return result
