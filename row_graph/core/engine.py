"""Result mapping engine.

The MappingEngine reads forward-only cursors and materializes objects from
result maps: it picks the effective map per row, instantiates targets, applies
automatic and explicit bindings, stitches nested and collection properties
across consecutive rows and joins secondary result sets.

One engine serves one top-level statement. Its pools are not thread-safe.
"""

from __future__ import annotations

import typing
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Callable

import structlog

from row_graph.core.cache_key import NULL_CACHE_KEY, CacheKey, combine_keys
from row_graph.core.context import (
    DEFAULT_ROW_BOUNDS,
    NO_ROW_LIMIT,
    CallbackResultHandler,
    DefaultResultHandler,
    ResultContext,
    ResultHandler,
    RowBounds,
)
from row_graph.core.cursor import MappedCursor
from row_graph.core.enums import AutoMappingBehavior
from row_graph.core.exceptions import (
    ConfigurationError,
    ConversionError,
    DuplicateResultSetError,
    InstantiationError,
    ResultHandlerError,
)
from row_graph.core.registry import MappingRegistry
from row_graph.core.settings import Settings
from row_graph.mapping.converters import ConverterRegistry, TypeConverter
from row_graph.mapping.discriminator import resolve_discriminated_result_map
from row_graph.mapping.factory import ObjectFactory
from row_graph.mapping.lazy import Lazy, ResultLoader
from row_graph.mapping.meta import (
    MetaObject,
    add_to_collection,
    find_class_property,
    unwrap_optional,
)
from row_graph.mapping.plan import ResultMap, ResultMapping, Statement
from row_graph.mapping.wrapper import ResultSetWrapper, prepend_prefix

logger = structlog.get_logger(__name__)

# Marks a property whose value arrives later (lazy, deferred or pending relation)
DEFERRED = object()
# Marks a nested query skipped for a null key; the property is left unset
SKIPPED = object()


@dataclass
class _PendingRelation:
    meta_object: MetaObject
    result_mapping: ResultMapping


@dataclass(frozen=True)
class _AutoMapping:
    column: str
    property: str
    converter: TypeConverter


class MappingEngine:
    """Materializes object graphs from DB-API cursors.

    Args:
        registry: Resolved result maps and statements.
        settings: Mapping behavior switches.
        converters: Column value converters.
        object_factory: Instance construction service.
        executor: Runs nested queries. Required only by maps with nested queries.
        statement: The statement whose results are handled. Needed by
            handle_result_sets and for result-ordered streaming.
    """

    def __init__(
        self,
        registry: MappingRegistry,
        *,
        settings: Settings | None = None,
        converters: ConverterRegistry | None = None,
        object_factory: ObjectFactory | None = None,
        executor: Any | None = None,
        statement: Statement | None = None,
    ) -> None:
        self._registry = registry
        self._settings = settings or Settings()
        self._converters = converters or ConverterRegistry()
        self._object_factory = object_factory or ObjectFactory()
        self._executor = executor
        self._statement = statement

        # nested result maps
        self._nested_result_objects: dict[CacheKey, Any] = {}
        self._previous_row_value: Any = None

        # multiple result sets
        self._next_result_maps: dict[str, ResultMapping] = {}
        self._pending_relations: dict[CacheKey, list[_PendingRelation]] = {}

        self._degenerate_key_maps: set[str] = set()

    @property
    def converters(self) -> ConverterRegistry:
        return self._converters

    @property
    def _statement_id(self) -> str:
        return self._statement.id if self._statement is not None else "<unnamed>"

    @property
    def _result_ordered(self) -> bool:
        return self._statement is not None and self._statement.result_ordered

    # --- Public API ---

    def materialize(
        self,
        cursor: Any,
        result_map: ResultMap,
        row_limit: int | None = None,
        consumer: ResultHandler | Callable[[Any], None] | None = None,
        *,
        offset: int = 0,
    ) -> int:
        """Map every row of cursor and hand each top-level object to consumer.

        The cursor is closed on return and on error. Objects already handed to
        the consumer before an error are not taken back.

        Returns:
            The number of top-level objects delivered.
        """
        handler = _as_result_handler(consumer)
        bounds = RowBounds(offset=offset, limit=NO_ROW_LIMIT if row_limit is None else row_limit)
        rsw = ResultSetWrapper(cursor, self._converters)
        try:
            return self.handle_row_values(
                rsw,
                result_map,
                handler,
                bounds,
                None,
                custom_handler=not isinstance(handler, DefaultResultHandler),
            )
        finally:
            rsw.close()
            self.cleanup_after_result_set()

    def materialize_lazy(
        self, cursor: Any, result_map: ResultMap, *, offset: int = 0, row_limit: int | None = None
    ) -> MappedCursor[Any]:
        """Return a forward-only, iterate-once sequence mapping rows on demand."""
        bounds = RowBounds(offset=offset, limit=NO_ROW_LIMIT if row_limit is None else row_limit)
        rsw = ResultSetWrapper(cursor, self._converters)
        return MappedCursor(self, result_map, rsw, bounds)

    def resolve_effective_mapping(
        self, rsw: ResultSetWrapper, result_map: ResultMap, column_prefix: str | None = None
    ) -> ResultMap:
        """Resolve discriminators for the current row."""
        return resolve_discriminated_result_map(rsw, result_map, self._registry, column_prefix)

    def handle_result_sets(
        self,
        cursors: Iterable[Any],
        *,
        row_bounds: RowBounds = DEFAULT_ROW_BOUNDS,
        result_handler: ResultHandler | None = None,
    ) -> list[Any]:
        """Map the result sets of one statement execution.

        Result sets are paired with the statement's result maps in order; the
        remaining ones are matched by name against pending relations. A single
        list of results is returned as is, several are returned as a list of
        lists.
        """
        if self._statement is None:
            raise ConfigurationError("handle_result_sets requires a statement")
        statement = self._statement
        result_maps = [self._registry.get_result_map(map_id) for map_id in statement.result_maps]
        multiple_results: list[Any] = []
        iterator = iter(cursors)

        rsw = self._next_result_set(iterator)
        if rsw is not None and not result_maps:
            rsw.close()
            raise ConfigurationError(
                f"A query was run and no result maps were found for statement '{statement.id}'"
            )
        count = 0
        while rsw is not None and count < len(result_maps):
            self._handle_result_set(
                rsw, result_maps[count], multiple_results, None, result_handler, row_bounds
            )
            rsw = self._next_result_set(iterator)
            self.cleanup_after_result_set()
            count += 1

        while rsw is not None and count < len(statement.result_sets):
            parent_mapping = self._next_result_maps.get(statement.result_sets[count])
            if parent_mapping is not None and parent_mapping.nested_result_map_id is not None:
                nested_map = self._registry.get_result_map(parent_mapping.nested_result_map_id)
                self._handle_result_set(rsw, nested_map, None, parent_mapping)
            else:
                rsw.close()
            rsw = self._next_result_set(iterator)
            self.cleanup_after_result_set()
            count += 1

        if rsw is not None:
            rsw.close()

        logger.debug("result_sets_handled", statement=statement.id, result_sets=count)
        if len(multiple_results) == 1:
            return multiple_results[0]  # type: ignore[no-any-return]
        return multiple_results

    # --- Result set driving ---

    def _next_result_set(self, cursors: Iterator[Any]) -> ResultSetWrapper | None:
        for cursor in cursors:
            rsw = ResultSetWrapper(cursor, self._converters)
            if rsw.description is None:
                # Update counts and other result-less cursors carry no rows
                continue
            return rsw
        return None

    def _handle_result_set(
        self,
        rsw: ResultSetWrapper,
        result_map: ResultMap,
        multiple_results: list[Any] | None,
        parent_mapping: ResultMapping | None,
        result_handler: ResultHandler | None = None,
        row_bounds: RowBounds = DEFAULT_ROW_BOUNDS,
    ) -> None:
        try:
            if parent_mapping is not None:
                self.handle_row_values(rsw, result_map, None, DEFAULT_ROW_BOUNDS, parent_mapping)
            elif result_handler is None:
                default_handler = DefaultResultHandler()
                self.handle_row_values(rsw, result_map, default_handler, row_bounds, None)
                assert multiple_results is not None
                multiple_results.append(default_handler.result_list)
            else:
                self.handle_row_values(
                    rsw, result_map, result_handler, row_bounds, None, custom_handler=True
                )
        finally:
            rsw.close()

    def cleanup_after_result_set(self) -> None:
        self._nested_result_objects.clear()

    def handle_row_values(
        self,
        rsw: ResultSetWrapper,
        result_map: ResultMap,
        result_handler: ResultHandler | None,
        row_bounds: RowBounds,
        parent_mapping: ResultMapping | None,
        *,
        custom_handler: bool = False,
    ) -> int:
        """Map rows until the bounds are reached or the handler stops.

        Returns:
            The number of objects handed to result_handler.
        """
        if result_map.has_nested_result_maps:
            self._ensure_no_row_bounds(row_bounds)
            self._check_result_handler(custom_handler)
            return self._handle_row_values_for_nested_result_map(
                rsw, result_map, result_handler, row_bounds, parent_mapping
            )
        return self._handle_row_values_for_simple_result_map(
            rsw, result_map, result_handler, row_bounds, parent_mapping
        )

    def _ensure_no_row_bounds(self, row_bounds: RowBounds) -> None:
        if self._settings.safe_row_bounds_enabled and row_bounds.is_bounded:
            raise ResultHandlerError(
                "Result maps with nested result mappings cannot be safely constrained by "
                "row bounds. Disable safe_row_bounds_enabled to bypass this check."
            )

    def _check_result_handler(self, custom_handler: bool) -> None:
        if custom_handler and self._settings.safe_result_handler_enabled and not self._result_ordered:
            raise ResultHandlerError(
                "Result maps with nested result mappings cannot be safely used with a custom "
                "result handler. Disable safe_result_handler_enabled to bypass this check "
                "or ensure the statement returns ordered data and mark it result_ordered."
            )

    def _handle_row_values_for_simple_result_map(
        self,
        rsw: ResultSetWrapper,
        result_map: ResultMap,
        result_handler: ResultHandler | None,
        row_bounds: RowBounds,
        parent_mapping: ResultMapping | None,
    ) -> int:
        context = ResultContext()
        self._skip_rows(rsw, row_bounds)
        while self._should_process_more_rows(context, row_bounds) and rsw.next():
            discriminated = self.resolve_effective_mapping(rsw, result_map)
            row_value = self._get_row_value(rsw, discriminated)
            self._store_object(result_handler, context, row_value, parent_mapping, rsw)
        return context.result_count

    def _store_object(
        self,
        result_handler: ResultHandler | None,
        context: ResultContext,
        row_value: Any,
        parent_mapping: ResultMapping | None,
        rsw: ResultSetWrapper,
    ) -> None:
        if parent_mapping is not None:
            self._link_to_parents(rsw, parent_mapping, row_value)
        elif result_handler is not None:
            context.next_result_object(row_value)
            result_handler.handle_result(context)

    @staticmethod
    def _should_process_more_rows(context: ResultContext, row_bounds: RowBounds) -> bool:
        return not context.stopped and context.result_count < row_bounds.limit

    @staticmethod
    def _skip_rows(rsw: ResultSetWrapper, row_bounds: RowBounds) -> None:
        for _ in range(row_bounds.offset):
            if not rsw.next():
                break

    # --- Simple result maps ---

    def _get_row_value(
        self, rsw: ResultSetWrapper, result_map: ResultMap, column_prefix: str | None = None
    ) -> Any:
        lazy_loaders: list[Lazy[Any]] = []
        result_object = self._create_result_object(rsw, result_map, column_prefix)
        if result_object is not None and not self._has_converter_for_result_object(
            rsw, result_map.type
        ):
            meta = MetaObject(result_object)
            found_values = bool(result_map.constructor_mappings)
            if self._should_apply_automatic_mappings(result_map, False):
                found_values = (
                    self._apply_automatic_mappings(rsw, result_map, meta, column_prefix)
                    or found_values
                )
            found_values = (
                self._apply_property_mappings(rsw, result_map, meta, lazy_loaders, column_prefix)
                or found_values
            )
            found_values = bool(lazy_loaders) or found_values
            return result_object if found_values else None
        return result_object

    def _should_apply_automatic_mappings(self, result_map: ResultMap, nested: bool) -> bool:
        if result_map.auto_mapping is not None:
            return result_map.auto_mapping
        behavior = self._settings.auto_mapping_behavior
        if nested:
            return behavior is AutoMappingBehavior.FULL
        return behavior is not AutoMappingBehavior.NONE

    # --- Property mappings ---

    def _apply_property_mappings(
        self,
        rsw: ResultSetWrapper,
        result_map: ResultMap,
        meta: MetaObject,
        lazy_loaders: list[Lazy[Any]],
        column_prefix: str | None,
    ) -> bool:
        mapped_columns = rsw.mapped_column_names(result_map, column_prefix)
        found_values = False
        for mapping in result_map.property_mappings:
            column = prepend_prefix(mapping.column, column_prefix)
            if mapping.nested_result_map_id is not None:
                # Nested result maps are applied by _apply_nested_result_mappings
                column = None
            if (
                mapping.is_composite
                or (column is not None and column.upper() in mapped_columns)
                or mapping.result_set is not None
            ):
                value = self._get_property_mapping_value(
                    rsw, meta, mapping, lazy_loaders, column_prefix
                )
                if mapping.property is None:
                    continue
                if value is SKIPPED:
                    continue
                if value is DEFERRED:
                    found_values = True
                    continue
                if value is not None:
                    found_values = True
                if value is not None or self._settings.call_setters_on_nulls:
                    meta.set_value(mapping.property, value)
        return found_values

    def _get_property_mapping_value(
        self,
        rsw: ResultSetWrapper,
        meta: MetaObject,
        mapping: ResultMapping,
        lazy_loaders: list[Lazy[Any]],
        column_prefix: str | None,
    ) -> Any:
        if mapping.nested_query_id is not None:
            return self._get_nested_query_mapping_value(
                rsw, meta, mapping, lazy_loaders, column_prefix
            )
        if mapping.result_set is not None:
            self._add_pending_child_relation(rsw, meta, mapping)
            return DEFERRED
        column = prepend_prefix(mapping.column, column_prefix)
        assert column is not None
        python_type = mapping.python_type
        if python_type is None and mapping.property is not None:
            python_type = meta.setter_type(mapping.property)
        converter = mapping.converter or rsw.resolve_converter(python_type or object, column)
        return _read(converter, rsw, column, mapping.property)

    # --- Automatic mappings ---

    def _create_automatic_mappings(
        self,
        rsw: ResultSetWrapper,
        result_map: ResultMap,
        meta: MetaObject,
        column_prefix: str | None,
    ) -> list[_AutoMapping]:
        map_key = f"{result_map.id}:{column_prefix}"
        auto_mappings = rsw.auto_mappings.get(map_key)
        if auto_mappings is not None:
            return auto_mappings

        auto_mappings = []
        behavior = self._settings.unknown_column_behavior
        for column in rsw.unmapped_column_names(result_map, column_prefix):
            property_name = column
            if column_prefix:
                if not column.upper().startswith(column_prefix.upper()):
                    continue
                property_name = column[len(column_prefix) :]
            prop = meta.find_property(property_name, self._settings.map_underscore_to_camel_case)
            if prop is not None and meta.has_setter(prop):
                property_type = meta.setter_type(prop)
                if self._converters.has_converter(property_type, rsw.column_type(column)):
                    converter = rsw.resolve_converter(property_type, column)
                    auto_mappings.append(_AutoMapping(column, prop, converter))
                else:
                    behavior.do_action(self._statement_id, column, prop, property_type)
            else:
                behavior.do_action(self._statement_id, column, prop or property_name, None)
        rsw.auto_mappings[map_key] = auto_mappings
        return auto_mappings

    def _apply_automatic_mappings(
        self,
        rsw: ResultSetWrapper,
        result_map: ResultMap,
        meta: MetaObject,
        column_prefix: str | None,
    ) -> bool:
        found_values = False
        for auto in self._create_automatic_mappings(rsw, result_map, meta, column_prefix):
            value = _read(auto.converter, rsw, auto.column, auto.property)
            if value is not None:
                found_values = True
            if value is not None or self._settings.call_setters_on_nulls:
                meta.set_value(auto.property, value)
        return found_values

    # --- Multiple result sets ---

    def _link_to_parents(
        self, rsw: ResultSetWrapper, parent_mapping: ResultMapping, row_value: Any
    ) -> None:
        parent_key = self._create_key_for_multiple_results(
            rsw, parent_mapping, parent_mapping.column, parent_mapping.foreign_column
        )
        if row_value is None:
            return
        for parent in self._pending_relations.get(parent_key, []):
            self._link_objects(parent.meta_object, parent.result_mapping, row_value)

    def _add_pending_child_relation(
        self, rsw: ResultSetWrapper, meta: MetaObject, mapping: ResultMapping
    ) -> None:
        assert mapping.result_set is not None
        cache_key = self._create_key_for_multiple_results(
            rsw, mapping, mapping.column, mapping.column
        )
        self._pending_relations.setdefault(cache_key, []).append(_PendingRelation(meta, mapping))
        previous = self._next_result_maps.get(mapping.result_set)
        if previous is None:
            self._next_result_maps[mapping.result_set] = mapping
        elif previous != mapping:
            raise DuplicateResultSetError(mapping.result_set, previous.property, mapping.property)

    @staticmethod
    def _create_key_for_multiple_results(
        rsw: ResultSetWrapper,
        mapping: ResultMapping,
        names: str | None,
        columns: str | None,
    ) -> CacheKey:
        cache_key = CacheKey()
        cache_key.update(mapping)
        if columns and names:
            for name, column in zip(names.split(","), columns.split(",")):
                value = rsw.get(column.strip())
                if value is not None:
                    cache_key.update(name.strip().upper())
                    cache_key.update(str(value))
        return cache_key

    # --- Instantiation ---

    def _create_result_object(
        self, rsw: ResultSetWrapper, result_map: ResultMap, column_prefix: str | None
    ) -> Any:
        result_type = result_map.type
        constructor_mappings = result_map.constructor_mappings
        if self._has_converter_for_result_object(rsw, result_type):
            return self._create_primitive_result_object(rsw, result_map, column_prefix)
        if constructor_mappings:
            return self._create_parameterized_result_object(
                rsw, result_type, constructor_mappings, column_prefix
            )
        if self._object_factory.has_default_constructor(result_type):
            return self._object_factory.create(result_type)
        return self._create_by_constructor_signature(rsw, result_type, column_prefix)

    def _create_parameterized_result_object(
        self,
        rsw: ResultSetWrapper,
        result_type: Any,
        constructor_mappings: tuple[ResultMapping, ...],
        column_prefix: str | None,
    ) -> Any:
        found_values = False
        arg_types: list[Any] = []
        args: list[Any] = []
        for mapping in constructor_mappings:
            if mapping.nested_query_id is not None:
                value = self._get_nested_query_constructor_value(rsw, mapping, column_prefix)
            elif mapping.nested_result_map_id is not None:
                nested_map = self._registry.get_result_map(mapping.nested_result_map_id)
                value = self._get_row_value(
                    rsw, nested_map, self._column_prefix(column_prefix, mapping)
                )
            else:
                column = prepend_prefix(mapping.column, column_prefix)
                assert column is not None
                converter = mapping.converter or rsw.resolve_converter(
                    mapping.python_type or object, column
                )
                value = _read(converter, rsw, column, mapping.property)
            arg_types.append(mapping.python_type)
            args.append(value)
            found_values = value is not None or found_values
        if not found_values:
            return None
        names = [m.property for m in constructor_mappings]
        arg_names = names if all(names) else None
        return self._object_factory.create(result_type, arg_types, args, arg_names)  # type: ignore[arg-type]

    def _create_by_constructor_signature(
        self, rsw: ResultSetWrapper, result_type: Any, column_prefix: str | None
    ) -> Any:
        parameters = self._object_factory.constructor_parameters(result_type)
        columns = rsw.column_names
        class_names = rsw.class_names or [None] * len(columns)
        hints = _constructor_hints(result_type)
        if parameters is not None and len(parameters) == len(columns):
            arg_types = [hints.get(p.name, object) for p in parameters]
            if all(_accepts(t, c) for t, c in zip(arg_types, class_names)):
                found_values = False
                args: list[Any] = []
                for arg_type, column in zip(arg_types, columns):
                    full_column = prepend_prefix(column, column_prefix)
                    assert full_column is not None
                    converter = rsw.resolve_converter(arg_type, full_column)
                    value = _read(converter, rsw, full_column, None)
                    args.append(value)
                    found_values = value is not None or found_values
                if not found_values:
                    return None
                return self._object_factory.create(result_type, arg_types, args)
        raise InstantiationError(
            result_type,
            "no default constructor, no constructor mappings and no constructor matching "
            f"column types {[getattr(c, '__name__', c) for c in class_names]}",
        )

    def _create_primitive_result_object(
        self, rsw: ResultSetWrapper, result_map: ResultMap, column_prefix: str | None
    ) -> Any:
        if result_map.result_mappings:
            column = prepend_prefix(result_map.result_mappings[0].column, column_prefix)
        else:
            column = rsw.column_names[0]
        assert column is not None
        converter = rsw.resolve_converter(result_map.type, column)
        return _read(converter, rsw, column, None)

    def _has_converter_for_result_object(self, rsw: ResultSetWrapper, result_type: Any) -> bool:
        if len(rsw.column_names) == 1:
            return self._converters.has_converter(
                result_type, rsw.column_type(rsw.column_names[0])
            )
        return self._converters.has_converter(result_type)

    # --- Nested queries ---

    def _require_executor(self, mapping: ResultMapping) -> Any:
        if self._executor is None:
            raise ConfigurationError(
                f"Property '{mapping.property}' uses nested query '{mapping.nested_query_id}' "
                "but the engine has no executor"
            )
        return self._executor

    def _get_nested_query_constructor_value(
        self, rsw: ResultSetWrapper, mapping: ResultMapping, column_prefix: str | None
    ) -> Any:
        assert mapping.nested_query_id is not None
        nested_query = self._registry.get_statement(mapping.nested_query_id)
        parameters = self._prepare_parameter_for_nested_query(
            rsw, mapping, nested_query.parameter_type, column_prefix
        )
        if parameters is None:
            return None
        executor = self._require_executor(mapping)
        key = executor.create_cache_key(nested_query, parameters)
        loader = ResultLoader(
            executor, nested_query, parameters, mapping.python_type, key, self._object_factory
        )
        return loader.load_result()

    def _get_nested_query_mapping_value(
        self,
        rsw: ResultSetWrapper,
        meta: MetaObject,
        mapping: ResultMapping,
        lazy_loaders: list[Lazy[Any]],
        column_prefix: str | None,
    ) -> Any:
        assert mapping.nested_query_id is not None and mapping.property is not None
        nested_query = self._registry.get_statement(mapping.nested_query_id)
        parameters = self._prepare_parameter_for_nested_query(
            rsw, mapping, nested_query.parameter_type, column_prefix
        )
        if parameters is None:
            return SKIPPED
        executor = self._require_executor(mapping)
        key = executor.create_cache_key(nested_query, parameters)
        target_type = mapping.python_type or meta.setter_type(mapping.property)
        if executor.is_cached(nested_query, key):
            executor.defer_load(nested_query, meta, mapping.property, key, target_type)
            return DEFERRED
        loader = ResultLoader(
            executor, nested_query, parameters, target_type, key, self._object_factory
        )
        lazy = mapping.lazy if mapping.lazy is not None else self._settings.lazy_loading_enabled
        if lazy:
            value: Lazy[Any] = Lazy(loader.load_result)
            meta.set_value(mapping.property, value)
            lazy_loaders.append(value)
            return DEFERRED
        return loader.load_result()

    def _prepare_parameter_for_nested_query(
        self,
        rsw: ResultSetWrapper,
        mapping: ResultMapping,
        parameter_type: Any,
        column_prefix: str | None,
    ) -> Any:
        if mapping.is_composite:
            return self._prepare_composite_key_parameter(
                rsw, mapping, parameter_type, column_prefix
            )
        column = prepend_prefix(mapping.column, column_prefix)
        assert column is not None
        converter = rsw.resolve_converter(parameter_type or object, column)
        return _read(converter, rsw, column, mapping.property)

    def _prepare_composite_key_parameter(
        self,
        rsw: ResultSetWrapper,
        mapping: ResultMapping,
        parameter_type: Any,
        column_prefix: str | None,
    ) -> Any:
        if parameter_type is None or parameter_type is dict:
            parameter_object: Any = {}
        else:
            parameter_object = self._object_factory.create(parameter_type)
        meta = MetaObject(parameter_object)
        for inner in mapping.composites:
            assert inner.property is not None
            column = prepend_prefix(inner.column, column_prefix)
            assert column is not None
            converter = rsw.resolve_converter(meta.setter_type(inner.property), column)
            value = _read(converter, rsw, column, inner.property)
            if value is None:
                # Any missing key component means there is nothing to look up
                return None
            meta.set_value(inner.property, value)
        return parameter_object

    # --- Nested result maps ---

    def _handle_row_values_for_nested_result_map(
        self,
        rsw: ResultSetWrapper,
        result_map: ResultMap,
        result_handler: ResultHandler | None,
        row_bounds: RowBounds,
        parent_mapping: ResultMapping | None,
    ) -> int:
        context = ResultContext()
        self._skip_rows(rsw, row_bounds)
        row_value = self._previous_row_value
        ordered = self._result_ordered
        while self._should_process_more_rows(context, row_bounds) and rsw.next():
            discriminated = self.resolve_effective_mapping(rsw, result_map)
            row_key = self._create_row_key(discriminated, rsw, None)
            partial_object = self._nested_result_objects.get(row_key)
            if ordered:
                if partial_object is None and row_value is not None:
                    # The previous entity is complete once a new key shows up
                    self._nested_result_objects.clear()
                    self._store_object(result_handler, context, row_value, parent_mapping, rsw)
                row_value = self._get_nested_row_value(
                    rsw, discriminated, row_key, None, partial_object, {}
                )
            else:
                row_value = self._get_nested_row_value(
                    rsw, discriminated, row_key, None, partial_object, {}
                )
                if partial_object is None:
                    self._store_object(result_handler, context, row_value, parent_mapping, rsw)
        if (
            row_value is not None
            and ordered
            and self._should_process_more_rows(context, row_bounds)
        ):
            self._store_object(result_handler, context, row_value, parent_mapping, rsw)
            self._previous_row_value = None
        elif row_value is not None:
            self._previous_row_value = row_value
        return context.result_count

    def _get_nested_row_value(
        self,
        rsw: ResultSetWrapper,
        result_map: ResultMap,
        combined_key: CacheKey,
        column_prefix: str | None,
        partial_object: Any,
        ancestors: dict[str, Any],
    ) -> Any:
        map_id = result_map.id
        result_object = partial_object
        if result_object is not None:
            meta = MetaObject(result_object)
            with _ancestor(ancestors, map_id, result_object):
                self._apply_nested_result_mappings(
                    rsw, result_map, meta, column_prefix, combined_key, False, ancestors
                )
            return result_object

        lazy_loaders: list[Lazy[Any]] = []
        result_object = self._create_result_object(rsw, result_map, column_prefix)
        if result_object is not None and not self._has_converter_for_result_object(
            rsw, result_map.type
        ):
            meta = MetaObject(result_object)
            found_values = bool(result_map.constructor_mappings)
            if self._should_apply_automatic_mappings(result_map, True):
                found_values = (
                    self._apply_automatic_mappings(rsw, result_map, meta, column_prefix)
                    or found_values
                )
            found_values = (
                self._apply_property_mappings(rsw, result_map, meta, lazy_loaders, column_prefix)
                or found_values
            )
            with _ancestor(ancestors, map_id, result_object):
                found_values = (
                    self._apply_nested_result_mappings(
                        rsw, result_map, meta, column_prefix, combined_key, True, ancestors
                    )
                    or found_values
                )
            found_values = bool(lazy_loaders) or found_values
            result_object = result_object if found_values else None

        if combined_key is not NULL_CACHE_KEY:
            self._nested_result_objects[combined_key] = result_object
        elif result_object is not None and map_id not in self._degenerate_key_maps:
            self._degenerate_key_maps.add(map_id)
            logger.warning(
                "degenerate_row_key",
                result_map=map_id,
                statement=self._statement_id,
                detail="rows of this map cannot be merged; declare id bindings",
            )
        return result_object

    def _apply_nested_result_mappings(
        self,
        rsw: ResultSetWrapper,
        result_map: ResultMap,
        meta: MetaObject,
        parent_prefix: str | None,
        parent_row_key: CacheKey,
        new_object: bool,
        ancestors: dict[str, Any],
    ) -> bool:
        found_values = False
        for mapping in result_map.property_mappings:
            nested_map_id = mapping.nested_result_map_id
            if nested_map_id is None or mapping.result_set is not None:
                continue
            column_prefix = self._column_prefix(parent_prefix, mapping)
            nested_map = self.resolve_effective_mapping(
                rsw, self._registry.get_result_map(nested_map_id), column_prefix
            )
            if mapping.column_prefix is None:
                ancestor = ancestors.get(nested_map_id)
                if ancestor is not None:
                    if new_object:
                        self._link_objects(meta, mapping, ancestor)
                    continue
            row_key = self._create_row_key(nested_map, rsw, column_prefix)
            combined_key = combine_keys(row_key, parent_row_key)
            row_value = self._nested_result_objects.get(combined_key)
            known_value = row_value is not None
            self._instantiate_collection_property_if_appropriate(mapping, meta)
            if self._any_not_null_column_has_value(mapping, column_prefix, rsw):
                row_value = self._get_nested_row_value(
                    rsw, nested_map, combined_key, column_prefix, row_value, ancestors
                )
                if row_value is not None and not known_value:
                    self._link_objects(meta, mapping, row_value)
                    found_values = True
        return found_values

    @staticmethod
    def _column_prefix(parent_prefix: str | None, mapping: ResultMapping) -> str | None:
        prefix = (parent_prefix or "") + (mapping.column_prefix or "")
        return prefix.upper() or None

    @staticmethod
    def _any_not_null_column_has_value(
        mapping: ResultMapping, column_prefix: str | None, rsw: ResultSetWrapper
    ) -> bool:
        if mapping.not_null_columns:
            return any(
                rsw.get(prepend_prefix(column, column_prefix)) is not None  # type: ignore[arg-type]
                for column in mapping.not_null_columns
            )
        if column_prefix:
            return any(
                rsw.get(column) is not None
                for column in rsw.column_names
                if column.upper().startswith(column_prefix)
            )
        return True

    # --- Row keys ---

    def _create_row_key(
        self, result_map: ResultMap, rsw: ResultSetWrapper, column_prefix: str | None
    ) -> CacheKey:
        cache_key = CacheKey()
        cache_key.update(result_map.id)
        mappings = result_map.id_mappings
        if not mappings:
            if isinstance(result_map.type, type) and issubclass(result_map.type, Mapping):
                self._create_row_key_for_map(rsw, cache_key)
            else:
                self._create_row_key_for_unmapped_properties(
                    result_map, rsw, cache_key, column_prefix
                )
        else:
            self._create_row_key_for_mapped_properties(
                result_map, rsw, cache_key, mappings, column_prefix
            )
        if cache_key.update_count < 2:
            return NULL_CACHE_KEY
        return cache_key

    def _create_row_key_for_mapped_properties(
        self,
        result_map: ResultMap,
        rsw: ResultSetWrapper,
        cache_key: CacheKey,
        mappings: tuple[ResultMapping, ...],
        column_prefix: str | None,
    ) -> None:
        mapped_columns = rsw.mapped_column_names(result_map, column_prefix)
        for mapping in mappings:
            if mapping.nested_result_map_id is not None and mapping.result_set is None:
                nested_map = self._registry.get_result_map(mapping.nested_result_map_id)
                self._create_row_key_for_mapped_properties(
                    nested_map,
                    rsw,
                    cache_key,
                    nested_map.constructor_mappings,
                    self._column_prefix(column_prefix, mapping),
                )
            elif mapping.nested_query_id is None:
                column = prepend_prefix(mapping.column, column_prefix)
                if column is not None and column.upper() in mapped_columns:
                    value = rsw.get(column)
                    if value is not None:
                        cache_key.update(column.upper())
                        cache_key.update(value)

    def _create_row_key_for_unmapped_properties(
        self,
        result_map: ResultMap,
        rsw: ResultSetWrapper,
        cache_key: CacheKey,
        column_prefix: str | None,
    ) -> None:
        for column in rsw.unmapped_column_names(result_map, column_prefix):
            property_name = column
            if column_prefix:
                if not column.upper().startswith(column_prefix.upper()):
                    continue
                property_name = column[len(column_prefix) :]
            if (
                find_class_property(
                    result_map.type, property_name, self._settings.map_underscore_to_camel_case
                )
                is not None
            ):
                value = rsw.get(column)
                if value is not None:
                    cache_key.update(column.upper())
                    cache_key.update(str(value))

    @staticmethod
    def _create_row_key_for_map(rsw: ResultSetWrapper, cache_key: CacheKey) -> None:
        for column in rsw.column_names:
            value = rsw.get(column)
            if value is not None:
                cache_key.update(column.upper())
                cache_key.update(str(value))

    # --- Linking ---

    def _link_objects(self, meta: MetaObject, mapping: ResultMapping, row_value: Any) -> None:
        collection = self._instantiate_collection_property_if_appropriate(mapping, meta)
        if collection is not None:
            add_to_collection(collection, row_value)
            return
        prop = mapping.property
        assert prop is not None
        python_type = mapping.python_type or meta.setter_type(prop)
        if self._object_factory.is_immutable_collection(python_type):
            # tuple and frozenset properties are rebuilt with the new element
            items = list(meta.get_value(prop) or ())
            items.append(row_value)
            meta.set_value(prop, self._object_factory.create(python_type, [list], [items]))
        else:
            meta.set_value(prop, row_value)

    def _instantiate_collection_property_if_appropriate(
        self, mapping: ResultMapping, meta: MetaObject
    ) -> Any:
        prop = mapping.property
        assert prop is not None
        value = meta.get_value(prop)
        if value is None:
            python_type = mapping.python_type or meta.setter_type(prop)
            if self._object_factory.is_collection(python_type):
                value = self._object_factory.create(python_type)
                meta.set_value(prop, value)
                return value
            if self._object_factory.is_immutable_collection(python_type):
                meta.set_value(prop, self._object_factory.create(python_type))
        elif self._object_factory.is_collection(type(value)):
            return value
        return None


class _ancestor:
    """Registers an in-progress instance for the duration of its nested mapping."""

    def __init__(self, ancestors: dict[str, Any], map_id: str, instance: Any) -> None:
        self._ancestors = ancestors
        self._map_id = map_id
        self._instance = instance
        self._previous: Any = None

    def __enter__(self) -> None:
        self._previous = self._ancestors.get(self._map_id)
        self._ancestors[self._map_id] = self._instance

    def __exit__(self, *exc: object) -> None:
        if self._previous is None:
            self._ancestors.pop(self._map_id, None)
        else:
            self._ancestors[self._map_id] = self._previous


def _read(
    converter: TypeConverter, rsw: ResultSetWrapper, column: str, property_name: str | None
) -> Any:
    """Read one column, attaching the property name to conversion failures."""
    try:
        return converter.get_result(rsw, column)
    except ConversionError as e:
        if e.property_name is not None or property_name is None:
            raise
        raise ConversionError(
            e.column, e.target_type, e.value, str(e.__cause__ or e), property_name
        ) from e.__cause__


def _constructor_hints(result_type: Any) -> dict[str, Any]:
    try:
        hints = typing.get_type_hints(result_type.__init__)
    except Exception:
        # Unresolvable forward references leave the parameters untyped
        return {}
    return {name: unwrap_optional(hint) for name, hint in hints.items()}


def _accepts(hint: Any, column_class: type | None) -> bool:
    if hint in (None, object, Any) or column_class is None:
        return True
    return isinstance(hint, type) and issubclass(column_class, hint)


def _as_result_handler(consumer: ResultHandler | Callable[[Any], None] | None) -> ResultHandler:
    if consumer is None:
        return DefaultResultHandler()
    if isinstance(consumer, ResultHandler):
        return consumer
    return CallbackResultHandler(consumer)
