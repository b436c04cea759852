"""row_graph - result mapping engine: rows in, object graphs out."""

from __future__ import annotations

from row_graph.adapters.dbapi import DBAPIStatementRunner, iter_result_sets
from row_graph.core.cache_key import NULL_CACHE_KEY, CacheKey
from row_graph.core.context import (
    CallbackResultHandler,
    DefaultResultHandler,
    ResultContext,
    ResultHandler,
    RowBounds,
)
from row_graph.core.cursor import MappedCursor
from row_graph.core.engine import MappingEngine
from row_graph.core.enums import (
    AutoMappingBehavior,
    ColumnType,
    CursorState,
    ResultFlag,
    UnknownColumnBehavior,
)
from row_graph.core.exceptions import (
    ColumnNotFoundError,
    ConfigurationError,
    ConversionError,
    CursorError,
    CursorStateError,
    DuplicateMappingError,
    DuplicateResultSetError,
    ExecutionError,
    InstantiationError,
    MappingError,
    MappingNotFoundError,
    MultipleRowsError,
    PlanCompilationError,
    ResultHandlerError,
    RowGraphError,
    StatementNotFoundError,
    UnknownColumnError,
    UnknownSettingError,
)
from row_graph.core.executor import Executor
from row_graph.core.registry import MappingRegistry
from row_graph.core.settings import Settings
from row_graph.mapping.builder import ResultMapBuilder, result_map
from row_graph.mapping.converters import ConverterRegistry, TypeConverter
from row_graph.mapping.factory import ObjectFactory
from row_graph.mapping.lazy import Lazy, unwrap
from row_graph.mapping.plan import Discriminator, ResultMap, ResultMapping, Statement

__all__ = [
    # Engine
    "MappingEngine",
    "MappedCursor",
    "Executor",
    # Registry
    "MappingRegistry",
    # Settings
    "Settings",
    # Mapping plan
    "ResultMap",
    "ResultMapping",
    "Discriminator",
    "Statement",
    "result_map",
    "ResultMapBuilder",
    # Services
    "ConverterRegistry",
    "TypeConverter",
    "ObjectFactory",
    "Lazy",
    "unwrap",
    "CacheKey",
    "NULL_CACHE_KEY",
    # Consumers
    "ResultHandler",
    "ResultContext",
    "DefaultResultHandler",
    "CallbackResultHandler",
    "RowBounds",
    # Cursors
    "DBAPIStatementRunner",
    "iter_result_sets",
    # Enums
    "AutoMappingBehavior",
    "UnknownColumnBehavior",
    "ColumnType",
    "CursorState",
    "ResultFlag",
    # Exceptions
    "RowGraphError",
    "ConfigurationError",
    "MappingNotFoundError",
    "StatementNotFoundError",
    "DuplicateMappingError",
    "DuplicateResultSetError",
    "UnknownSettingError",
    "PlanCompilationError",
    "MappingError",
    "InstantiationError",
    "ConversionError",
    "UnknownColumnError",
    "ColumnNotFoundError",
    "ExecutionError",
    "CursorError",
    "CursorStateError",
    "MultipleRowsError",
    "ResultHandlerError",
]
