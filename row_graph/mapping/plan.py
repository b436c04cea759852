"""Resolved mapping descriptors.

Frozen dataclasses describing how rows become objects. The descriptor graph is
built once (usually through the builder DSL), registered in a MappingRegistry
and only read by the engine afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from row_graph.core.enums import ResultFlag

if TYPE_CHECKING:
    from row_graph.mapping.converters import TypeConverter


@dataclass(frozen=True)
class ResultMapping:
    """One column(s)-to-property rule within a result map."""

    property: str | None
    column: str | None = None
    python_type: Any = None
    converter: TypeConverter | None = None
    nested_result_map_id: str | None = None
    nested_query_id: str | None = None
    not_null_columns: frozenset[str] = frozenset()
    column_prefix: str | None = None
    foreign_column: str | None = None
    result_set: str | None = None
    composites: tuple[ResultMapping, ...] = ()
    flags: frozenset[ResultFlag] = frozenset()
    lazy: bool | None = None

    @property
    def is_composite(self) -> bool:
        return bool(self.composites)

    @property
    def is_id(self) -> bool:
        return ResultFlag.ID in self.flags

    @property
    def is_constructor_arg(self) -> bool:
        return ResultFlag.CONSTRUCTOR in self.flags


@dataclass(frozen=True, eq=False)
class Discriminator:
    """A binding plus a value -> result map id table."""

    result_mapping: ResultMapping
    cases: dict[str, str] = field(default_factory=dict)

    def map_id_for(self, value: Any) -> str | None:
        return self.cases.get(str(value))


@dataclass(frozen=True)
class ResultMap:
    """Mapping plan for one target type.

    auto_mapping is tri-state: None inherits Settings.auto_mapping_behavior.
    """

    id: str
    type: Any
    result_mappings: tuple[ResultMapping, ...] = ()
    discriminator: Discriminator | None = field(default=None, compare=False)
    auto_mapping: bool | None = None

    id_mappings: tuple[ResultMapping, ...] = field(init=False, repr=False, compare=False)
    constructor_mappings: tuple[ResultMapping, ...] = field(init=False, repr=False, compare=False)
    property_mappings: tuple[ResultMapping, ...] = field(init=False, repr=False, compare=False)
    mapped_columns: frozenset[str] = field(init=False, repr=False, compare=False)
    has_nested_result_maps: bool = field(init=False, repr=False, compare=False)
    has_nested_queries: bool = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        ids = []
        ctor = []
        props = []
        columns: set[str] = set()
        nested_maps = False
        nested_queries = False
        for mapping in self.result_mappings:
            if mapping.is_constructor_arg:
                ctor.append(mapping)
            else:
                props.append(mapping)
            if mapping.is_id:
                ids.append(mapping)
            if mapping.nested_result_map_id is not None and mapping.result_set is None:
                nested_maps = True
            if mapping.nested_query_id is not None:
                nested_queries = True
            if mapping.column is not None:
                columns.add(mapping.column.upper())
            for composite in mapping.composites:
                if composite.column is not None:
                    columns.add(composite.column.upper())
        # A map without any id bindings identifies rows by all of its bindings
        object.__setattr__(self, "id_mappings", tuple(ids) or tuple(self.result_mappings))
        object.__setattr__(self, "constructor_mappings", tuple(ctor))
        object.__setattr__(self, "property_mappings", tuple(props))
        object.__setattr__(self, "mapped_columns", frozenset(columns))
        object.__setattr__(self, "has_nested_result_maps", nested_maps)
        object.__setattr__(self, "has_nested_queries", nested_queries)


@dataclass(frozen=True)
class Statement:
    """The parts of a mapped statement the engine needs."""

    id: str
    result_maps: tuple[str, ...] = ()
    result_sets: tuple[str, ...] = ()
    result_ordered: bool = False
    parameter_type: Any = None
