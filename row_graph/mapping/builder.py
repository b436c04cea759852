"""Result map DSL builder.

Provides a fluent builder for declaring result maps::

    order_map = (
        result_map("order", Order)
        .id("id", "order_id")
        .result("placed_at")
        .association("customer", "customer", column_prefix="cust_")
        .collection("lines", "order_line", column_prefix="line_")
        .build()
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from row_graph.core.enums import ResultFlag
from row_graph.core.exceptions import PlanCompilationError
from row_graph.mapping.converters import TypeConverter
from row_graph.mapping.plan import Discriminator, ResultMap, ResultMapping


def result_map(map_id: str, target_type: Any) -> ResultMapBuilder:
    """Entry point for the result map DSL.

    Args:
        map_id: Registry id of the map.
        target_type: Class (or dict) the rows are mapped to.

    Returns:
        A builder for chaining binding declarations.
    """
    return ResultMapBuilder(map_id, target_type)


def _converter(python_type: Any, convert: Any) -> TypeConverter | None:
    if convert is None or isinstance(convert, TypeConverter):
        return convert
    return TypeConverter(python_type if python_type is not None else object, convert)


class ResultMapBuilder:
    """Fluent builder for ResultMap definitions."""

    def __init__(self, map_id: str, target_type: Any) -> None:
        self._id = map_id
        self._type = target_type
        self._mappings: list[ResultMapping] = []
        self._discriminator: Discriminator | None = None
        self._auto_mapping: bool | None = None
        self._parent: ResultMap | None = None

    def id(
        self,
        property: str,
        column: str | None = None,
        *,
        python_type: Any = None,
        converter: Any = None,
    ) -> ResultMapBuilder:
        """Map an identity column. Identity columns make up the row key."""
        return self._add(
            property, column, python_type, converter, flags=frozenset({ResultFlag.ID})
        )

    def result(
        self,
        property: str,
        column: str | None = None,
        *,
        python_type: Any = None,
        converter: Any = None,
    ) -> ResultMapBuilder:
        """Map a plain column to a property.

        converter is a TypeConverter or a one-argument callable applied to
        non-null raw values.
        """
        return self._add(property, column, python_type, converter)

    def constructor_arg(
        self,
        column: str | None = None,
        *,
        name: str | None = None,
        python_type: Any = None,
        converter: Any = None,
        id: bool = False,
        result_map: str | None = None,
        column_prefix: str | None = None,
        nested_query: str | None = None,
    ) -> ResultMapBuilder:
        """Declare the next constructor argument.

        Arguments are passed positionally in declaration order, or by keyword
        when every argument has a name.
        """
        flags = {ResultFlag.CONSTRUCTOR}
        if id:
            flags.add(ResultFlag.ID)
        self._mappings.append(
            ResultMapping(
                property=name,
                column=column,
                python_type=python_type,
                converter=_converter(python_type, converter),
                nested_result_map_id=result_map,
                nested_query_id=nested_query,
                column_prefix=column_prefix,
                flags=frozenset(flags),
            )
        )
        return self

    def association(
        self,
        property: str,
        result_map: str,
        *,
        column_prefix: str | None = None,
        not_null_columns: Iterable[str] = (),
        python_type: Any = None,
    ) -> ResultMapBuilder:
        """Declare a single nested object built from the same rows."""
        return self._nested(property, result_map, column_prefix, not_null_columns, python_type)

    def collection(
        self,
        property: str,
        result_map: str,
        *,
        column_prefix: str | None = None,
        not_null_columns: Iterable[str] = (),
        python_type: Any = None,
    ) -> ResultMapBuilder:
        """Declare a nested collection accumulated across consecutive rows.

        The collection type comes from python_type or the property annotation.
        """
        return self._nested(property, result_map, column_prefix, not_null_columns, python_type)

    def nested_query(
        self,
        property: str,
        statement: str,
        column: str | None = None,
        *,
        composites: Mapping[str, str] | None = None,
        python_type: Any = None,
        lazy: bool | None = None,
    ) -> ResultMapBuilder:
        """Fill a property by running another statement.

        The statement parameter is read from column, or built from composites
        (parameter property -> column). A null column, or any null composite
        column, leaves the property unset. lazy=None follows the
        lazy_loading_enabled setting.
        """
        if column is None and not composites:
            raise PlanCompilationError(
                f"Nested query property '{property}' in '{self._id}' needs a column or composites"
            )
        self._mappings.append(
            ResultMapping(
                property=property,
                column=column,
                python_type=python_type,
                nested_query_id=statement,
                composites=tuple(
                    ResultMapping(property=name, column=col)
                    for name, col in (composites or {}).items()
                ),
                lazy=lazy,
            )
        )
        return self

    def result_set(
        self,
        property: str,
        result_map: str,
        *,
        result_set: str,
        column: str,
        foreign_column: str,
        python_type: Any = None,
    ) -> ResultMapBuilder:
        """Fill a property from a later, named result set of the same statement.

        Child rows whose foreign_column values equal this row's column values
        are linked to this object once that result set is read. Both accept
        comma-separated column lists.
        """
        if len(column.split(",")) != len(foreign_column.split(",")):
            raise PlanCompilationError(
                f"Property '{property}' in '{self._id}': column and foreign_column "
                "must name the same number of columns"
            )
        self._mappings.append(
            ResultMapping(
                property=property,
                column=column,
                python_type=python_type,
                nested_result_map_id=result_map,
                result_set=result_set,
                foreign_column=foreign_column,
            )
        )
        return self

    def discriminator(
        self,
        column: str,
        cases: Mapping[Any, str],
        *,
        python_type: Any = None,
        converter: Any = None,
    ) -> ResultMapBuilder:
        """Pick another result map per row from the value of column.

        Case values are compared as strings.
        """
        mapping = ResultMapping(
            property=None,
            column=column,
            python_type=python_type,
            converter=_converter(python_type, converter),
        )
        self._discriminator = Discriminator(
            mapping, {str(value): map_id for value, map_id in cases.items()}
        )
        return self

    def auto_mapping(self, enabled: bool = True) -> ResultMapBuilder:
        """Override the auto_mapping_behavior setting for this map."""
        self._auto_mapping = enabled
        return self

    def extend(self, parent: ResultMap) -> ResultMapBuilder:
        """Inherit the bindings of parent. Own bindings win by property name."""
        self._parent = parent
        return self

    def build(self) -> ResultMap:
        """Compile and validate the declarations into a ResultMap."""
        mappings = list(self._mappings)
        if self._parent is not None:
            own = {m.property for m in mappings if m.property is not None}
            inherited = [
                m
                for m in self._parent.result_mappings
                if m.property is None or m.property not in own
            ]
            if any(m.is_constructor_arg for m in mappings):
                inherited = [m for m in inherited if not m.is_constructor_arg]
            mappings = inherited + mappings

        seen: set[str] = set()
        for mapping in mappings:
            if mapping.is_constructor_arg or mapping.property is None:
                continue
            if mapping.property in seen:
                raise PlanCompilationError(
                    f"Property '{mapping.property}' is mapped twice in result map '{self._id}'"
                )
            seen.add(mapping.property)

        ctor = [m for m in mappings if m.is_constructor_arg]
        named = [m for m in ctor if m.property is not None]
        if named and len(named) != len(ctor):
            raise PlanCompilationError(
                f"Constructor arguments of '{self._id}' must be all named or all positional"
            )
        for mapping in ctor:
            if (
                mapping.column is None
                and mapping.nested_result_map_id is None
                and mapping.nested_query_id is None
            ):
                raise PlanCompilationError(
                    f"Constructor argument of '{self._id}' needs a column or a result map"
                )

        discriminator = self._discriminator
        if discriminator is None and self._parent is not None:
            discriminator = self._parent.discriminator
        auto_mapping = self._auto_mapping
        if auto_mapping is None and self._parent is not None:
            auto_mapping = self._parent.auto_mapping

        return ResultMap(
            id=self._id,
            type=self._type,
            result_mappings=tuple(mappings),
            discriminator=discriminator,
            auto_mapping=auto_mapping,
        )

    def _add(
        self,
        property: str,
        column: str | None,
        python_type: Any,
        converter: Any,
        flags: frozenset[ResultFlag] = frozenset(),
    ) -> ResultMapBuilder:
        self._mappings.append(
            ResultMapping(
                property=property,
                column=column or property,
                python_type=python_type,
                converter=_converter(python_type, converter),
                flags=flags,
            )
        )
        return self

    def _nested(
        self,
        property: str,
        result_map: str,
        column_prefix: str | None,
        not_null_columns: Iterable[str],
        python_type: Any,
    ) -> ResultMapBuilder:
        self._mappings.append(
            ResultMapping(
                property=property,
                python_type=python_type,
                nested_result_map_id=result_map,
                column_prefix=column_prefix,
                not_null_columns=frozenset(not_null_columns),
            )
        )
        return self
