"""Column value converters.

A TypeConverter reads one column of the current row and converts the raw
driver value to a Python type. Conversion failures surface as ConversionError
only when a value is actually read.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, get_origin
from uuid import UUID

from pydantic import TypeAdapter

from row_graph.core.enums import ColumnType
from row_graph.core.exceptions import ConversionError

if TYPE_CHECKING:
    from row_graph.mapping.wrapper import ResultSetWrapper


class TypeConverter:
    """Converts raw column values to python_type.

    Without an explicit convert function, values are coerced with a Pydantic
    TypeAdapter in lax mode ("42" -> 42, 1 -> True).
    """

    def __init__(self, python_type: Any, convert: Callable[[Any], Any] | None = None) -> None:
        self.python_type = python_type
        self._convert = convert
        self._adapter: TypeAdapter[Any] | None = None

    def convert(self, value: Any) -> Any:
        if self._convert is not None:
            return self._convert(value)
        if self._adapter is None:
            self._adapter = TypeAdapter(self.python_type)
        return self._adapter.validate_python(value)

    def get_result(self, rsw: ResultSetWrapper, column: str) -> Any:
        value = rsw.get(column)
        if value is None:
            return None
        try:
            return self.convert(value)
        except (ValueError, TypeError, LookupError, ArithmeticError) as e:
            raise ConversionError(column, self.python_type, value, str(e)) from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}({getattr(self.python_type, '__name__', self.python_type)})"


class ObjectConverter(TypeConverter):
    """Returns raw driver values untouched."""

    def __init__(self) -> None:
        super().__init__(object, lambda value: value)


class EnumConverter(TypeConverter):
    """Converts by enum value first, then by member name."""

    def __init__(self, enum_type: type[Enum]) -> None:
        super().__init__(enum_type, self._to_member)

    def _to_member(self, value: Any) -> Enum:
        try:
            return self.python_type(value)
        except ValueError:
            return self.python_type[value]


def _to_str(value: Any) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8")
    return str(value)


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def _is_enum_type(python_type: Any) -> bool:
    return (
        isinstance(python_type, type)
        and get_origin(python_type) is None
        and issubclass(python_type, Enum)
    )


OBJECT_CONVERTER = ObjectConverter()

_COLUMN_TYPE_DEFAULTS: dict[ColumnType, type] = {
    ColumnType.BIGINT: int,
    ColumnType.INTEGER: int,
    ColumnType.SMALLINT: int,
    ColumnType.CHAR: str,
    ColumnType.CLOB: str,
    ColumnType.VARCHAR: str,
    ColumnType.DECIMAL: Decimal,
    ColumnType.NUMERIC: Decimal,
    ColumnType.DOUBLE: float,
    ColumnType.FLOAT: float,
    ColumnType.REAL: float,
    ColumnType.BOOLEAN: bool,
    ColumnType.DATE: dt.date,
    ColumnType.TIME: dt.time,
    ColumnType.TIMESTAMP: dt.datetime,
    ColumnType.BINARY: bytes,
    ColumnType.BLOB: bytes,
    ColumnType.UUID: UUID,
}


class ConverterRegistry:
    """Converters keyed by Python type and, optionally, column type."""

    def __init__(self) -> None:
        self._converters: dict[Any, dict[ColumnType | None, TypeConverter]] = {}
        self.register(object, OBJECT_CONVERTER)
        self.register(int, TypeConverter(int))
        self.register(float, TypeConverter(float))
        self.register(str, TypeConverter(str, _to_str))
        self.register(bool, TypeConverter(bool))
        self.register(Decimal, TypeConverter(Decimal, _to_decimal))
        self.register(dt.datetime, TypeConverter(dt.datetime))
        self.register(dt.date, TypeConverter(dt.date))
        self.register(dt.time, TypeConverter(dt.time))
        self.register(bytes, TypeConverter(bytes, _to_bytes))
        self.register(UUID, TypeConverter(UUID))

    @property
    def unknown(self) -> TypeConverter:
        return OBJECT_CONVERTER

    def register(
        self,
        python_type: Any,
        converter: TypeConverter,
        column_type: ColumnType | None = None,
    ) -> None:
        self._converters.setdefault(python_type, {})[column_type] = converter

    def has_converter(self, python_type: Any, column_type: ColumnType | None = None) -> bool:
        return self.get_converter(python_type, column_type) is not None

    def get_converter(
        self, python_type: Any, column_type: ColumnType | None = None
    ) -> TypeConverter | None:
        by_column = self._by_column(python_type)
        if not by_column:
            return None
        converter = by_column.get(column_type)
        if converter is None:
            converter = by_column.get(None)
        if converter is None and len(by_column) == 1:
            # Only one converter is registered for the type, use it whatever the column type
            converter = next(iter(by_column.values()))
        return converter

    def get_converter_for_column_type(self, column_type: ColumnType | None) -> TypeConverter | None:
        python_type = _COLUMN_TYPE_DEFAULTS.get(column_type) if column_type else None
        if python_type is None:
            return None
        return self.get_converter(python_type, column_type)

    def _by_column(self, python_type: Any) -> dict[ColumnType | None, TypeConverter] | None:
        if python_type is None:
            return None
        by_column = self._converters.get(python_type)
        if by_column is None and _is_enum_type(python_type):
            by_column = {None: EnumConverter(python_type)}
            self._converters[python_type] = by_column
        return by_column
