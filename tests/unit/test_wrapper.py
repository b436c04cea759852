"""Unit tests for converters and ResultSetWrapper."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from enum import Enum

import pytest

from row_graph.core.enums import ColumnType
from row_graph.core.exceptions import ColumnNotFoundError, ConversionError, CursorError
from row_graph.mapping.builder import result_map
from row_graph.mapping.converters import ConverterRegistry, TypeConverter
from row_graph.mapping.wrapper import ResultSetWrapper, prepend_prefix


class Color(Enum):
    RED = "r"
    GREEN = "g"


class TestConverterRegistry:
    def test_builtin_types(self) -> None:
        registry = ConverterRegistry()
        for python_type in (int, float, str, bool, Decimal, dt.date, dt.datetime, bytes):
            assert registry.has_converter(python_type)

    def test_unregistered_class(self) -> None:
        registry = ConverterRegistry()
        assert registry.has_converter(dict) is False
        assert registry.get_converter(None) is None

    def test_enum_by_value_then_name(self) -> None:
        converter = ConverterRegistry().get_converter(Color)
        assert converter is not None
        assert converter.convert("r") is Color.RED
        assert converter.convert("GREEN") is Color.GREEN

    def test_column_type_specific_converter(self) -> None:
        registry = ConverterRegistry()
        cents = TypeConverter(int, lambda v: int(round(float(v) * 100)))
        registry.register(int, cents, ColumnType.NUMERIC)
        assert registry.get_converter(int, ColumnType.NUMERIC) is cents
        assert registry.get_converter(int, ColumnType.INTEGER) is not cents

    def test_default_for_column_type(self) -> None:
        converter = ConverterRegistry().get_converter_for_column_type(ColumnType.DECIMAL)
        assert converter is not None
        assert converter.convert(1.5) == Decimal("1.5")

    def test_bytes_and_str_conversions(self) -> None:
        registry = ConverterRegistry()
        assert registry.get_converter(str).convert(b"abc") == "abc"  # type: ignore[union-attr]
        assert registry.get_converter(bytes).convert("abc") == b"abc"  # type: ignore[union-attr]


class TestResultSetWrapper:
    def test_metadata(self, make_cursor) -> None:
        cursor = make_cursor(["id", "name"], [(1, "a")], types=["integer", "text"])
        rsw = ResultSetWrapper(cursor, ConverterRegistry())
        assert rsw.column_names == ["id", "name"]
        assert rsw.column_types == [ColumnType.INTEGER, ColumnType.VARCHAR]
        assert rsw.class_names is None

        assert rsw.next() is True
        assert rsw.class_names == [int, str]
        assert rsw.get("NAME") == "a"
        assert rsw.next() is False

    def test_dict_rows(self) -> None:
        class DictCursor:
            description = [("id",), ("name",)]

            def __init__(self) -> None:
                self.rows = [{"name": "a", "id": 1}]

            def fetchone(self):
                return self.rows.pop() if self.rows else None

            def close(self) -> None:
                pass

        rsw = ResultSetWrapper(DictCursor(), ConverterRegistry())
        rsw.next()
        assert rsw.get("id") == 1
        assert rsw.get("name") == "a"

    def test_missing_column(self, make_cursor) -> None:
        rsw = ResultSetWrapper(make_cursor(["id"], [(1,)]), ConverterRegistry())
        rsw.next()
        with pytest.raises(ColumnNotFoundError, match="missing"):
            rsw.get("missing")

    def test_fetch_failure_is_wrapped(self, make_cursor) -> None:
        rsw = ResultSetWrapper(make_cursor(["id"], [(1,)], fail_at=0), ConverterRegistry())
        with pytest.raises(CursorError):
            rsw.next()

    def test_mapped_and_unmapped_columns(self, make_cursor) -> None:
        mapping = result_map("line", dict).id("id").result("sku").build()
        cursor = make_cursor(["id", "sku", "qty", "line_id", "line_sku"], [])
        rsw = ResultSetWrapper(cursor, ConverterRegistry())

        assert rsw.mapped_column_names(mapping, None) == ["ID", "SKU"]
        assert rsw.unmapped_column_names(mapping, None) == ["qty", "line_id", "line_sku"]
        assert rsw.mapped_column_names(mapping, "line_") == ["LINE_ID", "LINE_SKU"]

    def test_converter_falls_back_to_runtime_class(self, make_cursor) -> None:
        rsw = ResultSetWrapper(make_cursor(["amount"], [(Decimal("1.10"),)]), ConverterRegistry())
        rsw.next()
        converter = rsw.resolve_converter(object, "amount")
        assert converter.python_type is Decimal
        assert rsw.resolve_converter(object, "amount") is converter

    def test_conversion_error_carries_column(self, make_cursor) -> None:
        rsw = ResultSetWrapper(make_cursor(["when"], [("yesterday",)]), ConverterRegistry())
        rsw.next()
        with pytest.raises(ConversionError) as exc_info:
            rsw.resolve_converter(dt.date, "when").get_result(rsw, "when")
        assert exc_info.value.column == "when"
        assert exc_info.value.value == "yesterday"

    def test_close_failure_is_not_raised(self, make_cursor) -> None:
        cursor = make_cursor(["id"], [])

        def _broken_close() -> None:
            raise RuntimeError("already gone")

        cursor.close = _broken_close
        ResultSetWrapper(cursor, ConverterRegistry()).close()


class TestPrependPrefix:
    def test_prefix(self) -> None:
        assert prepend_prefix("id", "cust_") == "cust_id"
        assert prepend_prefix("id", None) == "id"
        assert prepend_prefix(None, "cust_") is None
