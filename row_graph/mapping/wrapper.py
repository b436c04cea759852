"""Row source wrapper.

Adapts a DB-API 2.0 cursor for the engine: caches column metadata, splits
columns into mapped and unmapped per (result map, prefix) and memoizes the
converter picked for each column.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from row_graph.core.enums import ColumnType
from row_graph.core.exceptions import ColumnNotFoundError, CursorError
from row_graph.mapping.converters import ConverterRegistry, TypeConverter

if TYPE_CHECKING:
    from row_graph.mapping.plan import ResultMap

logger = structlog.get_logger(__name__)


def prepend_prefix(column: str | None, prefix: str | None) -> str | None:
    """Prefix a column name; empty names and prefixes are left alone."""
    if not column or not prefix:
        return column
    return prefix + column


class ResultSetWrapper:
    """Forward-only view over one cursor.

    Column names and type codes come from cursor.description. The runtime
    Python class of every column is captured from the first row fetched.
    """

    def __init__(self, cursor: Any, converters: ConverterRegistry) -> None:
        self.cursor = cursor
        self._converters = converters
        try:
            description = cursor.description
        except Exception as e:
            _close_quietly(cursor)
            raise CursorError(f"Cannot read cursor metadata: {e}") from e

        self.description = description
        self.column_names: list[str] = [desc[0] for desc in description or ()]
        self.column_types: list[ColumnType | None] = [
            ColumnType.for_code(desc[1] if len(desc) > 1 else None) for desc in description or ()
        ]
        self._index = {name.upper(): i for i, name in enumerate(self.column_names)}
        self.class_names: list[type | None] | None = None
        self._row: tuple[Any, ...] | None = None
        self._converter_cache: dict[str, dict[Any, TypeConverter]] = {}
        self._mapped: dict[str, list[str]] = {}
        self._unmapped: dict[str, list[str]] = {}
        # Automatic mappings name columns of this cursor only
        self.auto_mappings: dict[str, list[Any]] = {}

    # --- Row access ---

    def next(self) -> bool:
        """Advance to the next row. Returns False once the cursor is exhausted."""
        try:
            row = self.cursor.fetchone()
        except Exception as e:
            raise CursorError(f"Cannot fetch next row: {e}") from e
        if row is None:
            # The last row stays readable for values linked after exhaustion
            return False
        if isinstance(row, dict):
            self._row = tuple(row[name] for name in self.column_names)
        else:
            self._row = tuple(row)
        if self.class_names is None:
            self.class_names = [None if v is None else type(v) for v in self._row]
        return True

    def get(self, column: str) -> Any:
        """Read a column of the current row by name, case-insensitively."""
        index = self._index.get(column.upper())
        if index is None:
            raise ColumnNotFoundError(column, self.column_names)
        if self._row is None:
            raise CursorError(f"No current row to read column '{column}' from")
        return self._row[index]

    def has_column(self, column: str) -> bool:
        return column.upper() in self._index

    def column_type(self, column: str) -> ColumnType | None:
        index = self._index.get(column.upper())
        return None if index is None else self.column_types[index]

    def column_class(self, column: str) -> type | None:
        index = self._index.get(column.upper())
        if index is None or self.class_names is None:
            return None
        return self.class_names[index]

    # --- Converters ---

    def resolve_converter(self, python_type: Any, column: str) -> TypeConverter:
        """Pick the converter for reading column as python_type. Never fails."""
        by_type = self._converter_cache.setdefault(column, {})
        converter = by_type.get(python_type)
        if converter is None:
            column_type = self.column_type(column)
            converter = self._converters.get_converter(python_type, column_type)
            if converter is None or converter is self._converters.unknown:
                column_class = self.column_class(column)
                if column_class is not None:
                    converter = self._converters.get_converter(column_class, column_type)
                if converter is None:
                    converter = self._converters.get_converter_for_column_type(column_type)
            if converter is None:
                converter = self._converters.unknown
            by_type[python_type] = converter
        return converter

    # --- Mapped / unmapped columns ---

    def mapped_column_names(self, result_map: ResultMap, prefix: str | None) -> list[str]:
        key = _map_key(result_map, prefix)
        if key not in self._mapped:
            self._load_mapped_and_unmapped(result_map, prefix)
        return self._mapped[key]

    def unmapped_column_names(self, result_map: ResultMap, prefix: str | None) -> list[str]:
        key = _map_key(result_map, prefix)
        if key not in self._unmapped:
            self._load_mapped_and_unmapped(result_map, prefix)
        return self._unmapped[key]

    def _load_mapped_and_unmapped(self, result_map: ResultMap, prefix: str | None) -> None:
        upper_prefix = prefix.upper() if prefix else None
        mapped_columns = {prepend_prefix(c, upper_prefix) for c in result_map.mapped_columns}
        mapped: list[str] = []
        unmapped: list[str] = []
        for name in self.column_names:
            upper = name.upper()
            if upper in mapped_columns:
                mapped.append(upper)
            else:
                unmapped.append(name)
        key = _map_key(result_map, prefix)
        self._mapped[key] = mapped
        self._unmapped[key] = unmapped

    def close(self) -> None:
        """Close the cursor. Failures are logged, not raised."""
        _close_quietly(self.cursor)


def _close_quietly(cursor: Any) -> None:
    try:
        cursor.close()
    except Exception as e:
        logger.warning("cursor_close_failed", error=str(e))


def _map_key(result_map: ResultMap, prefix: str | None) -> str:
    return f"{result_map.id}:{prefix}"
