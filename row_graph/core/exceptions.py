"""row_graph exception hierarchy.

All exceptions are row_graph-specific. Raw driver exceptions raised while
reading a cursor are wrapped before they reach callers.
"""

from __future__ import annotations

from typing import Any


class RowGraphError(Exception):
    """Base exception for all row_graph errors."""


# --- Configuration ---


class ConfigurationError(RowGraphError):
    """Base for configuration errors. Always fatal, never retried."""


class MappingNotFoundError(ConfigurationError):
    """Raised when a result map id cannot be found in the registry."""

    def __init__(self, map_id: str) -> None:
        self.map_id = map_id
        super().__init__(f"Result map not found: '{map_id}'")


class StatementNotFoundError(ConfigurationError):
    """Raised when a statement id cannot be found in the registry."""

    def __init__(self, statement_id: str) -> None:
        self.statement_id = statement_id
        super().__init__(f"Statement not found: '{statement_id}'")


class DuplicateMappingError(ConfigurationError):
    """Raised when two result maps or statements share the same id."""

    def __init__(self, kind: str, item_id: str) -> None:
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"Duplicate {kind} id '{item_id}'")


class DuplicateResultSetError(ConfigurationError):
    """Raised when two different bindings claim the same named result set."""

    def __init__(self, result_set: str, first: str | None, second: str | None) -> None:
        self.result_set = result_set
        super().__init__(
            f"Two different properties are mapped to the same result set '{result_set}': "
            f"'{first}' and '{second}'"
        )


class UnknownSettingError(ConfigurationError):
    """Raised when a settings mapping contains keys that are not recognized."""

    def __init__(self, names: list[str]) -> None:
        self.names = names
        super().__init__(f"Unknown settings: {names}")


class PlanCompilationError(ConfigurationError):
    """Raised when a ResultMap fails validation during build()."""


# --- Mapping ---


class MappingError(RowGraphError):
    """Base for errors raised while materializing rows."""


class InstantiationError(MappingError):
    """Raised when no usable constructor exists for a target type."""

    def __init__(self, target_type: type, detail: str) -> None:
        self.target_type = target_type
        super().__init__(f"Cannot create an instance of {target_type.__name__}: {detail}")


class ConversionError(MappingError):
    """Raised when a column value cannot be converted to its declared type."""

    def __init__(
        self,
        column: str,
        target_type: type,
        value: Any,
        detail: str,
        property_name: str | None = None,
    ) -> None:
        self.column = column
        self.target_type = target_type
        self.value = value
        self.property_name = property_name
        where = f"column '{column}'"
        if property_name is not None:
            where += f" (property '{property_name}')"
        super().__init__(
            f"Cannot convert {value!r} from {where} to {target_type.__name__}: {detail}"
        )


class UnknownColumnError(MappingError):
    """Raised for unmapped columns when the unknown column behavior is FAILING."""

    def __init__(self, statement_id: str, column: str, property_name: str, property_type: Any) -> None:
        self.statement_id = statement_id
        self.column = column
        self.property_name = property_name
        self.property_type = property_type
        super().__init__(
            f"Unknown column is detected on '{statement_id}' auto-mapping. "
            f"Mapping parameters are [columnName={column},propertyName={property_name},"
            f"propertyType={getattr(property_type, '__name__', property_type)}]"
        )


class ColumnNotFoundError(MappingError):
    """Raised when a binding reads a column the cursor does not return."""

    def __init__(self, column: str, available: list[str]) -> None:
        self.column = column
        super().__init__(f"Column '{column}' not found in result columns {available}")


# --- Execution ---


class ExecutionError(RowGraphError):
    """Base for errors raised while driving a result pass."""


class CursorError(ExecutionError):
    """Raised when the underlying cursor fails. The cursor is closed first."""


class CursorStateError(ExecutionError):
    """Raised on invalid use of a lazily mapped cursor."""


class MultipleRowsError(ExecutionError):
    """Raised when a singular nested query returns more than one row."""

    def __init__(self, statement_id: str, row_count: int) -> None:
        self.statement_id = statement_id
        self.row_count = row_count
        super().__init__(
            f"Statement '{statement_id}' returned {row_count} rows (expected 0 or 1)"
        )


class ResultHandlerError(ExecutionError):
    """Raised when a consumer or row bounds cannot be used safely with nested maps."""
