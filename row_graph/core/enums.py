"""Engine enumerations."""

from __future__ import annotations

from enum import Enum
from typing import Any

import structlog

from row_graph.core.exceptions import UnknownColumnError

logger = structlog.get_logger(__name__)


class AutoMappingBehavior(Enum):
    """How unmapped columns are mapped onto same-named properties."""

    NONE = "none"  # never auto-map
    PARTIAL = "partial"  # auto-map maps without nested result maps
    FULL = "full"  # auto-map everything, nested maps included


class UnknownColumnBehavior(Enum):
    """What to do with an unmapped column no property can receive."""

    NONE = "none"
    WARNING = "warning"
    FAILING = "failing"

    def do_action(
        self,
        statement_id: str,
        column: str,
        property_name: str,
        property_type: Any,
    ) -> None:
        if self is UnknownColumnBehavior.WARNING:
            logger.warning(
                "unknown_column",
                statement=statement_id,
                column=column,
                property=property_name,
                property_type=getattr(property_type, "__name__", property_type),
            )
        elif self is UnknownColumnBehavior.FAILING:
            raise UnknownColumnError(statement_id, column, property_name, property_type)


class ResultFlag(Enum):
    """Flags carried by a field binding."""

    ID = "id"
    CONSTRUCTOR = "constructor"


class CursorState(Enum):
    """Lifecycle of a lazily mapped cursor."""

    CREATED = "created"
    OPEN = "open"
    CLOSED = "closed"
    CONSUMED = "consumed"


class ColumnType(Enum):
    """Driver-neutral column type codes."""

    ARRAY = "array"
    BIGINT = "bigint"
    BINARY = "binary"
    BLOB = "blob"
    BOOLEAN = "boolean"
    CHAR = "char"
    CLOB = "clob"
    DATE = "date"
    DECIMAL = "decimal"
    DOUBLE = "double"
    FLOAT = "float"
    INTEGER = "integer"
    JSON = "json"
    NUMERIC = "numeric"
    OTHER = "other"
    REAL = "real"
    SMALLINT = "smallint"
    TIME = "time"
    TIMESTAMP = "timestamp"
    UUID = "uuid"
    VARCHAR = "varchar"
    UNDEFINED = "undefined"

    @classmethod
    def for_code(cls, code: Any) -> ColumnType | None:
        """Resolve a cursor description type code to a ColumnType.

        Accepts ColumnType members and type names (case-insensitive). Driver
        specific codes that cannot be recognized resolve to None.
        """
        if code is None:
            return None
        if isinstance(code, ColumnType):
            return code
        if isinstance(code, str):
            try:
                return cls(code.lower())
            except ValueError:
                return _ALIASES.get(code.lower())
        return None


_ALIASES: dict[str, ColumnType] = {
    "int": ColumnType.INTEGER,
    "int4": ColumnType.INTEGER,
    "int8": ColumnType.BIGINT,
    "text": ColumnType.VARCHAR,
    "string": ColumnType.VARCHAR,
    "number": ColumnType.NUMERIC,
    "bool": ColumnType.BOOLEAN,
    "datetime": ColumnType.TIMESTAMP,
    "bytea": ColumnType.BINARY,
    "float8": ColumnType.DOUBLE,
}
