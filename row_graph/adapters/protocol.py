"""Row source protocols.

The engine reads rows from anything shaped like a DB-API 2.0 cursor. Nested
queries are run through a StatementRunner supplied by the caller.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from row_graph.mapping.plan import Statement


@runtime_checkable
class Cursor(Protocol):
    """The subset of a DB-API 2.0 cursor the engine relies on."""

    @property
    def description(self) -> Sequence[Sequence[Any]] | None:
        """Column metadata: (name, type_code, ...) per column, or None without rows."""
        ...

    def fetchone(self) -> Any:
        """Return the next row as a sequence or mapping, or None when exhausted."""
        ...

    def close(self) -> None:
        """Release the cursor."""
        ...


@runtime_checkable
class StatementRunner(Protocol):
    """Executes a statement and returns an open cursor over its results."""

    def run(self, statement: Statement, parameters: Any) -> Cursor:
        """Execute statement with parameters.

        The returned cursor may expose further result sets through nextset().
        """
        ...
