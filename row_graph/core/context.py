"""Result consumers and per-pass result context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

NO_ROW_OFFSET = 0
NO_ROW_LIMIT = 2**63 - 1


@dataclass(frozen=True)
class RowBounds:
    """Offset and limit applied to top-level results."""

    offset: int = NO_ROW_OFFSET
    limit: int = NO_ROW_LIMIT

    @property
    def is_bounded(self) -> bool:
        return self.offset > NO_ROW_OFFSET or self.limit < NO_ROW_LIMIT


DEFAULT_ROW_BOUNDS = RowBounds()


class ResultContext:
    """Tracks how many results a consumer has seen and whether to stop."""

    def __init__(self) -> None:
        self.result_object: Any = None
        self.result_count = 0
        self.stopped = False

    def next_result_object(self, result_object: Any) -> None:
        self.result_count += 1
        self.result_object = result_object

    def stop(self) -> None:
        self.stopped = True


@runtime_checkable
class ResultHandler(Protocol):
    """Consumer of materialized top-level objects."""

    def handle_result(self, context: ResultContext) -> None:
        """Receive context.result_object. Call context.stop() to end the pass."""
        ...


class DefaultResultHandler:
    """Collects every result into a list."""

    def __init__(self) -> None:
        self.result_list: list[Any] = []

    def handle_result(self, context: ResultContext) -> None:
        self.result_list.append(context.result_object)


class CallbackResultHandler:
    """Adapts a plain callable to the ResultHandler protocol."""

    def __init__(self, callback: Any) -> None:
        self._callback = callback

    def handle_result(self, context: ResultContext) -> None:
        self._callback(context.result_object)
