"""Composite identity keys.

A CacheKey is built incrementally from the values that identify a row (or a
sub-query invocation). Keys built from the same values in the same order are
equal. NULL_CACHE_KEY stands for a key with too few contributing values and is
never equal to any key, itself included.
"""

from __future__ import annotations

from typing import Any

_MULTIPLIER = 37
_INITIAL_HASHCODE = 17
_HASH_MASK = (1 << 64) - 1


def _freeze(obj: Any) -> Any:
    """Turn containers into hashable equivalents."""
    if isinstance(obj, dict):
        return tuple(
            sorted(((k, _freeze(v)) for k, v in obj.items()), key=lambda item: repr(item[0]))
        )
    if isinstance(obj, (list, tuple)):
        return tuple(_freeze(v) for v in obj)
    if isinstance(obj, (set, frozenset)):
        return frozenset(_freeze(v) for v in obj)
    try:
        hash(obj)
    except TypeError:
        if hasattr(obj, "__dict__"):
            return (type(obj).__qualname__, _freeze(vars(obj)))
        return repr(obj)
    return obj


class CacheKey:
    """Incremental composite key."""

    def __init__(self, *objects: Any) -> None:
        self._hashcode = _INITIAL_HASHCODE
        self._checksum = 0
        self._count = 0
        self._update_list: list[Any] = []
        for obj in objects:
            self.update(obj)

    @property
    def update_count(self) -> int:
        return self._count

    def update(self, obj: Any) -> None:
        obj = _freeze(obj)
        base = 1 if obj is None else hash(obj)
        self._count += 1
        self._checksum += base
        base *= self._count
        self._hashcode = (_MULTIPLIER * self._hashcode + base) & _HASH_MASK
        self._update_list.append(obj)

    def update_all(self, objects: list[Any]) -> None:
        for obj in objects:
            self.update(obj)

    def clone(self) -> CacheKey:
        clone = CacheKey()
        clone._hashcode = self._hashcode
        clone._checksum = self._checksum
        clone._count = self._count
        clone._update_list = list(self._update_list)
        return clone

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, CacheKey) or isinstance(other, NullCacheKey):
            return False
        return (
            self._hashcode == other._hashcode
            and self._checksum == other._checksum
            and self._count == other._count
            and self._update_list == other._update_list
        )

    def __hash__(self) -> int:
        return self._hashcode

    def __repr__(self) -> str:
        values = ":".join(str(v) for v in self._update_list)
        return f"CacheKey({self._hashcode}:{self._checksum}:{values})"


class NullCacheKey(CacheKey):
    """Degenerate key. Never equal to anything and never updated."""

    def update(self, obj: Any) -> None:
        raise TypeError("NULL_CACHE_KEY cannot be updated")

    def clone(self) -> CacheKey:
        return self

    def __eq__(self, other: object) -> bool:
        return False

    def __hash__(self) -> int:
        return id(self)

    def __repr__(self) -> str:
        return "NULL_CACHE_KEY"


NULL_CACHE_KEY = NullCacheKey()


def combine_keys(row_key: CacheKey, parent_key: CacheKey) -> CacheKey:
    """Combine a nested row key with its parent's key.

    Returns NULL_CACHE_KEY unless both keys have at least two contributions.
    """
    if row_key.update_count > 1 and parent_key.update_count > 1:
        combined = row_key.clone()
        combined.update(parent_key)
        return combined
    return NULL_CACHE_KEY
