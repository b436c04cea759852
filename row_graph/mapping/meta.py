"""Property access service.

MetaObject gives the engine one way to read and write named properties on
dicts, dataclasses (frozen ones included), Pydantic models and plain objects.
"""

from __future__ import annotations

import dataclasses
import types
import typing
from collections.abc import MutableSequence, MutableSet
from typing import Any, Union

_PROPERTY_CACHE: dict[type, dict[str, Any]] = {}


def unwrap_optional(hint: Any) -> Any:
    if hint is Any or isinstance(hint, (str, typing.ForwardRef)):
        return object
    if typing.get_origin(hint) in (Union, types.UnionType):
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        return unwrap_optional(args[0]) if len(args) == 1 else object
    return hint


def property_types(cls: type) -> dict[str, Any]:
    """Writable property names of a class and their declared types."""
    cached = _PROPERTY_CACHE.get(cls)
    if cached is not None:
        return cached

    result: dict[str, Any] = {}
    if hasattr(cls, "model_fields"):
        # Pydantic has already evaluated the annotations
        for name, info in cls.model_fields.items():  # type: ignore[attr-defined]
            result[name] = unwrap_optional(info.annotation)
        _PROPERTY_CACHE[cls] = result
        return result

    try:
        hints = typing.get_type_hints(cls)
    except Exception:
        # Forward references that cannot be resolved fall back to untyped
        hints = {}
        for klass in reversed(cls.__mro__):
            hints.update(getattr(klass, "__annotations__", {}))

    if dataclasses.is_dataclass(cls):
        names = [f.name for f in dataclasses.fields(cls)]
    else:
        names = [
            n
            for n in hints
            if not n.startswith("_") and typing.get_origin(hints[n]) is not typing.ClassVar
        ]
    for name in names:
        result[name] = unwrap_optional(hints.get(name, object))
    _PROPERTY_CACHE[cls] = result
    return result


def _normalize(name: str, ignore_underscores: bool) -> str:
    name = name.lower()
    return name.replace("_", "") if ignore_underscores else name


def find_class_property(cls: Any, name: str, ignore_underscores: bool = False) -> str | None:
    """Find a declared property of cls without an instance at hand."""
    if not isinstance(cls, type):
        return None
    wanted = _normalize(name, ignore_underscores)
    for prop in property_types(cls):
        if _normalize(prop, ignore_underscores) == wanted:
            return prop
    return None


class MetaObject:
    """Reflective wrapper around one target instance."""

    def __init__(self, obj: Any) -> None:
        self.obj = obj
        self._is_map = isinstance(obj, dict)
        self._properties = {} if self._is_map else property_types(type(obj))
        self._frozen = (
            dataclasses.is_dataclass(obj) and obj.__dataclass_params__.frozen  # type: ignore[union-attr]
        )

    def find_property(self, name: str, ignore_underscores: bool = False) -> str | None:
        """Find the property a column name refers to, case-insensitively."""
        if self._is_map:
            return name
        wanted = _normalize(name, ignore_underscores)
        for prop in self._candidate_names():
            if _normalize(prop, ignore_underscores) == wanted:
                return prop
        return None

    def has_setter(self, name: str) -> bool:
        if self._is_map:
            return True
        return name in self._properties or name in getattr(self.obj, "__dict__", {})

    def setter_type(self, name: str) -> Any:
        if self._is_map:
            value = self.obj.get(name)
            return object if value is None else type(value)
        return self._properties.get(name, object)

    def get_value(self, name: str) -> Any:
        if self._is_map:
            return self.obj.get(name)
        return getattr(self.obj, name, None)

    def set_value(self, name: str, value: Any) -> None:
        if self._is_map:
            self.obj[name] = value
        elif self._frozen:
            object.__setattr__(self.obj, name, value)
        else:
            setattr(self.obj, name, value)

    def _candidate_names(self) -> list[str]:
        names = list(self._properties)
        for name in getattr(self.obj, "__dict__", {}):
            if name not in self._properties and not name.startswith("_"):
                names.append(name)
        return names


def add_to_collection(collection: Any, value: Any) -> None:
    """Append value to a list-like or add it to a set-like collection."""
    if isinstance(collection, MutableSequence):
        collection.append(value)
    elif isinstance(collection, MutableSet):
        collection.add(value)
    else:
        raise TypeError(f"Cannot add to a collection of type {type(collection).__name__}")
