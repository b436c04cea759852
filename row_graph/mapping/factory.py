"""Object construction service.

Creates target instances from 0..n constructor arguments and answers
"is this a collection type". Supports dataclasses, Pydantic models and plain
classes.
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import inspect
from typing import Any, get_origin

from row_graph.core.exceptions import InstantiationError

_INTERFACES: dict[Any, type] = {
    cabc.Iterable: list,
    cabc.Collection: list,
    cabc.Sequence: list,
    cabc.MutableSequence: list,
    cabc.Set: set,
    cabc.MutableSet: set,
    cabc.Mapping: dict,
    cabc.MutableMapping: dict,
}

_COLLECTIONS = (cabc.MutableSequence, cabc.MutableSet)
_IMMUTABLE_COLLECTIONS = (tuple, frozenset)


def _is_pydantic_model(cls: Any) -> bool:
    """Check if a class is a Pydantic BaseModel."""
    try:
        from pydantic import BaseModel

        return isinstance(cls, type) and issubclass(cls, BaseModel)
    except ImportError:
        return False


def raw_type(python_type: Any) -> Any:
    """Strip generic parameters: list[int] -> list."""
    origin = get_origin(python_type)
    return origin if origin is not None else python_type


class ObjectFactory:
    """Default object factory.

    Dataclasses and Pydantic models are always default-constructible: when
    their fields are required, an empty shell is created and populated later
    through property assignment.
    """

    def create(
        self,
        target_type: Any,
        arg_types: list[Any] | None = None,
        args: list[Any] | None = None,
        arg_names: list[str] | None = None,
    ) -> Any:
        cls = self.resolve_interface(raw_type(target_type))
        try:
            if arg_types is None or args is None:
                return self._create_default(cls)
            if arg_names:
                return cls(**dict(zip(arg_names, args)))
            return cls(*args)
        except InstantiationError:
            raise
        except Exception as e:
            types = ",".join(getattr(t, "__name__", str(t)) for t in arg_types or [])
            values = ",".join(str(a) for a in args or [])
            raise InstantiationError(
                cls, f"invalid types ({types}) or values ({values}). Cause: {e}"
            ) from e

    def resolve_interface(self, target_type: Any) -> Any:
        return _INTERFACES.get(target_type, target_type)

    def is_collection(self, target_type: Any) -> bool:
        cls = raw_type(target_type)
        cls = self.resolve_interface(cls)
        if not isinstance(cls, type) or cls is bytearray:
            return False
        return issubclass(cls, _COLLECTIONS)

    def is_immutable_collection(self, target_type: Any) -> bool:
        """tuple and frozenset targets. NamedTuples are records, not collections."""
        cls = raw_type(target_type)
        if not isinstance(cls, type) or hasattr(cls, "_fields"):
            return False
        return issubclass(cls, _IMMUTABLE_COLLECTIONS)

    def has_default_constructor(self, target_type: Any) -> bool:
        cls = self.resolve_interface(raw_type(target_type))
        if not isinstance(cls, type):
            return False
        if dataclasses.is_dataclass(cls) or _is_pydantic_model(cls):
            return True
        if inspect.isabstract(cls):
            return False
        try:
            sig = inspect.signature(cls)
        except (TypeError, ValueError):
            return True
        return all(
            p.default is not inspect.Parameter.empty
            or p.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
            for p in sig.parameters.values()
        )

    def constructor_parameters(self, target_type: Any) -> list[inspect.Parameter] | None:
        """Positional parameters of the constructor, or None if not inspectable."""
        try:
            sig = inspect.signature(raw_type(target_type))
        except (TypeError, ValueError):
            return None
        return [
            p
            for p in sig.parameters.values()
            if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        ]

    def _create_default(self, cls: type) -> Any:
        if _is_pydantic_model(cls):
            return cls.model_construct()  # type: ignore[attr-defined]
        if dataclasses.is_dataclass(cls) and not self.has_default_constructor_signature(cls):
            instance = cls.__new__(cls)
            for f in dataclasses.fields(cls):
                if f.default is not dataclasses.MISSING:
                    value = f.default
                elif f.default_factory is not dataclasses.MISSING:
                    value = f.default_factory()
                else:
                    value = None
                object.__setattr__(instance, f.name, value)
            return instance
        return cls()

    @staticmethod
    def has_default_constructor_signature(cls: type) -> bool:
        return all(
            f.default is not dataclasses.MISSING or f.default_factory is not dataclasses.MISSING
            for f in dataclasses.fields(cls)
            if f.init
        )
