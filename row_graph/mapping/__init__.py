"""Mapping layer - result map descriptors and the services that apply them."""

from __future__ import annotations

from row_graph.mapping.builder import ResultMapBuilder, result_map
from row_graph.mapping.converters import ConverterRegistry, EnumConverter, TypeConverter
from row_graph.mapping.factory import ObjectFactory
from row_graph.mapping.lazy import Lazy, ResultLoader, unwrap
from row_graph.mapping.meta import MetaObject
from row_graph.mapping.plan import Discriminator, ResultMap, ResultMapping, Statement
from row_graph.mapping.wrapper import ResultSetWrapper

__all__ = [
    "ResultMap",
    "ResultMapping",
    "Discriminator",
    "Statement",
    "ResultMapBuilder",
    "result_map",
    "ConverterRegistry",
    "TypeConverter",
    "EnumConverter",
    "ObjectFactory",
    "MetaObject",
    "Lazy",
    "ResultLoader",
    "unwrap",
    "ResultSetWrapper",
]
