"""Discriminator resolution.

Walks a chain of discriminators from a starting result map to the effective
leaf map for the current row.
"""

from __future__ import annotations

from typing import Any

from row_graph.core.registry import MappingRegistry
from row_graph.mapping.plan import Discriminator, ResultMap
from row_graph.mapping.wrapper import ResultSetWrapper, prepend_prefix


def discriminator_value(
    rsw: ResultSetWrapper, discriminator: Discriminator, column_prefix: str | None
) -> Any:
    mapping = discriminator.result_mapping
    column = prepend_prefix(mapping.column, column_prefix)
    assert column is not None
    converter = mapping.converter or rsw.resolve_converter(mapping.python_type or object, column)
    return converter.get_result(rsw, column)


def resolve_discriminated_result_map(
    rsw: ResultSetWrapper,
    result_map: ResultMap,
    registry: MappingRegistry,
    column_prefix: str | None = None,
) -> ResultMap:
    """Follow discriminators until no case matches.

    Terminates on a self-referencing case or a map id already visited in this
    call, so the walk takes at most as many steps as there are distinct maps.
    """
    visited: set[str] = set()
    discriminator = result_map.discriminator
    while discriminator is not None:
        value = discriminator_value(rsw, discriminator, column_prefix)
        map_id = discriminator.map_id_for(value)
        if not registry.has_result_map(map_id):
            break
        assert map_id is not None
        result_map = registry.get_result_map(map_id)
        last = discriminator
        discriminator = result_map.discriminator
        if discriminator is last or map_id in visited:
            break
        visited.add(map_id)
    return result_map
