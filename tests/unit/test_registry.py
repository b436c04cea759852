"""Unit tests for MappingRegistry and Settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from row_graph.core.enums import AutoMappingBehavior, UnknownColumnBehavior
from row_graph.core.exceptions import (
    ConfigurationError,
    DuplicateMappingError,
    MappingNotFoundError,
    StatementNotFoundError,
    UnknownSettingError,
)
from row_graph.core.registry import MappingRegistry
from row_graph.core.settings import Settings
from row_graph.mapping.builder import result_map
from row_graph.mapping.plan import Statement


class TestMappingRegistry:
    def test_lookup(self) -> None:
        user = result_map("user", dict).build()
        registry = MappingRegistry([user], [Statement(id="user.list", result_maps=("user",))])

        assert registry.get_result_map("user") is user
        assert registry.get_statement("user.list").result_maps == ("user",)
        assert registry.has_result_map("user") is True
        assert registry.has_statement("user.list") is True

    def test_has_returns_false_for_missing(self) -> None:
        registry = MappingRegistry()
        assert registry.has_result_map("user") is False
        assert registry.has_result_map(None) is False
        assert registry.has_statement("user.list") is False

    def test_result_map_ids_sorted(self) -> None:
        registry = MappingRegistry([result_map(name, dict).build() for name in ("b", "a", "c")])
        assert registry.result_map_ids == ["a", "b", "c"]
        assert len(registry) == 3

    def test_mapping_not_found_error(self) -> None:
        with pytest.raises(MappingNotFoundError, match="user.missing"):
            MappingRegistry().get_result_map("user.missing")

    def test_statement_not_found_error(self) -> None:
        with pytest.raises(StatementNotFoundError, match="user.missing"):
            MappingRegistry().get_statement("user.missing")

    def test_duplicate_result_map(self) -> None:
        with pytest.raises(DuplicateMappingError, match="user"):
            MappingRegistry([result_map("user", dict).build(), result_map("user", list).build()])

    def test_duplicate_statement(self) -> None:
        with pytest.raises(DuplicateMappingError):
            MappingRegistry(statements=[Statement(id="s"), Statement(id="s")])

    def test_missing_mapping_is_a_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            MappingRegistry().get_result_map("user")


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.auto_mapping_behavior is AutoMappingBehavior.PARTIAL
        assert settings.unknown_column_behavior is UnknownColumnBehavior.NONE
        assert settings.safe_result_handler_enabled is True
        assert settings.lazy_loading_enabled is False

    def test_from_mapping(self) -> None:
        settings = Settings.from_mapping(
            {"auto_mapping_behavior": "full", "unknown_column_behavior": "warning", "lazy_loading_enabled": True}
        )
        assert settings.auto_mapping_behavior is AutoMappingBehavior.FULL
        assert settings.unknown_column_behavior is UnknownColumnBehavior.WARNING
        assert settings.lazy_loading_enabled is True

    def test_unknown_setting(self) -> None:
        with pytest.raises(UnknownSettingError) as exc_info:
            Settings.from_mapping({"lazy_loading_enabled": True, "agressive_lazy": True})
        assert exc_info.value.names == ["agressive_lazy"]

    def test_invalid_value(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid settings"):
            Settings.from_mapping({"auto_mapping_behavior": "sometimes"})

    def test_frozen(self) -> None:
        settings = Settings()
        with pytest.raises(ValidationError):
            settings.lazy_loading_enabled = True  # type: ignore[misc]
