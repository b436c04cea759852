"""Engine settings.

Settings is a frozen Pydantic model so a resolved configuration can be shared
by every engine instance without defensive copies.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from row_graph.core.enums import AutoMappingBehavior, UnknownColumnBehavior
from row_graph.core.exceptions import ConfigurationError, UnknownSettingError


class Settings(BaseModel):
    """Process-wide mapping behavior switches."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    auto_mapping_behavior: AutoMappingBehavior = AutoMappingBehavior.PARTIAL
    unknown_column_behavior: UnknownColumnBehavior = UnknownColumnBehavior.NONE
    map_underscore_to_camel_case: bool = False
    call_setters_on_nulls: bool = False
    lazy_loading_enabled: bool = False
    safe_row_bounds_enabled: bool = False
    safe_result_handler_enabled: bool = True

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> Settings:
        """Build settings from a plain mapping.

        Raises:
            UnknownSettingError: If a key is not a known setting.
            ConfigurationError: If a value fails validation.
        """
        unknown = sorted(set(data) - set(cls.model_fields))
        if unknown:
            raise UnknownSettingError(unknown)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings: {e}") from e
