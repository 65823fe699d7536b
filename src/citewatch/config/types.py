"""Core configuration data types for citewatch.

This module defines the structures used by the configuration system,
following the resolve-once, freeze-then-flow pattern.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Literal, NamedTuple

from citewatch.config.schema import SECRET_FIELDS

if TYPE_CHECKING:
    from citewatch.config.schema import CitewatchSettings

# --- Source Tracking Types ---

ConfigOrigin = Literal["programmatic", "env", "file", "default"]
SourceMap = Mapping[str, ConfigOrigin]

# Settings are frozen pydantic models, so the validated object is the frozen form.
type FrozenConfig = CitewatchSettings


class ResolvedConfig(NamedTuple):
    """Configuration after resolution from all sources.

    ``settings`` holds the validated values; ``origin`` records where each
    field value came from for observability.
    """

    settings: CitewatchSettings
    origin: SourceMap

    def __str__(self) -> str:
        """String representation with API keys redacted (pydantic SecretStr)."""
        return f"ResolvedConfig(settings={self.settings!r}, origin={dict(self.origin)!r})"

    def __repr__(self) -> str:  # noqa: D105
        return self.__str__()

    def to_frozen(self) -> CitewatchSettings:
        """Return the immutable settings that flow through the pipeline."""
        return self.settings

    def audit(self) -> str:
        """Redacted report of each field's value and origin, one per line."""
        lines = []
        for field in type(self.settings).model_fields:
            origin = self.origin.get(field, "default")
            value = getattr(self.settings, field)
            if field in SECRET_FIELDS:
                shown = "None" if value is None else "<redacted>"
                lines.append(f"{field}: {origin}:{shown}")
            elif origin == "env":
                lines.append(f"{field}: env:CITEWATCH_{field.upper()}={value}")
            else:
                lines.append(f"{field}: {origin}:{value}")
        return "\n".join(lines)
