"""Configuration source tracking."""

from __future__ import annotations

from collections.abc import Iterable

from citewatch.config.types import ConfigOrigin, SourceMap


class SourceTracker:
    """Tracks the origin of configuration values during resolution."""

    def __init__(self) -> None:  # noqa: D107
        self._origins: dict[str, ConfigOrigin] = {}

    def set_origin(self, field: str, origin: ConfigOrigin) -> None:
        """Record where ``field``'s current value came from."""
        self._origins[field] = origin

    def set_multiple(self, fields: Iterable[str], origin: ConfigOrigin) -> None:
        """Record the same origin for several fields."""
        for field in fields:
            self._origins[field] = origin

    def get_source_map(self) -> SourceMap:
        """Copy of the field-to-origin mapping."""
        return dict(self._origins)

