"""Configuration resolution with precedence handling.

Merges configuration from every source in the documented precedence order:
Programmatic > Environment > Project file > Home file > Defaults
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from citewatch.config.audit import SourceTracker
from citewatch.config.env_loader import EnvironmentConfigLoader
from citewatch.config.file_loader import ConfigFileError, FileConfigLoader
from citewatch.config.schema import CitewatchSettings
from citewatch.config.types import ConfigOrigin, ResolvedConfig
from citewatch.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def schema_defaults() -> dict[str, Any]:
    """Field defaults straight from the schema (no environment involved)."""
    return {
        name: field.get_default(call_default_factory=True)
        for name, field in CitewatchSettings.model_fields.items()
    }


class ConfigResolver:
    """Resolves configuration from multiple sources with proper precedence."""

    def __init__(self) -> None:  # noqa: D107
        self.file_loader = FileConfigLoader()
        self.env_loader = EnvironmentConfigLoader()

    def resolve(
        self,
        programmatic: dict[str, Any] | None = None,
        *,
        profile: str | None = None,
        project_root: Path | None = None,
    ) -> ResolvedConfig:
        """Resolve configuration from all sources.

        Unknown keys in any source are ignored.

        Raises:
            ConfigFileError: The project file is malformed, or a profile
                requested without being named in any file.
            ConfigurationError: The merged values fail validation.
        """
        tracker = SourceTracker()
        merged = schema_defaults()
        tracker.set_multiple(merged, "default")

        if profile is None:
            profile = os.getenv("CITEWATCH_PROFILE") or None

        def apply(values: dict[str, Any], origin: ConfigOrigin) -> None:
            for field, value in values.items():
                if field in merged:
                    merged[field] = value
                    tracker.set_origin(field, origin)
                else:
                    logger.debug("Ignoring unknown %s config key %r", origin, field)

        try:
            apply(self.file_loader.load_home_config(profile=profile), "file")
        except ConfigFileError as e:
            # A broken home file must not block project-level configuration.
            logger.warning("Skipping home configuration: %s", e)

        try:
            apply(
                self.file_loader.load_project_config(
                    project_root=project_root, profile=profile
                ),
                "file",
            )
        except ConfigFileError:
            if profile is None:
                raise
            logger.warning("Profile %r not found in project configuration", profile)

        apply(self.env_loader.load_env_config(), "env")
        apply(dict(programmatic or {}), "programmatic")

        try:
            settings = CitewatchSettings(**merged)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        return ResolvedConfig(settings=settings, origin=tracker.get_source_map())

    def list_available_profiles(
        self, project_root: Path | None = None
    ) -> dict[str, list[str]]:
        """Profile names from the project and home files."""
        return self.file_loader.list_available_profiles(project_root)
