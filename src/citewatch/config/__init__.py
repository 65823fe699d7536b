"""Configuration for citewatch.

Resolve once, freeze, then pass the settings down:

    resolved = resolve_config({"max_retries": 5})
    settings = resolved.to_frozen()
    print(resolved.audit())

Precedence: programmatic > environment > pyproject.toml ``[tool.citewatch]``
> ``~/.config/citewatch.toml`` > defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from citewatch.config.audit import SourceTracker
from citewatch.config.env_loader import EnvironmentConfigLoader
from citewatch.config.file_loader import ConfigFileError, FileConfigLoader
from citewatch.config.resolver import ConfigResolver
from citewatch.config.schema import CitewatchSettings
from citewatch.config.types import (
    ConfigOrigin,
    FrozenConfig,
    ResolvedConfig,
    SourceMap,
)


def resolve_config(
    overrides: dict[str, Any] | None = None,
    *,
    profile: str | None = None,
    project_root: Path | None = None,
) -> ResolvedConfig:
    """Resolve configuration from all sources with proper precedence.

    Args:
        overrides: Programmatic values (highest precedence).
        profile: Profile to load from config files; defaults to
            ``CITEWATCH_PROFILE``.
        project_root: Where to start looking for pyproject.toml; defaults to
            the current directory and its parents.

    Raises:
        ConfigFileError: A configuration file is malformed.
        ConfigurationError: The merged values fail validation.
    """
    return ConfigResolver().resolve(
        overrides, profile=profile, project_root=project_root
    )


__all__ = [
    "CitewatchSettings",
    "ConfigFileError",
    "ConfigOrigin",
    "ConfigResolver",
    "EnvironmentConfigLoader",
    "FileConfigLoader",
    "FrozenConfig",
    "ResolvedConfig",
    "SourceMap",
    "SourceTracker",
    "resolve_config",
]
