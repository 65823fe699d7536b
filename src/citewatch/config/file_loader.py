"""File-based configuration loading with profile support.

Loads configuration from TOML files: the project's ``pyproject.toml``
(``[tool.citewatch]``) and the home file ``~/.config/citewatch.toml``, both
with optional named profiles. ``CITEWATCH_CONFIG_HOME`` replaces
``~/.config`` as the home file's directory.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
import tomllib
from typing import Any

from citewatch.exceptions import CitewatchError

logger = logging.getLogger(__name__)

TOOL_SECTION = "citewatch"
HOME_FILE_NAME = "citewatch.toml"


class ConfigFileError(CitewatchError):
    """Raised when configuration file loading fails."""

    def __init__(
        self, file_path: Path, message: str, cause: Exception | None = None
    ) -> None:
        """Initialize with file path, message, and optional cause."""
        self.file_path = file_path
        self.message = message
        self.cause = cause
        super().__init__(f"Config file error in {file_path}: {message}")


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open(mode="rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigFileError(path, f"Failed to parse TOML: {e}", cause=e) from e


def _select_profile(
    path: Path, section: dict[str, Any], profile: str | None
) -> dict[str, Any]:
    if profile:
        profiles = section.get("profiles", {})
        if profile not in profiles:
            raise ConfigFileError(
                path,
                f"Profile '{profile}' not found. Available profiles: {list(profiles)}",
            )
        return dict(profiles[profile])
    config = dict(section)
    config.pop("profiles", None)
    return config


class FileConfigLoader:
    """Loads configuration from TOML files with profile support."""

    def load_project_config(
        self, project_root: Path | None = None, profile: str | None = None
    ) -> dict[str, Any]:
        """Load ``[tool.citewatch]`` (or one of its profiles) from pyproject.toml.

        Returns an empty dict when there is no pyproject.toml or no section.

        Raises:
            ConfigFileError: The file cannot be parsed or the profile is missing.
        """
        path = self._find_pyproject_toml(project_root)
        if path is None:
            return {}
        section = _read_toml(path).get("tool", {}).get(TOOL_SECTION, {})
        if not section:
            return {}
        logger.debug("Loading project configuration from %s", path)
        return _select_profile(path, section, profile)

    def load_home_config(self, profile: str | None = None) -> dict[str, Any]:
        """Load the home configuration file (or one of its profiles).

        Returns an empty dict when the file does not exist.

        Raises:
            ConfigFileError: The file cannot be parsed or the profile is missing.
        """
        path = self.home_config_path()
        if not path.exists():
            return {}
        logger.debug("Loading home configuration from %s", path)
        return _select_profile(path, _read_toml(path), profile)

    def list_available_profiles(
        self, project_root: Path | None = None
    ) -> dict[str, list[str]]:
        """Profile names from the project and home files (unreadable files skipped)."""
        profiles: dict[str, list[str]] = {"project": [], "home": []}
        path = self._find_pyproject_toml(project_root)
        if path is not None:
            try:
                section = _read_toml(path).get("tool", {}).get(TOOL_SECTION, {})
                profiles["project"] = list(section.get("profiles", {}))
            except ConfigFileError as e:
                logger.debug("Skipping project profiles: %s", e)
        home = self.home_config_path()
        if home.exists():
            try:
                profiles["home"] = list(_read_toml(home).get("profiles", {}))
            except ConfigFileError as e:
                logger.debug("Skipping home profiles: %s", e)
        return profiles

    def home_config_path(self) -> Path:
        """Path of the home configuration file."""
        base = os.getenv("CITEWATCH_CONFIG_HOME")
        directory = Path(base) if base else Path.home() / ".config"
        return directory / HOME_FILE_NAME

    def _find_pyproject_toml(self, start_dir: Path | None = None) -> Path | None:
        """Find pyproject.toml by searching up the directory tree."""
        current = Path(start_dir or Path.cwd()).resolve()
        while current != current.parent:
            candidate = current / "pyproject.toml"
            if candidate.exists():
                return candidate
            current = current.parent
        return None
