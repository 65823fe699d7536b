"""
Global test configuration.
"""

from collections.abc import Callable
import logging
import os
from typing import Any

import pytest

from citewatch.config import CitewatchSettings

PROVIDER_KEY_VARS = (
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
    "CLAUDE_API_KEY",
    "ANTHROPIC_API_KEY",
    "PERPLEXITY_API_KEY",
)


# --- Environment Isolation (Autouse) ---
@pytest.fixture(autouse=True)
def isolate_citewatch_env(request, monkeypatch):
    """Ensure a clean CITEWATCH_* and provider-key environment for each test.

    Escape hatch: mark a test with @pytest.mark.allow_env_pollution to keep
    the current environment unchanged.
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return

    for key in list(os.environ.keys()):
        if key.startswith("CITEWATCH_"):
            monkeypatch.delenv(key, raising=False)
    for key in PROVIDER_KEY_VARS:
        monkeypatch.delenv(key, raising=False)
    # Avoid DEBUG toggles affecting telemetry
    monkeypatch.delenv("DEBUG", raising=False)


@pytest.fixture(autouse=True)
def neutral_home_config(request, monkeypatch, tmp_path):
    """Point the home config directory at an empty temp directory.

    Prevents reading a developer's real ~/.config/citewatch.toml during tests.
    """
    if request.node.get_closest_marker("allow_real_home_config"):
        return

    fake_home_dir = tmp_path / "home_config_isolated"
    fake_home_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("CITEWATCH_CONFIG_HOME", str(fake_home_dir))


# --- Settings Fixtures ---
@pytest.fixture
def make_settings() -> Callable[..., CitewatchSettings]:
    """Build settings with every provider key set unless overridden."""

    def _make(**overrides: Any) -> CitewatchSettings:
        values: dict[str, Any] = {
            "openai_api_key": "sk-openai-test",
            "gemini_api_key": "gemini-test",
            "claude_api_key": "sk-ant-test",
            "perplexity_api_key": "pplx-test",
        }
        values.update(overrides)
        return CitewatchSettings(**values)

    return _make


# --- Logging Fixtures ---
@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Sets the log level for noisy external libraries to WARNING."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)


# --- Test Environment Markers ---
def pytest_configure(config):
    """Configure custom markers for test organization."""
    markers = [
        "unit: Fast, isolated unit tests",
        "contract: Invariants shared across components",
        "allow_env_pollution: Keep the real environment for this test",
        "allow_real_home_config: Read the real ~/.config/citewatch.toml",
    ]
    for marker in markers:
        config.addinivalue_line("markers", marker)
