"""Environment variable configuration loading.

Reads ``CITEWATCH_<FIELD>`` variables for every settings field plus the
conventional provider key variables. Only variables that are actually set
are returned, so the resolver can attribute them to the environment.
"""

from __future__ import annotations

import os

from citewatch.config.schema import SECRET_FIELDS, CitewatchSettings

ENV_PREFIX = "CITEWATCH_"

# Conventional names checked after the prefixed variable
CONVENTIONAL_KEY_VARS: dict[str, tuple[str, ...]] = {
    "openai_api_key": ("OPENAI_API_KEY",),
    "gemini_api_key": ("GEMINI_API_KEY",),
    "claude_api_key": ("CLAUDE_API_KEY", "ANTHROPIC_API_KEY"),
    "perplexity_api_key": ("PERPLEXITY_API_KEY",),
}


class EnvironmentConfigLoader:
    """Loads configuration from environment variables."""

    def env_var_names(self, field: str) -> tuple[str, ...]:
        """Variables consulted for ``field``, highest priority first."""
        return (f"{ENV_PREFIX}{field.upper()}", *CONVENTIONAL_KEY_VARS.get(field, ()))

    def load_env_config(self) -> dict[str, str]:
        """Return raw string values for fields set in the environment.

        Values are validated later together with every other source.
        """
        values: dict[str, str] = {}
        for field in CitewatchSettings.model_fields:
            for name in self.env_var_names(field):
                raw = os.environ.get(name)
                if raw is not None and raw.strip() != "":
                    values[field] = raw
                    break
        return values

    def get_env_summary(self) -> dict[str, str]:
        """Set citewatch-related variables with secrets redacted."""
        summary: dict[str, str] = {}
        for field in CitewatchSettings.model_fields:
            for name in self.env_var_names(field):
                if name in os.environ:
                    summary[name] = (
                        "<redacted>" if field in SECRET_FIELDS else os.environ[name]
                    )
        return summary
