"""Citation acquisition for AI search providers.

Send a prompt to several providers under their rate limits, pull the web
citations out of each response, deduplicate them and classify each source
as the project's brand, a competitor, or other.
"""

import importlib.metadata
import logging

from citewatch.config import CitewatchSettings, resolve_config
from citewatch.core.types import (
    ClassificationContext,
    ClassifiedCitation,
    CitationType,
    Competitor,
    CompletionResult,
    DeduplicatedCitation,
    Failure,
    Provider,
    ProviderOutcome,
    RawCitation,
    Result,
    Success,
)
from citewatch.exceptions import (
    CitewatchError,
    ConfigurationError,
    ExhaustedRetries,
    ProviderError,
    RateLimitExceeded,
)
from citewatch.pipeline import (
    CitationPipeline,
    InMemoryCitationStore,
    create_pipeline,
    summarize_outcomes,
)
from citewatch.telemetry import TelemetryContext, TelemetryReporter

# Version handling
try:
    __version__ = importlib.metadata.version("citewatch")
except importlib.metadata.PackageNotFoundError:
    __version__ = "development"

# Set up a null handler for the library's root logger.
logging.getLogger(__name__).addHandler(logging.NullHandler())

# Public API
__all__ = [  # noqa: RUF022
    # Pipeline
    "CitationPipeline",
    "InMemoryCitationStore",
    "create_pipeline",
    "summarize_outcomes",
    # Configuration
    "CitewatchSettings",
    "resolve_config",
    # Types
    "CitationType",
    "ClassificationContext",
    "ClassifiedCitation",
    "Competitor",
    "CompletionResult",
    "DeduplicatedCitation",
    "Failure",
    "Provider",
    "ProviderOutcome",
    "RawCitation",
    "Result",
    "Success",
    # Exceptions
    "CitewatchError",
    "ConfigurationError",
    "ExhaustedRetries",
    "ProviderError",
    "RateLimitExceeded",
    # Telemetry (extension points)
    "TelemetryContext",
    "TelemetryReporter",
]
