"""Core data types that flow through the citation pipeline.

Each stage produces a new value instead of mutating its input: adapters
produce an `AdapterResponse`, the result builder wraps it in an immutable
`CompletionResult` carrying `RawCitation`s, the deduplicator folds those into
`DeduplicatedCitation`s and the classifier wraps each one in a
`ClassifiedCitation` that is handed to the store.
"""

from __future__ import annotations

from collections.abc import Mapping
import dataclasses
from enum import Enum
from types import MappingProxyType
import typing

if typing.TYPE_CHECKING:
    from citewatch.exceptions import ProviderError

# --- Minimal guard helpers (clarity > boilerplate) ---

T = typing.TypeVar("T")


def _freeze_mapping(m: Mapping[str, T] | None) -> Mapping[str, T]:
    """Return an immutable mapping view (empty when ``m`` is None)."""
    if isinstance(m, MappingProxyType):
        return m
    return MappingProxyType(dict(m or {}))


def _require(
    *,
    condition: bool,
    message: str,
    exc: type[Exception] = ValueError,
    field_name: str | None = None,
) -> None:
    """Centralized validation with optional field context for clearer errors."""
    if not condition:
        if field_name:
            raise exc(f"{field_name}: {message}")
        raise exc(message)


def _optional_index(value: object, field_name: str) -> None:
    _require(
        condition=value is None
        or (isinstance(value, int) and not isinstance(value, bool) and value >= 0),
        message="must be None or an int >= 0",
        field_name=field_name,
        exc=TypeError,
    )


# --- Result Monad for per-provider outcomes ---

TSuccess = typing.TypeVar("TSuccess")
TFailure = typing.TypeVar("TFailure", bound=Exception)


@dataclasses.dataclass(frozen=True, slots=True)
class Success[TSuccess]:
    """A successful result."""

    value: TSuccess


@dataclasses.dataclass(frozen=True, slots=True)
class Failure[TFailure]:
    """A failed result, containing the error."""

    error: TFailure


Result = Success[TSuccess] | Failure[TFailure]


# --- Providers and call configuration ---


class Provider(str, Enum):
    """AI providers whose completions are acquired."""

    OPENAI = "openai"
    GEMINI = "gemini"
    CLAUDE = "claude"
    PERPLEXITY = "perplexity"

    @classmethod
    def parse(cls, value: str | Provider) -> Provider:
        """Return the provider for an enum member or its case-insensitive name."""
        if isinstance(value, Provider):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(p.value for p in cls)
            raise ValueError(
                f"Unsupported provider: {value!r}. Must be one of: {valid}"
            ) from None


@dataclasses.dataclass(frozen=True, slots=True)
class ProviderCallConfig:
    """Per-call settings for one provider request.

    The API key is excluded from ``repr`` so configs can be logged safely.
    """

    api_key: str = dataclasses.field(repr=False)
    model: str
    temperature: float = 0.7
    max_tokens: int = 2000
    region: str | None = None

    def __post_init__(self) -> None:
        """Validate invariants for type safety."""
        _require(
            condition=isinstance(self.api_key, str) and self.api_key.strip() != "",
            message="must be a non-empty str",
            field_name="api_key",
            exc=TypeError,
        )
        _require(
            condition=isinstance(self.model, str) and self.model.strip() != "",
            message="must be a non-empty str",
            field_name="model",
            exc=TypeError,
        )
        _require(
            condition=0.0 <= float(self.temperature) <= 2.0,
            message="must be within [0, 2]",
            field_name="temperature",
        )
        _require(
            condition=isinstance(self.max_tokens, int) and self.max_tokens > 0,
            message="must be a positive int",
            field_name="max_tokens",
        )


@dataclasses.dataclass(frozen=True, slots=True)
class AdapterResponse:
    """What a provider adapter returns for one successful HTTP call.

    ``raw`` is the complete decoded response body; it is the citation source
    for the extractor stage.
    """

    text: str
    tokens_used: int
    model: str
    raw: Mapping[str, typing.Any]

    def __post_init__(self) -> None:  # noqa: D105
        object.__setattr__(self, "raw", _freeze_mapping(self.raw))


# --- Citations ---


@dataclasses.dataclass(frozen=True, slots=True)
class RawCitation:
    """One citation fragment as emitted by a provider-specific extractor.

    Invariants: at least one of ``url``/``uri`` is set and
    ``start_index <= end_index`` when both are present.
    """

    url: str | None = None
    uri: str | None = None
    domain: str | None = None
    start_index: int | None = None
    end_index: int | None = None
    text: str | None = None
    web_search_query: str | None = None
    metadata: Mapping[str, typing.Any] = dataclasses.field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        """Validate invariants for type safety."""
        _require(
            condition=bool(self.url) or bool(self.uri),
            message="at least one of url/uri is required",
            field_name="url/uri",
        )
        _optional_index(self.start_index, "start_index")
        _optional_index(self.end_index, "end_index")
        if self.start_index is not None and self.end_index is not None:
            _require(
                condition=self.start_index <= self.end_index,
                message=f"start {self.start_index} is after end {self.end_index}",
                field_name="start_index",
            )
        object.__setattr__(self, "metadata", _freeze_mapping(self.metadata))

    @property
    def location(self) -> str:
        """The URL when known, else the raw URI."""
        return typing.cast("str", self.url or self.uri)


@dataclasses.dataclass(slots=True)
class DeduplicatedCitation:
    """All occurrences of one normalized URI within a single response.

    Built incrementally by the deduplicator; treat as read-only afterwards.
    ``start_indices`` and ``end_indices`` are parallel lists.
    """

    normalized_uri: str
    uri: str
    url: str
    domain: str | None = None
    web_search_query: str | None = None
    text_fragments: list[str] = dataclasses.field(default_factory=list)
    start_indices: list[int] = dataclasses.field(default_factory=list)
    end_indices: list[int] = dataclasses.field(default_factory=list)
    occurrence_count: int = 1
    metadata: dict[str, typing.Any] = dataclasses.field(default_factory=dict)

    @property
    def index_pairs(self) -> list[tuple[int, int]]:
        """(start, end) pairs in insertion order."""
        return list(zip(self.start_indices, self.end_indices, strict=True))


class CitationType(str, Enum):
    """How a cited domain relates to the tracked project."""

    BRAND = "brand"
    COMPETITOR = "competitor"
    OTHER = "other"


@dataclasses.dataclass(frozen=True, slots=True)
class Competitor:
    """A registered competitor and its (unnormalized) website domain."""

    id: str
    domain: str


@dataclasses.dataclass(frozen=True, slots=True)
class ClassificationContext:
    """Brand and competitor domains for one project, already normalized.

    Build it with `from_project` so that every domain goes through the same
    normalizer as the citations it is compared against.
    """

    brand_domain: str | None = None
    competitors: tuple[Competitor, ...] = ()

    def __post_init__(self) -> None:  # noqa: D105
        object.__setattr__(self, "competitors", tuple(self.competitors))

    @classmethod
    def from_project(
        cls,
        client_url: str | None,
        competitors: typing.Iterable[Competitor | Mapping[str, typing.Any]] = (),
    ) -> ClassificationContext:
        """Context for a project's website URL and competitor list."""
        from citewatch.citations.classification import build_context

        return build_context(client_url, competitors)


@dataclasses.dataclass(frozen=True, slots=True)
class ClassifiedCitation:
    """A deduplicated citation plus its brand/competitor/other label."""

    citation: DeduplicatedCitation
    citation_type: CitationType
    competitor_id: str | None = None

    def __post_init__(self) -> None:
        """Enforce: competitor_id is set exactly when the type is competitor."""
        is_competitor = self.citation_type is CitationType.COMPETITOR
        _require(
            condition=(self.competitor_id is not None) == is_competitor,
            message=(
                "competitor_id must be set iff citation_type is competitor, "
                f"got type={self.citation_type.value!r} id={self.competitor_id!r}"
            ),
            field_name="competitor_id",
        )

    @property
    def normalized_uri(self) -> str:  # noqa: D102
        return self.citation.normalized_uri


# --- Completion results and outcomes ---


@dataclasses.dataclass(frozen=True, slots=True)
class CompletionResult:
    """One successful provider completion with its extracted citations."""

    provider: Provider
    text: str
    tokens_used: int
    model: str
    cost_estimate: float
    execution_time_ms: int
    raw_citations: tuple[RawCitation, ...] | None = None
    has_web_search: bool = False

    def __post_init__(self) -> None:
        """Validate invariants for type safety."""
        _require(
            condition=isinstance(self.tokens_used, int) and self.tokens_used >= 0,
            message="must be an int >= 0",
            field_name="tokens_used",
        )
        _require(
            condition=self.execution_time_ms >= 0,
            message="must be >= 0",
            field_name="execution_time_ms",
        )
        if self.raw_citations is not None:
            object.__setattr__(self, "raw_citations", tuple(self.raw_citations))

    @property
    def citations(self) -> tuple[RawCitation, ...]:
        """Raw citations, empty when none were extracted."""
        return self.raw_citations or ()


@dataclasses.dataclass(frozen=True, slots=True)
class ProviderOutcome:
    """Independent outcome of one provider within a multi-provider run."""

    provider: Provider
    response_id: str
    result: Result[CompletionResult, ProviderError]
    citations: tuple[ClassifiedCitation, ...] = ()
    citations_saved: int = 0

    @property
    def status(self) -> typing.Literal["success", "error"]:  # noqa: D102
        return "success" if isinstance(self.result, Success) else "error"

    @property
    def completion(self) -> CompletionResult | None:  # noqa: D102
        return self.result.value if isinstance(self.result, Success) else None

    @property
    def error(self) -> ProviderError | None:  # noqa: D102
        return self.result.error if isinstance(self.result, Failure) else None

    @property
    def is_rate_limit(self) -> bool:  # noqa: D102
        error = self.error
        return error is not None and error.is_rate_limit
