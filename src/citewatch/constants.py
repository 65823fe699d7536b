"""
Project-wide constants for citewatch
"""  # noqa: D200, D212, D415

# ==============================================================================
# Rate limiting and retries
# ==============================================================================

RATE_LIMIT_WINDOW = 60  # seconds
RATE_LIMIT_SAFETY_BUFFER = 1  # seconds added to every window wait
DEFAULT_RETRY_AFTER_MS = 60_000
MAX_RETRIES = 3
NETWORK_TIMEOUT = 30.0  # seconds

# Requests per rolling minute
DEFAULT_REQUESTS_PER_MINUTE = {
    "openai": 5000,
    "gemini": 8,  # documented 10, two kept as margin
    "claude": 50,
    "perplexity": 50,
}

# Gemini rejects bursts even under the per-minute ceiling
GEMINI_MIN_INTERVAL = 7.5  # seconds

# ==============================================================================
# Completion defaults
# ==============================================================================

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000
CHARS_PER_TOKEN = 4

DEFAULT_MODELS = {
    "openai": "o4-mini",
    "gemini": "gemini-2.0-flash-exp",
    "claude": "claude-haiku-4-5-20251001",
    "perplexity": "sonar-pro",
}

# Estimated USD per 1K tokens
COST_PER_1K_TOKENS = {
    "openai": 0.002,
    "gemini": 0.001,
    "claude": 0.003,
    "perplexity": 0.0015,
}
FALLBACK_COST_PER_1K_TOKENS = 0.002

# ==============================================================================
# Citations
# ==============================================================================

# Hosts that never represent a real source (matched on host or any parent)
IGNORED_DOMAINS = (
    "w3.org",
    "schemas.google.com",
    "json-schema.org",
    "example.com",
    "example.org",
    "example.net",
    "localhost",
    "127.0.0.1",
)

# Substrings that mark a schema namespace rather than a page
IGNORED_URL_MARKERS = ("xmlns", "json-schema")

# Gemini grounding redirects; the real page is only known from the title
GEMINI_REDIRECT_HOST = "vertexaisearch.cloud.google.com"

TEXT_FRAGMENT_SEPARATOR = " [...] "
