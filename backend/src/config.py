"""Configuration for LLM Crossrank."""

import os
import json
from dotenv import load_dotenv

# Load local env files if present (never commit these).
# - `.env.local` is convenient for local dev.
# - `.env` is the default for docker-compose variable substitution.
load_dotenv(dotenv_path=".env.local", override=False)
load_dotenv(dotenv_path=".env", override=False)

# Environment name (used for warnings/behavior toggles)
ENV = os.getenv("ENV", "development")

# Provider credentials. A missing key degrades that provider's calls, it never aborts a run.
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")

# Provider endpoints
OPENAI_API_URL = os.getenv("OPENAI_API_URL", "https://api.openai.com/v1/chat/completions")
ANTHROPIC_API_URL = os.getenv("ANTHROPIC_API_URL", "https://api.anthropic.com/v1/messages")
ANTHROPIC_VERSION = os.getenv("ANTHROPIC_VERSION", "2023-06-01")
GEMINI_API_BASE_URL = os.getenv(
    "GEMINI_API_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/models"
)

# Provider client hardening knobs
PROVIDER_MAX_CONCURRENCY = int(os.getenv("PROVIDER_MAX_CONCURRENCY", "12"))
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "120.0"))
PROVIDER_AUTH_COOLDOWN_SECONDS = int(os.getenv("PROVIDER_AUTH_COOLDOWN_SECONDS", "60"))

# Per-request timeouts for scorer and arbiter provider calls, counted from when a provider slot is held.
def _optional_float(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


SCORER_TIMEOUT_SECONDS = _optional_float(os.getenv("SCORER_TIMEOUT_SECONDS", "60"))
ARBITER_TIMEOUT_SECONDS = _optional_float(os.getenv("ARBITER_TIMEOUT_SECONDS", "90"))
GENERATION_TIMEOUT_SECONDS = _optional_float(os.getenv("GENERATION_TIMEOUT_SECONDS"))

# Bound on concurrent scorer calls within one run. Unset means full fan-out.
_max_conc = os.getenv("EVALUATION_MAX_CONCURRENCY")
EVALUATION_MAX_CONCURRENCY = int(_max_conc) if _max_conc else None

# Scoring scale
MIN_SCORE = 1.0
MAX_SCORE = 10.0
_DEFAULT_NEUTRAL_SCORE = 7.0


def _neutral_score(value: str | None) -> float:
    """Parse NEUTRAL_SCORE, clamped into [MIN_SCORE, MAX_SCORE]. Unparsable values use the default."""
    try:
        score = float(value) if value else _DEFAULT_NEUTRAL_SCORE
    except ValueError:
        score = _DEFAULT_NEUTRAL_SCORE
    if score != score:  # NaN
        score = _DEFAULT_NEUTRAL_SCORE
    return max(MIN_SCORE, min(MAX_SCORE, score))


NEUTRAL_SCORE = _neutral_score(os.getenv("NEUTRAL_SCORE"))
SHORTLIST_SIZE = 3

# Sampling knobs per call type
SCORE_TEMPERATURE = 0.3
SCORE_MAX_TOKENS = 10
ARBITER_TEMPERATURE = 0.3
ARBITER_MAX_TOKENS = 20
GENERATION_MAX_TOKENS = int(os.getenv("GENERATION_MAX_TOKENS", "1000"))

# Arbiter model - produces the final order over the shortlist
ARBITER_MODEL = os.getenv("ARBITER_MODEL", "gemini-pro")

# Model catalogue offered to clients (id -> display name)
MODEL_CATALOGUE: dict[str, str] = {
    "gpt-4-vision-preview": "GPT-4 Vision",
    "gpt-4-turbo": "GPT-4 Turbo",
    "claude-3-opus": "Claude 3 Opus",
    "claude-3-sonnet": "Claude 3 Sonnet",
    "gemini-pro-vision": "Gemini Pro Vision",
}

# Candidate id -> provider model name. Ids not listed are sent to the provider as is.
# Example:
# {
#   "claude-3-opus": "claude-3-opus-20240229"
# }
_DEFAULT_MODEL_ALIASES = {
    "claude-3-opus": "claude-3-opus-20240229",
    "claude-3-sonnet": "claude-3-sonnet-20240229",
}
MODEL_ALIASES_JSON = os.getenv("MODEL_ALIASES_JSON")
MODEL_ALIASES: dict[str, str] = (
    json.loads(MODEL_ALIASES_JSON) if MODEL_ALIASES_JSON else dict(_DEFAULT_MODEL_ALIASES)
)

# Candidate id substring -> provider name. First match in insertion order wins.
_DEFAULT_PROVIDER_PREFIXES = {"gpt": "openai", "claude": "anthropic", "gemini": "google"}
PROVIDER_PREFIXES_JSON = os.getenv("PROVIDER_PREFIXES_JSON")
PROVIDER_PREFIXES: dict[str, str] = (
    json.loads(PROVIDER_PREFIXES_JSON) if PROVIDER_PREFIXES_JSON else dict(_DEFAULT_PROVIDER_PREFIXES)
)


def _parse_csv_list(value: str | None) -> list[str] | None:
    if not value:
        return None
    items = [v.strip() for v in value.split(",")]
    items = [v for v in items if v]
    return items or None


DEFAULT_MODELS = _parse_csv_list(os.getenv("DEFAULT_MODELS")) or [
    "gpt-4-turbo",
    "claude-3-opus",
    "claude-3-sonnet",
    "gemini-pro-vision",
]

# Request limits
MIN_MODELS_PER_RUN = int(os.getenv("MIN_MODELS_PER_RUN", "4"))
MAX_MODELS_PER_RUN = int(os.getenv("MAX_MODELS_PER_RUN", "8"))
MAX_PROMPT_CHARS = int(os.getenv("MAX_PROMPT_CHARS", "20000"))
MAX_RESPONSE_CHARS = int(os.getenv("MAX_RESPONSE_CHARS", "100000"))
MAX_IMAGE_DATA_CHARS = int(os.getenv("MAX_IMAGE_DATA_CHARS", str(10 * 1024 * 1024)))


def cors_allow_origins() -> list[str]:
    origins = _parse_csv_list(os.getenv("CORS_ALLOW_ORIGINS"))
    if origins:
        return origins
    if ENV == "development":
        return ["*"]
    return []
