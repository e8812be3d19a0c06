"""
Runtime Configuration for Parley.

Provides a singleton RuntimeConfig class that holds provider credentials,
search settings and storage connections, with runtime adjustment of the
tunable parameters without requiring a service restart.

Usage:
    from config import runtime_config
    budget = runtime_config.reasoning_budget_tokens
    runtime_config.update(search_max_results=3, smoothing_delay_ms=20)
"""

import os
import logging
import re
from dataclasses import dataclass, field, fields
from typing import Dict, Any, List
from threading import Lock
from urllib.parse import quote_plus

logger = logging.getLogger(__name__)

_MODEL_ID_RE = re.compile(r"^[a-zA-Z0-9._:-]+$")


def _first_env(*keys: str, default: str) -> str:
    """Return the first non-empty environment value from keys, else default."""
    for key in keys:
        value = os.environ.get(key, "").strip()
        if value:
            return value
    return default


def _env_bool(key: str, default: str) -> bool:
    return os.environ.get(key, default).strip().lower() == "true"


def _build_database_url_default() -> str:
    """
    Build a PostgreSQL URL from env vars when DATABASE_URL is not explicitly set.

    Password is URL-encoded to avoid auth breakage with special characters.
    """
    explicit = os.environ.get("DATABASE_URL", "").strip()
    if explicit:
        return explicit

    user = os.environ.get("POSTGRES_USER", "parley").strip() or "parley"
    password = os.environ.get("POSTGRES_PASSWORD", "parley-local-dev")
    host = os.environ.get("POSTGRES_HOST", "localhost").strip() or "localhost"
    port = os.environ.get("POSTGRES_PORT", "5432").strip() or "5432"
    db = os.environ.get("POSTGRES_DB", "parley").strip() or "parley"

    safe_password = quote_plus(password)
    return f"postgresql://{user}:{safe_password}@{host}:{port}/{db}"


@dataclass
class RuntimeConfig:
    """
    Singleton configuration for runtime-adjustable parameters.

    All values have defaults from environment variables, but can be
    changed at runtime via the update() method.
    """

    # Provider credentials / endpoints (OpenAI-compatible)
    copilot_api_key: str = field(default_factory=lambda: os.environ.get("COPILOT_API_KEY", ""))
    copilot_api_url: str = field(
        default_factory=lambda: _first_env("COPILOT_API_URL", default="https://api.githubcopilot.com")
    )
    groq_api_key: str = field(default_factory=lambda: os.environ.get("GROQ_API_KEY", ""))
    groq_api_url: str = field(
        default_factory=lambda: _first_env("GROQ_API_URL", default="https://api.groq.com/openai/v1")
    )
    google_api_key: str = field(default_factory=lambda: os.environ.get("GOOGLE_API_KEY", ""))
    google_api_url: str = field(
        default_factory=lambda: _first_env(
            "GOOGLE_API_URL",
            default="https://generativelanguage.googleapis.com/v1beta/openai/",
        )
    )
    github_api_key: str = field(default_factory=lambda: os.environ.get("GITHUB_API_KEY", ""))
    github_api_url: str = field(
        default_factory=lambda: _first_env("GITHUB_API_URL", default="https://models.inference.ai.azure.com")
    )

    # Model selection / generation
    default_model: str = field(
        default_factory=lambda: _first_env("DEFAULT_MODEL", default="gemini-2.5-flash-preview-04-17")
    )
    reasoning_budget_tokens: int = field(
        default_factory=lambda: int(os.environ.get("REASONING_BUDGET_TOKENS", "1024"))
    )  # thinking budget when reasoning is enabled (0 when disabled)
    smoothing_delay_ms: int = field(default_factory=lambda: int(os.environ.get("SMOOTHING_DELAY_MS", "10")))
    llm_timeout: float = field(default_factory=lambda: float(os.environ.get("LLM_TIMEOUT", "180")))
    expose_stream_errors: bool = field(default_factory=lambda: _env_bool("EXPOSE_STREAM_ERRORS", "false"))

    # Web search
    search_provider: str = field(default_factory=lambda: _first_env("SEARCH_PROVIDER", default="tavily"))
    tavily_api_key: str = field(default_factory=lambda: os.environ.get("TAVILY_API_KEY", ""))
    tavily_url: str = field(default_factory=lambda: _first_env("TAVILY_URL", default="https://api.tavily.com"))
    searxng_url: str = field(default_factory=lambda: _first_env("SEARXNG_URL", default="http://searxng:8080"))
    search_timeout_s: float = field(default_factory=lambda: float(os.environ.get("SEARCH_TIMEOUT_S", "10")))
    search_max_results: int = field(default_factory=lambda: int(os.environ.get("SEARCH_MAX_RESULTS", "5")))

    # Session persistence (PostgreSQL, memory fallback)
    database_url: str = field(default_factory=_build_database_url_default)
    database_enabled: bool = field(default_factory=lambda: _env_bool("DATABASE_ENABLED", "true"))
    database_pool_size: int = field(default_factory=lambda: int(os.environ.get("DATABASE_POOL_SIZE", "10")))

    # Session list cache (Redis, memory fallback)
    redis_url: str = field(default_factory=lambda: _first_env("REDIS_URL", default="redis://localhost:6379/0"))
    redis_enabled: bool = field(default_factory=lambda: _env_bool("REDIS_ENABLED", "true"))
    session_cache_enabled: bool = field(default_factory=lambda: _env_bool("SESSION_CACHE_ENABLED", "true"))
    session_cache_ttl: int = field(default_factory=lambda: int(os.environ.get("SESSION_CACHE_TTL", "60")))

    # Auth
    jwt_secret: str = field(default_factory=lambda: os.environ.get("JWT_SECRET", ""))

    # HTTP
    cors_origins: str = field(
        default_factory=lambda: _first_env("CORS_ORIGINS", default="http://localhost:3000")
    )

    # Internal
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)
    _update_count: int = field(default=0, repr=False, compare=False)

    def update(self, **kwargs) -> Dict[str, Any]:
        """
        Apply runtime changes. Invalid values are logged and skipped, never raised.

        Returns:
            Dict with 'updated' and 'ignored' key lists, plus 'update_count'
        """
        updated: List[str] = []
        ignored: List[str] = []

        with self._lock:
            for key, value in kwargs.items():
                if key.startswith("_") or not hasattr(self, key):
                    ignored.append(key)
                    logger.warning(f"Config ignored unknown key: {key}")
                    continue
                try:
                    value = _check(key, value, getattr(self, key))
                except ValueError as e:
                    ignored.append(key)
                    logger.warning(f"Config rejected {key}={value!r}: {e}")
                    continue

                previous = getattr(self, key)
                setattr(self, key, value)
                updated.append(key)
                shown = "(secret)" if key in SECRET_FIELDS else f"= {value} (was {previous})"
                logger.info(f"Config updated: {key} {shown}")

            self._update_count += 1

        return {"updated": updated, "ignored": ignored, "update_count": self._update_count}

    def get_cors_origins(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def to_dict(self) -> Dict[str, Any]:
        """Public settings only (no credentials, no connection strings)."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if not f.name.startswith("_") and f.name not in SECRET_FIELDS
        }


# =============================================================================
# UPDATE VALIDATION
# =============================================================================

RANGES = {
    "reasoning_budget_tokens": (0, 32768),
    "smoothing_delay_ms": (0, 1000),
    "llm_timeout": (1, 3600),
    "search_timeout_s": (0.5, 120),
    "search_max_results": (1, 5),
    "session_cache_ttl": (0, 3600),
}

URL_FIELDS = {"copilot_api_url", "groq_api_url", "google_api_url", "github_api_url", "tavily_url", "searxng_url"}

SEARCH_PROVIDERS = {"tavily", "searxng"}

# Never exported by to_dict() or echoed in logs
SECRET_FIELDS = {
    "copilot_api_key",
    "groq_api_key",
    "google_api_key",
    "github_api_key",
    "tavily_api_key",
    "jwt_secret",
    "database_url",
}


def _check(key: str, value: Any, current: Any) -> Any:
    """Return the normalized value for `key`, or raise ValueError with the reason."""
    if key in RANGES:
        lo, hi = RANGES[key]
        try:
            value = type(current)(value)
        except (TypeError, ValueError):
            raise ValueError(f"expected {type(current).__name__}") from None
        if not lo <= value <= hi:
            raise ValueError(f"must be {lo}-{hi}")
    elif key in URL_FIELDS:
        value = str(value).strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("not an http(s) URL")
        value = value.rstrip("/")
    elif key == "search_provider":
        value = str(value).strip().lower()
        if value not in SEARCH_PROVIDERS:
            raise ValueError(f"must be one of {sorted(SEARCH_PROVIDERS)}")
    elif key == "default_model":
        if not isinstance(value, str) or len(value) > 100 or not _MODEL_ID_RE.match(value):
            raise ValueError("invalid model id")
    return value


# Process-wide instance
runtime_config = RuntimeConfig()
