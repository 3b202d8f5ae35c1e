"""Runtime settings read from the environment.

Values come from environment variables, with a ``.env`` file in the working
directory loaded first. Click options in the scripts override them per run.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from din_resolver.clients.drug_product import DEFAULT_BASE_URL
from din_resolver.errors import ConfigurationError
from din_resolver.store.kv import DEFAULT_DATABASE_NAME, DEFAULT_MONGODB_URI


@dataclass
class Settings:
    """Settings shared by the entry-point scripts.

    Attributes:
        mongodb_uri: MongoDB connection URI for the cache and property stores
        database_name: Database holding both collections
        dpd_base_url: Base URL of the drug product registry API
        secondary_lookup_url: Lookup URL template with an ``{identifier}`` placeholder
        cache_ttl_hours: Freshness bound of the cached registry
        time_budget_seconds: Wall-clock budget of one enrichment invocation
        follow_up_delay_seconds: Delay before a suspended enrichment resumes
        google_credentials: Path to a Google service account JSON file
    """

    mongodb_uri: str = DEFAULT_MONGODB_URI
    database_name: str = DEFAULT_DATABASE_NAME
    dpd_base_url: str = DEFAULT_BASE_URL
    secondary_lookup_url: str | None = None
    cache_ttl_hours: float = 6.0
    time_budget_seconds: float = 270.0
    follow_up_delay_seconds: float = 60.0
    google_credentials: str | None = None

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_hours * 3600


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def load_settings() -> Settings:
    """Build Settings from the environment (after loading ``.env``).

    Raises:
        ConfigurationError: If a numeric variable cannot be parsed
    """
    load_dotenv()
    return Settings(
        mongodb_uri=os.getenv("MONGODB_URI", DEFAULT_MONGODB_URI),
        database_name=os.getenv("DIN_RESOLVER_DB", DEFAULT_DATABASE_NAME),
        dpd_base_url=os.getenv("DPD_BASE_URL", DEFAULT_BASE_URL),
        secondary_lookup_url=os.getenv("SECONDARY_LOOKUP_URL") or None,
        cache_ttl_hours=_float_env("REGISTRY_CACHE_TTL_HOURS", 6.0),
        time_budget_seconds=_float_env("ENRICH_TIME_BUDGET_SECONDS", 270.0),
        follow_up_delay_seconds=_float_env("FOLLOW_UP_DELAY_SECONDS", 60.0),
        google_credentials=os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or None,
    )
