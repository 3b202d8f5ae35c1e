"""Tests for environment-based settings."""

from unittest.mock import patch

import pytest

from din_resolver.config import load_settings
from din_resolver.errors import ConfigurationError

ENV_VARS = [
    "MONGODB_URI",
    "DIN_RESOLVER_DB",
    "DPD_BASE_URL",
    "SECONDARY_LOOKUP_URL",
    "REGISTRY_CACHE_TTL_HOURS",
    "ENRICH_TIME_BUDGET_SECONDS",
    "FOLLOW_UP_DELAY_SECONDS",
    "GOOGLE_APPLICATION_CREDENTIALS",
]


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    with patch("din_resolver.config.load_dotenv"):
        yield monkeypatch


class TestLoadSettings:
    """Tests for load_settings."""

    def test_defaults(self, clean_env: pytest.MonkeyPatch) -> None:
        settings = load_settings()
        assert settings.mongodb_uri == "mongodb://localhost:27017"
        assert settings.database_name == "din_resolver"
        assert settings.secondary_lookup_url is None
        assert settings.cache_ttl_seconds == 6 * 3600
        assert settings.time_budget_seconds == 270
        assert settings.follow_up_delay_seconds == 60

    def test_overrides(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("SECONDARY_LOOKUP_URL", "https://codes.test/{identifier}")
        clean_env.setenv("REGISTRY_CACHE_TTL_HOURS", "0.5")
        clean_env.setenv("ENRICH_TIME_BUDGET_SECONDS", "")
        settings = load_settings()
        assert settings.secondary_lookup_url == "https://codes.test/{identifier}"
        assert settings.cache_ttl_seconds == 1800
        assert settings.time_budget_seconds == 270

    def test_bad_number(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("FOLLOW_UP_DELAY_SECONDS", "soon")
        with pytest.raises(ConfigurationError, match="FOLLOW_UP_DELAY_SECONDS"):
            load_settings()
