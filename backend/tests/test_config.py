"""
Tests for RuntimeConfig defaults and runtime updates.
"""

from config import RuntimeConfig


class TestDefaults:
    def test_environment_defaults(self, monkeypatch):
        monkeypatch.setenv("SEARCH_MAX_RESULTS", "3")
        monkeypatch.setenv("EXPOSE_STREAM_ERRORS", "true")
        monkeypatch.setenv("DEFAULT_MODEL", "gpt-4o")
        config = RuntimeConfig()
        assert config.search_max_results == 3
        assert config.expose_stream_errors is True
        assert config.default_model == "gpt-4o"

    def test_database_url_built_from_parts(self, monkeypatch):
        for key in ("DATABASE_URL", "POSTGRES_USER", "POSTGRES_PORT", "POSTGRES_DB"):
            monkeypatch.delenv(key, raising=False)
        monkeypatch.setenv("POSTGRES_PASSWORD", "p@ss word")
        monkeypatch.setenv("POSTGRES_HOST", "db")
        assert RuntimeConfig().database_url == "postgresql://parley:p%40ss+word@db:5432/parley"

    def test_cors_origins_list(self):
        config = RuntimeConfig(cors_origins="http://a.test, http://b.test ,")
        assert config.get_cors_origins() == ["http://a.test", "http://b.test"]


class TestUpdate:
    def test_valid_update(self):
        config = RuntimeConfig()
        result = config.update(search_max_results=2, smoothing_delay_ms=25)
        assert result["updated"] == ["search_max_results", "smoothing_delay_ms"]
        assert config.search_max_results == 2

    def test_out_of_range_is_ignored(self):
        config = RuntimeConfig(search_max_results=5)
        result = config.update(search_max_results=9)
        assert result["ignored"] == ["search_max_results"]
        assert config.search_max_results == 5

    def test_numeric_strings_are_coerced(self):
        config = RuntimeConfig()
        assert config.update(search_max_results="3")["updated"] == ["search_max_results"]
        assert config.search_max_results == 3

    def test_non_numeric_values_are_ignored_not_raised(self):
        config = RuntimeConfig(search_max_results=5)
        assert config.update(search_max_results="many", llm_timeout=None)["ignored"] == [
            "search_max_results",
            "llm_timeout",
        ]
        assert config.search_max_results == 5

    def test_unknown_and_private_keys_ignored(self):
        result = RuntimeConfig().update(nope=1, _lock=None)
        assert result["ignored"] == ["nope", "_lock"]

    def test_url_validation(self):
        config = RuntimeConfig()
        assert config.update(tavily_url="ftp://x")["ignored"] == ["tavily_url"]
        config.update(tavily_url=" https://search.internal/ ")
        assert config.tavily_url == "https://search.internal"

    def test_search_provider_validation(self):
        config = RuntimeConfig()
        config.update(search_provider="SearXNG")
        assert config.search_provider == "searxng"
        assert config.update(search_provider="bing")["ignored"] == ["search_provider"]

    def test_default_model_validation(self):
        assert RuntimeConfig().update(default_model="bad model!")["ignored"] == ["default_model"]

    def test_to_dict_hides_secrets(self):
        exported = RuntimeConfig(tavily_api_key="secret", jwt_secret="secret").to_dict()
        assert "tavily_api_key" not in exported
        assert "jwt_secret" not in exported
        assert "database_url" not in exported
        assert "search_provider" in exported
