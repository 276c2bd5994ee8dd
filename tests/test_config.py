"""
Test settings loading and URL helpers.
"""

from medpro.utils.config import FALLBACK_API_BASE_URL, Settings, get_api_url


class TestSettings:
    """Test environment driven settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("MEDPRO_API_BASE_URL", raising=False)
        config = Settings(_env_file=None)

        assert config.api_base_url == FALLBACK_API_BASE_URL
        assert config.max_retries == 3
        assert config.message_more_page_size == 30
        assert config.max_attachment_bytes == 10 * 1024 * 1024
        assert config.transcription_language == "pt-BR"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("MEDPRO_API_BASE_URL", "https://backend.example/")
        monkeypatch.setenv("MEDPRO_MAX_RETRIES", "5")

        config = Settings(_env_file=None)

        assert config.api_base_url == "https://backend.example"
        assert config.max_retries == 5

    def test_blank_url_falls_back(self, monkeypatch):
        monkeypatch.setenv("MEDPRO_API_BASE_URL", "   ")

        assert Settings(_env_file=None).api_base_url == FALLBACK_API_BASE_URL


class TestGetApiUrl:
    """Test joining endpoint paths."""

    def test_joins_with_single_slash(self):
        assert get_api_url("/health", "https://api.test/") == "https://api.test/health"
        assert get_api_url("health", "https://api.test") == "https://api.test/health"

    def test_empty_path_returns_base(self):
        assert get_api_url("", "https://api.test/") == "https://api.test"
