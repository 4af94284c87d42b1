# =============================================================================
# tests/test_config.py - Export Configuration Tests
# =============================================================================

import pytest

from clinicmigrate.models.migration import ExportConfig


class TestDefaults:
    """Default values."""

    def test_defaults(self):
        config = ExportConfig()
        assert config.page_size == 1000
        assert config.download_batch_size == 3
        assert config.max_retries == 3
        assert config.retry_backoff == "linear"
        assert config.export_format == "csv"
        assert config.bucket_labels["surgeries"] == "Cirugías"
        assert config.report_detail_limit == 10

    def test_token_prefers_access_token(self):
        assert ExportConfig(api_key="anon", access_token="jwt").token == "jwt"
        assert ExportConfig(api_key="anon").token == "anon"


class TestValidation:
    """Rejected values."""

    @pytest.mark.parametrize("kwargs", [
        {"page_size": 0},
        {"download_batch_size": 0},
        {"max_retries": 0},
        {"export_format": "xlsx"},
        {"retry_backoff": "fibonacci"},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            ExportConfig(**kwargs)


class TestSerialization:
    """Dictionary round trip and environment credentials."""

    def test_to_dict_omits_credentials(self):
        data = ExportConfig(base_url="https://x.supabase.co", api_key="secret", access_token="jwt").to_dict()
        assert "api_key" not in data
        assert "access_token" not in data
        assert "secret" not in str(data)

    def test_from_dict(self):
        config = ExportConfig.from_dict({"base_url": "https://x.supabase.co", "page_size": 500, "export_format": "sql"})
        assert config.page_size == 500
        assert config.export_format == "sql"
        assert config.max_retries == 3

    def test_from_dict_of_to_dict(self):
        original = ExportConfig(base_url="https://x.supabase.co", retry_backoff="exponential", retry_jitter=0.1)
        assert ExportConfig.from_dict(original.to_dict()).to_dict() == original.to_dict()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://env.supabase.co")
        monkeypatch.setenv("SUPABASE_SERVICE_KEY", "service")
        monkeypatch.setenv("SUPABASE_ACCESS_TOKEN", "jwt")

        config = ExportConfig.from_env({"page_size": 200})

        assert config.base_url == "https://env.supabase.co"
        assert config.api_key == "service"
        assert config.access_token == "jwt"
        assert config.page_size == 200

    def test_from_env_keeps_explicit_values(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://env.supabase.co")
        monkeypatch.delenv("SUPABASE_SERVICE_KEY", raising=False)
        monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")

        config = ExportConfig.from_env({"base_url": "https://file.supabase.co"})

        assert config.base_url == "https://file.supabase.co"
        assert config.api_key == "anon"
