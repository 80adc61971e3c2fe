"""
Tests for configuration helpers.

Run with: pytest tests/test_config.py -v
"""

import pytest
from pydantic import ValidationError

from feedback_health.core import config
from feedback_health.core.config import AnalysisSettings


class TestAnalysisSettings:
    def test_defaults(self):
        settings = AnalysisSettings()
        assert settings.batch_size == 75
        assert settings.max_batches == 50
        assert settings.batch_delay_seconds == 0.1

    @pytest.mark.parametrize("field,value", [
        ("batch_size", 0),
        ("batch_size", 1001),
        ("max_batches", 0),
        ("batch_delay_seconds", -1),
    ])
    def test_rejects_out_of_range(self, field, value):
        with pytest.raises(ValidationError):
            AnalysisSettings(**{field: value})

    def test_built_from_environment_constants(self, monkeypatch):
        monkeypatch.setattr(config, "ANALYSIS_BATCH_SIZE", 10)
        monkeypatch.setattr(config, "ANALYSIS_MAX_BATCHES", 3)
        monkeypatch.setattr(config, "ANALYSIS_BATCH_DELAY_SECONDS", 0.0)
        settings = config.get_analysis_settings()
        assert (settings.batch_size, settings.max_batches) == (10, 3)


class TestCredentialChecks:
    def test_missing_supabase_keys_are_listed(self, monkeypatch):
        monkeypatch.setattr(config, "SUPABASE_URL", "")
        monkeypatch.setattr(config, "SUPABASE_SERVICE_ROLE_KEY", "")
        with pytest.raises(EnvironmentError, match="SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY"):
            config.validate_supabase_config()

    def test_supabase_configured(self, monkeypatch):
        monkeypatch.setattr(config, "SUPABASE_URL", "https://example.supabase.co")
        monkeypatch.setattr(config, "SUPABASE_SERVICE_ROLE_KEY", "service-key")
        assert config.validate_supabase_config() is True

    def test_anthropic_configured(self, monkeypatch):
        monkeypatch.setattr(config, "ANTHROPIC_API_KEY", "")
        assert config.is_anthropic_configured() is False
        monkeypatch.setattr(config, "ANTHROPIC_API_KEY", "sk-test")
        assert config.is_anthropic_configured() is True
