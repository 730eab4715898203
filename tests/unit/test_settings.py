"""Tests for configuration settings."""
import pytest
from pydantic import ValidationError

from workflow_engine.config.settings import Settings, get_settings, reset_settings


class TestSettings:
    """Test Settings configuration."""

    def test_settings_default_values(self, monkeypatch):
        """Test default values are set correctly."""
        monkeypatch.delenv("WORKFLOW_ENGINE_LOG_FORMAT", raising=False)
        monkeypatch.delenv("WORKFLOW_ENGINE_MAX_PARALLEL_NODES", raising=False)

        settings = Settings(_env_file=None)

        # env might be 'test' from conftest.py
        assert settings.env in ("development", "test")
        assert settings.log_level == "INFO"
        assert settings.log_format == "json"
        assert settings.max_parallel_nodes == 8
        assert settings.warn_on_revisit is True

    def test_settings_env_prefix(self, monkeypatch):
        """Test that WORKFLOW_ENGINE_ prefix works for environment variables."""
        monkeypatch.setenv("WORKFLOW_ENGINE_ENV", "production")
        monkeypatch.setenv("WORKFLOW_ENGINE_LOG_LEVEL", "debug")
        monkeypatch.setenv("WORKFLOW_ENGINE_WARN_ON_REVISIT", "false")

        settings = Settings()

        assert settings.env == "production"
        assert settings.log_level == "DEBUG"
        assert settings.warn_on_revisit is False

    def test_max_parallel_nodes_validation(self):
        """Test that the worker count must be positive."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(max_parallel_nodes=0)

        assert "max_parallel_nodes must be positive" in str(exc_info.value)

    def test_log_format_validation(self):
        with pytest.raises(ValidationError):
            Settings(log_format="xml")

    def test_get_settings_singleton(self):
        """Test that get_settings returns the same instance until reset."""
        first = get_settings()
        assert get_settings() is first

        reset_settings()
        assert get_settings() is not first

    def test_conftest_environment_applies(self):
        settings = get_settings()
        assert settings.max_parallel_nodes == 4
        assert settings.log_format == "text"
