"""
Unit tests for environment-driven settings.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from core.config.settings import (
    AuthFlowSettings,
    AuthServiceSettings,
    Environment,
    Settings,
    ValidationMode,
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Run from an empty directory so no .env file is picked up."""
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestSettings:
    """Test defaults and nested environment overrides"""

    def test_defaults(self, clean_env):
        settings = Settings()

        assert settings.environment is Environment.DEVELOPMENT
        assert settings.sessions.validation_mode is ValidationMode.REMOTE
        assert settings.sessions.session_lifetime_hours == 24.0
        assert settings.auth_flow.timeout_seconds == 300.0
        assert settings.auth_service.refresh_path == "/auth/refresh-token"
        assert "access_token" in settings.logging.redact_keys

    def test_nested_environment_overrides(self, clean_env, tmp_path):
        clean_env.setenv("ENVIRONMENT", "testing")
        clean_env.setenv("AUTH_SERVICE__BASE_URL", "http://auth.local:8080/api/")
        clean_env.setenv("AUTH_FLOW__TIMEOUT_SECONDS", "30")
        clean_env.setenv("SESSIONS__VALIDATION_MODE", "local_expiry")
        clean_env.setenv("SESSIONS__SECRETS_FILE", str(tmp_path / "s.json"))
        clean_env.setenv("SESSIONS__VERIFY_ACCOUNT_ACTIVE", "true")
        clean_env.setenv("LOGGING__JSON_FORMAT", "true")

        settings = Settings()

        assert settings.environment is Environment.TESTING
        assert settings.auth_service.base_url == "http://auth.local:8080/api"
        assert settings.auth_flow.timeout_seconds == 30
        assert settings.sessions.validation_mode is ValidationMode.LOCAL_EXPIRY
        assert settings.sessions.secrets_file == Path(tmp_path / "s.json")
        assert settings.sessions.verify_account_active is True
        assert settings.logging.json_format is True

    def test_dotenv_file(self, clean_env, tmp_path):
        (tmp_path / ".env").write_text("SESSIONS__STORAGE_KEY=from-dotenv\n")

        assert Settings().sessions.storage_key == "from-dotenv"


class TestValidators:
    """Test field validation"""

    @pytest.mark.parametrize("url", ["localhost:7199/api", "ftp://auth", ""])
    def test_base_url_must_be_http(self, url):
        with pytest.raises(ValidationError):
            AuthServiceSettings(base_url=url)

    def test_login_page_url_must_be_http(self):
        with pytest.raises(ValidationError):
            AuthFlowSettings(login_page_url="web.example.com/login")

    @pytest.mark.parametrize("timeout", [0, -1])
    def test_timeout_must_be_positive(self, timeout):
        with pytest.raises(ValidationError):
            AuthFlowSettings(timeout_seconds=timeout)
