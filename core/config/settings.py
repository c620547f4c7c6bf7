# Complete settings for the session auth engine
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator
from enum import Enum
from typing import List, Optional
from pathlib import Path


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class ValidationMode(str, Enum):
    """How stored sessions are re-checked during a sweep."""
    REMOTE = "remote"              # ask the auth service to validate each token
    LOCAL_EXPIRY = "local_expiry"  # trust the locally stamped expiry only


def _require_http_url(value: str) -> str:
    if not value.startswith(("http://", "https://")):
        raise ValueError(f"Expected an absolute http(s) URL, got: {value!r}")
    return value.rstrip("/")


class AuthServiceSettings(BaseModel):
    """Remote auth service endpoints used by the token client."""
    base_url: str = "https://localhost:7199/api"
    login_path: str = "/auth/login"
    refresh_path: str = "/auth/refresh-token"
    revoke_path: str = "/auth/revoke-token"
    validate_path: str = "/auth/validate-token"
    userinfo_path: str = "/auth/userinfo"
    request_timeout_seconds: float = 30.0
    verify_ssl: bool = True

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v):
        return _require_http_url(v)


class AuthFlowSettings(BaseModel):
    """Browser redirect login flow."""
    login_page_url: str = "https://web.groupten.lol/login"
    timeout_seconds: float = 300.0  # 5 minutes to complete the browser login
    callback_host: str = "127.0.0.1"
    callback_port: int = 0  # 0 picks a free port
    callback_path: str = "/did-authenticate"

    @field_validator("login_page_url")
    @classmethod
    def validate_login_page_url(cls, v):
        return _require_http_url(v)

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("Auth flow timeout must be positive")
        return v


class SessionSettings(BaseModel):
    """Session persistence and lifecycle."""
    storage_key: str = "session-auth-sessions"
    secrets_file: Path = Path.home() / ".session_auth" / "secrets.json"
    validation_mode: ValidationMode = ValidationMode.REMOTE
    session_lifetime_hours: Optional[float] = 24.0
    sweep_interval_seconds: float = 300.0  # 0 disables the periodic sweep
    sweep_on_start: bool = True
    # Fetch the user profile after login and reject disabled accounts
    verify_account_active: bool = False
    revoke_on_logout: bool = True


class LoggingSettings(BaseModel):
    level: str = "INFO"
    json_format: bool = False
    # Redaction
    redact_keys: List[str] = [
        "authorization", "access_token", "accesstoken", "refresh_token", "refreshtoken",
        "token", "password", "secret", "state", "set-cookie",
    ]


class Settings(BaseSettings):
    """Main application settings, loaded from environment variables"""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    app_name: str = "Session Auth"
    environment: Environment = Environment.DEVELOPMENT

    auth_service: AuthServiceSettings = Field(default_factory=AuthServiceSettings)
    auth_flow: AuthFlowSettings = Field(default_factory=AuthFlowSettings)
    sessions: SessionSettings = Field(default_factory=SessionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
