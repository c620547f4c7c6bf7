"""Session lifecycle and browser login engine for a remote identity service."""

from .service import SessionAuthService
from .session_manager import SessionManager
from .session_store import SessionStore
from .session_validator import SessionValidator
from .auth_flow import AuthFlowCoordinator, build_login_url
from .token_client import TokenClient
from .events import SessionChangeEmitter, Subscription
from .interfaces import CallbackAcceptor, CallbackRegistration, ExternalBrowser, SecretStore
from .models import (
    CallbackPayload,
    ChangeEvent,
    FlowState,
    LoginCredentials,
    PendingAuthFlow,
    Session,
    UserInfo,
    ValidationMode,
)
from .exceptions import (
    AuthenticationError,
    AuthFlowError,
    AuthCancelledError,
    StateMismatchError,
    MissingTokenError,
    AuthTimeoutError,
    TokenServiceError,
    InvalidCredentialsError,
    ExpiredTokenError,
    AccountInactiveError,
    AuthServiceError,
    NetworkError,
    MalformedResponseError,
    StorageError,
    SessionNotFoundError,
)

__all__ = [
    "SessionAuthService",
    "SessionManager",
    "SessionStore",
    "SessionValidator",
    "AuthFlowCoordinator",
    "build_login_url",
    "TokenClient",
    "SessionChangeEmitter",
    "Subscription",
    "CallbackAcceptor",
    "CallbackRegistration",
    "ExternalBrowser",
    "SecretStore",
    "CallbackPayload",
    "ChangeEvent",
    "FlowState",
    "LoginCredentials",
    "PendingAuthFlow",
    "Session",
    "UserInfo",
    "ValidationMode",
    "AuthenticationError",
    "AuthFlowError",
    "AuthCancelledError",
    "StateMismatchError",
    "MissingTokenError",
    "AuthTimeoutError",
    "TokenServiceError",
    "InvalidCredentialsError",
    "ExpiredTokenError",
    "AccountInactiveError",
    "AuthServiceError",
    "NetworkError",
    "MalformedResponseError",
    "StorageError",
    "SessionNotFoundError",
]
