"""Authentication exceptions for the session auth engine."""

from typing import Optional


class AuthenticationError(Exception):
    """Base authentication error."""
    pass


# --- Browser login flow ---

class AuthFlowError(AuthenticationError):
    """The browser login round trip did not produce a usable token."""
    pass

class AuthCancelledError(AuthFlowError):
    """The pending login was cancelled before a callback arrived."""
    pass

class StateMismatchError(AuthFlowError):
    """Callback state does not match the state sent with the login redirect."""
    pass

class MissingTokenError(AuthFlowError):
    """Callback arrived without an access token."""
    pass

class AuthTimeoutError(AuthFlowError):
    """No callback arrived before the flow deadline."""

    def __init__(self, message: str, timeout_seconds: Optional[float] = None):
        super().__init__(message)
        self.timeout_seconds = timeout_seconds


# --- Remote auth service ---

class TokenServiceError(AuthenticationError):
    """A call to the remote auth service failed."""
    pass

class InvalidCredentialsError(TokenServiceError):
    """Username or password rejected by the auth service."""
    pass

class ExpiredTokenError(TokenServiceError):
    """The token can no longer be refreshed."""
    pass

class AccountInactiveError(TokenServiceError):
    """The auth service reports the account as disabled."""
    pass

class AuthServiceError(TokenServiceError):
    """Auth service answered with an unexpected status."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status

class NetworkError(TokenServiceError):
    """The auth service could not be reached."""
    pass

class MalformedResponseError(TokenServiceError):
    """Auth service response body is missing required fields."""
    pass


# --- Local state ---

class StorageError(AuthenticationError):
    """Session registry could not be read from or written to secret storage."""
    pass

class SessionNotFoundError(AuthenticationError):
    """Session not found in the registry."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id!r} does not exist")
        self.session_id = session_id
