"""HTTP client for the remote auth service."""

import asyncio
import json
import logging
from typing import Any, Dict, Iterable, Optional, Tuple, Type

import aiohttp

from core.config.settings import AuthServiceSettings
from .exceptions import (
    AccountInactiveError,
    AuthServiceError,
    ExpiredTokenError,
    InvalidCredentialsError,
    MalformedResponseError,
    NetworkError,
    TokenServiceError,
)
from .models import LoginCredentials, UserInfo

logger = logging.getLogger(__name__)


class TokenClient:
    """Thin wrapper around the auth service endpoints.

    Holds no authentication state of its own: every call is one request
    carrying the token it operates on, with no retries. Transport failures
    become NetworkError, unexpected statuses AuthServiceError.
    """

    def __init__(self, settings: AuthServiceSettings,
                 http_session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings
        self._http = http_session
        self._owns_http = http_session is None

    async def __aenter__(self) -> "TokenClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._http is not None and self._owns_http and not self._http.closed:
            await self._http.close()
        self._http = None

    async def login(self, credentials: LoginCredentials, scopes: Iterable[str] = ()) -> str:
        """Exchange username and password for an access token."""
        status, body = await self._call(
            "login",
            "POST",
            self.settings.login_path,
            payload={
                "username": credentials.username,
                "password": credentials.password,
                "scopes": " ".join(scopes),
            },
        )
        self._raise_for_status("login", status, unauthorized=InvalidCredentialsError)
        return self._extract_token("login", body)

    async def refresh(self, old_token: str) -> str:
        """Obtain a new access token for an existing one."""
        status, body = await self._call(
            "refresh", "POST", self.settings.refresh_path, payload={"token": old_token}
        )
        self._raise_for_status("refresh", status, unauthorized=ExpiredTokenError)
        return self._extract_token("refresh", body)

    async def revoke(self, token: str) -> None:
        """Ask the auth service to invalidate token."""
        status, _ = await self._call(
            "revoke", "POST", self.settings.revoke_path, payload={"token": token}
        )
        self._raise_for_status("revoke", status)
        logger.debug("Token revoked by auth service")

    async def validate(self, token: str) -> bool:
        """True only if the auth service positively confirms the token.

        Never raises: transport errors, non-2xx statuses and unreadable
        bodies all count as an invalid token.
        """
        try:
            status, body = await self._call(
                "validate", "POST", self.settings.validate_path, payload={"token": token}
            )
            if not 200 <= status < 300:
                logger.debug(f"Token validation rejected with status {status}")
                return False
            return self._parse_json("validate", body).get("valid") is True
        except Exception as e:
            logger.debug(f"Token validation failed [{type(e).__name__}]: {e}")
            return False

    async def fetch_user_info(self, token: str) -> UserInfo:
        """Fetch the profile of the account owning token."""
        status, body = await self._call(
            "userinfo", "GET", self.settings.userinfo_path, bearer=token
        )
        self._raise_for_status("userinfo", status)
        data = self._parse_json("userinfo", body)
        try:
            user_info = UserInfo.from_response(data)
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(f"userinfo response is missing fields: {e}") from e
        if not user_info.active:
            raise AccountInactiveError(f"Account {user_info.id} is not active")
        return user_info

    async def _get_http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout_seconds),
                connector=aiohttp.TCPConnector(ssl=self.settings.verify_ssl),
            )
            self._owns_http = True
        return self._http

    async def _call(self, operation: str, method: str, path: str,
                    payload: Optional[Dict[str, Any]] = None,
                    bearer: Optional[str] = None) -> Tuple[int, str]:
        headers = {"Accept": "application/json"}
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"

        http = await self._get_http()
        url = f"{self.settings.base_url}{path}"
        try:
            async with http.request(method, url, json=payload, headers=headers) as response:
                return response.status, await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"{operation}: could not reach auth service: {e}") from e

    @staticmethod
    def _raise_for_status(operation: str, status: int,
                          unauthorized: Optional[Type[TokenServiceError]] = None) -> None:
        if 200 <= status < 300:
            return
        if status == 401 and unauthorized is not None:
            raise unauthorized(f"{operation} rejected by auth service (401)")
        raise AuthServiceError(f"{operation} failed with status {status}", status=status)

    @staticmethod
    def _parse_json(operation: str, body: str) -> Dict[str, Any]:
        try:
            data = json.loads(body)
        except ValueError as e:
            raise MalformedResponseError(f"{operation} response is not JSON") from e
        if not isinstance(data, dict):
            raise MalformedResponseError(f"{operation} response is not a JSON object")
        return data

    def _extract_token(self, operation: str, body: str) -> str:
        data = self._parse_json(operation, body)
        token = data.get("token") or data.get("access_token")
        if not isinstance(token, str) or not token:
            raise MalformedResponseError(f"{operation} response does not contain a token")
        return token
