"""Browser redirect login with CSRF state and a hard deadline."""

import asyncio
import logging
import secrets
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from core.config.settings import AuthFlowSettings
from .exceptions import (
    AuthCancelledError,
    AuthFlowError,
    AuthTimeoutError,
    MissingTokenError,
    StateMismatchError,
)
from .interfaces import CallbackAcceptor, ExternalBrowser
from .models import CallbackPayload, FlowState, PendingAuthFlow

logger = logging.getLogger(__name__)


def build_login_url(login_page_url: str, redirect_uri: str, state: str) -> str:
    """Append redirect_uri and state to the login page URL, keeping its own query."""
    parts = urlsplit(login_page_url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query += [("redirect_uri", redirect_uri), ("state", state)]
    return urlunsplit(parts._replace(query=urlencode(query)))


def mask_state(url: str) -> str:
    """The URL with its state parameter masked, for logs."""
    parts = urlsplit(url)
    query = [(k, "redacted" if k == "state" else v)
             for k, v in parse_qsl(parts.query, keep_blank_values=True)]
    return urlunsplit(parts._replace(query=urlencode(query)))


class AuthFlowCoordinator:
    """Drives one browser login round trip at a time.

    The callback and the deadline (plus an optional cancel event) race in a
    single asyncio.wait; the first to finish decides the outcome, the others
    are cancelled and the callback registration is torn down, so a late
    callback can never settle a finished flow.
    """

    def __init__(self, acceptor: CallbackAcceptor, browser: ExternalBrowser,
                 settings: AuthFlowSettings):
        self.acceptor = acceptor
        self.browser = browser
        self.settings = settings
        self._lock = asyncio.Lock()
        self._pending: Optional[PendingAuthFlow] = None
        self._state = FlowState.IDLE

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def pending_flow(self) -> Optional[PendingAuthFlow]:
        return self._pending

    async def begin_flow(self, login_page_url: Optional[str] = None,
                         scopes: Iterable[str] = (),
                         cancel_event: Optional[asyncio.Event] = None) -> CallbackPayload:
        """Send the user to the login page and wait for the redirect back.

        Raises StateMismatchError, MissingTokenError, AuthTimeoutError or
        AuthCancelledError; exactly one outcome is produced per flow.
        """
        async with self._lock:
            return await self._run_flow(
                login_page_url or self.settings.login_page_url, tuple(scopes), cancel_event
            )

    async def _run_flow(self, login_page_url: str, scopes, cancel_event) -> CallbackPayload:
        state = secrets.token_urlsafe(16)
        redirect_uri = await self.acceptor.callback_uri()
        flow = PendingAuthFlow.start(
            state=state,
            redirect_uri=redirect_uri,
            auth_url=build_login_url(login_page_url, redirect_uri, state),
            timeout_seconds=self.settings.timeout_seconds,
            scopes=scopes,
        )

        callback: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_callback(uri: str) -> None:
            if not callback.done():
                callback.set_result(uri)

        registration = self.acceptor.register_once(on_callback)
        self._pending = flow
        self._state = FlowState.AWAITING_CALLBACK

        waiters = {callback}
        cancel_task: Optional[asyncio.Task] = None
        if cancel_event is not None:
            cancel_task = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_task)

        try:
            try:
                opened = await self.browser.open(flow.auth_url)
            except Exception as e:
                raise AuthFlowError(f"Failed to open the login page: {e}") from e
            if not opened:
                logger.warning(f"Browser did not open the login page {mask_state(flow.auth_url)}")

            done, _ = await asyncio.wait(
                waiters,
                timeout=flow.remaining_seconds(),
                return_when=asyncio.FIRST_COMPLETED,
            )
            registration.cancel()

            if callback in done:
                payload = self._resolve(callback.result(), state)
                self._state = FlowState.RESOLVED
                logger.info("Browser login completed")
                return payload

            if cancel_task is not None and cancel_task in done:
                self._state = FlowState.CANCELLED
                raise AuthCancelledError("Login was cancelled")

            self._state = FlowState.TIMED_OUT
            raise AuthTimeoutError(
                f"Authentication timed out after {self.settings.timeout_seconds:g} seconds",
                timeout_seconds=self.settings.timeout_seconds,
            )
        finally:
            registration.cancel()
            if not callback.done():
                callback.cancel()
            if cancel_task is not None and not cancel_task.done():
                cancel_task.cancel()
                try:
                    await cancel_task
                except asyncio.CancelledError:
                    pass
            self._pending = None
            if self._state is FlowState.AWAITING_CALLBACK:
                self._state = FlowState.IDLE

    def _resolve(self, uri: str, state: str) -> CallbackPayload:
        query = dict(parse_qsl(urlsplit(uri).query, keep_blank_values=True))

        returned_state = query.get("state")
        if returned_state is None or not secrets.compare_digest(
            returned_state.encode(), state.encode()
        ):
            self._state = FlowState.MISMATCHED
            raise StateMismatchError("State mismatch in authentication flow")

        if not query.get("access_token"):
            self._state = FlowState.MISMATCHED
            raise MissingTokenError("Authentication failed: no token received")

        return CallbackPayload.from_query(query)
