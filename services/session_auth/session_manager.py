"""Public session operations: create, list, refresh, remove."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from core.config.settings import SessionSettings
from .auth_flow import AuthFlowCoordinator
from .events import ChangeListener, SessionChangeEmitter, Subscription
from .exceptions import SessionNotFoundError
from .models import ChangeEvent, LoginCredentials, Session, normalize_scopes, utc_now
from .session_store import SessionStore
from .token_client import TokenClient

logger = logging.getLogger(__name__)


class SessionManager:
    """Composes the store, token client and login flow into session operations.

    Every mutation is persisted before its ChangeEvent is fired, and a failed
    login or refresh leaves the registry exactly as it was.
    """

    def __init__(self, store: SessionStore, token_client: TokenClient,
                 coordinator: AuthFlowCoordinator, settings: SessionSettings,
                 emitter: Optional[SessionChangeEmitter] = None):
        self.store = store
        self.token_client = token_client
        self.coordinator = coordinator
        self.settings = settings
        self.emitter = emitter or SessionChangeEmitter()

    def subscribe(self, listener: ChangeListener) -> Subscription:
        """Receive a ChangeEvent after each mutation."""
        return self.emitter.subscribe(listener)

    def get_sessions(self, scopes: Optional[Iterable[str]] = None) -> List[Session]:
        return self.store.list(scopes)

    def get_session(self, session_id: str) -> Session:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def create_session(self, scopes: Iterable[str],
                             cancel_event: Optional[asyncio.Event] = None,
                             login_page_url: Optional[str] = None) -> Session:
        """Log in through the browser and store the resulting session."""
        scopes = normalize_scopes(scopes)
        payload = await self.coordinator.begin_flow(login_page_url, scopes, cancel_event)

        if self.settings.verify_account_active:
            # Raises AccountInactiveError for disabled accounts
            await self.token_client.fetch_user_info(payload.access_token)

        session = Session(
            id=payload.email,
            access_token=payload.access_token,
            account_label=payload.display_name,
            scopes=frozenset(scopes),
            expires_at=self._new_expiry(),
        )
        await self._store_new(session)
        logger.info(f"Signed in as {session.account_label}")
        return session

    async def create_session_with_credentials(self, credentials: LoginCredentials,
                                              scopes: Iterable[str]) -> Session:
        """Log in with username and password instead of the browser flow."""
        scopes = normalize_scopes(scopes)
        token = await self.token_client.login(credentials, scopes)
        user_info = await self.token_client.fetch_user_info(token)

        session = Session(
            id=user_info.id,
            access_token=token,
            account_label=user_info.display_name,
            scopes=frozenset(scopes),
            expires_at=self._new_expiry(),
        )
        await self._store_new(session)
        logger.info(f"Signed in as {session.account_label} with credentials")
        return session

    async def remove_session(self, session_id: str) -> bool:
        """Log out. Unknown ids are a no-op; remote revoke is best effort."""
        session = await self.store.delete(session_id)
        if session is None:
            logger.debug(f"Remove requested for unknown session {session_id}")
            return False

        await self.emitter.fire(ChangeEvent(removed=[session]))
        logger.info(f"Signed out session {session_id}")

        if self.settings.revoke_on_logout:
            try:
                await self.token_client.revoke(session.access_token)
            except Exception as e:
                logger.warning(f"Token revoke for session {session_id} failed, local logout kept: {e}")
        return True

    async def refresh_session(self, session_id: str) -> Session:
        """Swap the session's access token for a fresh one."""
        session = self.get_session(session_id)
        new_token = await self.token_client.refresh(session.access_token)
        updated = session.with_access_token(new_token)

        if not await self.store.replace(session, updated):
            current = self.store.get(session_id)
            if current is None:
                raise SessionNotFoundError(session_id)
            logger.warning(f"Session {session_id} changed during refresh, keeping the newer value")
            return current

        await self.emitter.fire(ChangeEvent(changed=[updated]))
        logger.info(f"Refreshed session {session_id}")
        return updated

    async def _store_new(self, session: Session) -> None:
        previous = await self.store.put(session)
        if previous is None:
            await self.emitter.fire(ChangeEvent(added=[session]))
        else:
            # Same account signed in again
            await self.emitter.fire(ChangeEvent(changed=[session]))

    def _new_expiry(self) -> Optional[datetime]:
        hours = self.settings.session_lifetime_hours
        if not hours:
            return None
        return utc_now() + timedelta(hours=hours)

    def dispose(self) -> None:
        self.emitter.close()
