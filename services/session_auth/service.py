# services/session_auth/service.py

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from core.config.settings import Settings, ValidationMode
from .auth_flow import AuthFlowCoordinator
from .components import FileSecretStore, LoopbackCallbackAcceptor, SystemBrowser
from .events import ChangeListener, SessionChangeEmitter, Subscription
from .exceptions import StorageError
from .interfaces import CallbackAcceptor, ExternalBrowser, SecretStore
from .models import LoginCredentials, Session
from .session_manager import SessionManager
from .session_store import SessionStore
from .session_validator import SessionValidator
from .token_client import TokenClient

logger = logging.getLogger(__name__)


class SessionAuthService:
    """Wires the session engine from settings and owns its lifecycle.

    start() hydrates the registry, optionally sweeps it once and starts the
    periodic sweep; stop() tears everything down again.
    """

    def __init__(self, settings: Settings,
                 secret_store: Optional[SecretStore] = None,
                 acceptor: Optional[CallbackAcceptor] = None,
                 browser: Optional[ExternalBrowser] = None,
                 token_client: Optional[TokenClient] = None):
        self.settings = settings
        self.secret_store = secret_store or FileSecretStore(settings.sessions.secrets_file)
        self.acceptor = acceptor or LoopbackCallbackAcceptor(
            host=settings.auth_flow.callback_host,
            port=settings.auth_flow.callback_port,
            path=settings.auth_flow.callback_path,
        )
        self.browser = browser or SystemBrowser()
        self.token_client = token_client or TokenClient(settings.auth_service)

        self.emitter = SessionChangeEmitter()
        self.store = SessionStore(self.secret_store, settings.sessions.storage_key)
        self.validator = SessionValidator(
            self.store, self.token_client, self.emitter, settings.sessions.validation_mode
        )
        self.coordinator = AuthFlowCoordinator(self.acceptor, self.browser, settings.auth_flow)
        self.session_manager = SessionManager(
            self.store, self.token_client, self.coordinator, settings.sessions, self.emitter
        )

        self._sweep_task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self, background_sweep: bool = True) -> None:
        """Load stored sessions and begin validating them."""
        if self._running:
            return

        try:
            await self.store.load()
        except StorageError as e:
            logger.error(f"Could not restore sessions, starting with an empty registry: {e}")

        if self.settings.sessions.sweep_on_start:
            await self.sweep()

        interval = self.settings.sessions.sweep_interval_seconds
        if background_sweep and interval > 0:
            self._sweep_task = asyncio.create_task(self._periodic_sweep(interval))

        self._running = True
        logger.info(
            f"SessionAuthService started with {len(self.store)} session(s), "
            f"validation mode {self.settings.sessions.validation_mode.value}"
        )

    async def stop(self) -> None:
        """Stop background work and release network resources."""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        if isinstance(self.acceptor, LoopbackCallbackAcceptor):
            await self.acceptor.stop()
        await self.token_client.close()
        self.session_manager.dispose()
        self.store.close()
        self._running = False
        logger.info("SessionAuthService stopped.")

    def subscribe(self, listener: ChangeListener) -> Subscription:
        return self.session_manager.subscribe(listener)

    def get_sessions(self, scopes: Optional[Iterable[str]] = None) -> List[Session]:
        return self.session_manager.get_sessions(scopes)

    async def create_session(self, scopes: Iterable[str],
                             cancel_event: Optional[asyncio.Event] = None) -> Session:
        return await self.session_manager.create_session(scopes, cancel_event=cancel_event)

    async def login_with_credentials(self, username: str, password: str,
                                     scopes: Iterable[str]) -> Session:
        credentials = LoginCredentials(username=username, password=password)
        return await self.session_manager.create_session_with_credentials(credentials, scopes)

    async def remove_session(self, session_id: str) -> bool:
        return await self.session_manager.remove_session(session_id)

    async def refresh_session(self, session_id: str) -> Session:
        return await self.session_manager.refresh_session(session_id)

    async def sweep(self) -> List[Session]:
        return await self.validator.sweep()

    async def _periodic_sweep(self, interval: float) -> None:
        """Background task re-validating stored sessions."""
        logger.info("Session sweep task started")

        while True:
            try:
                await asyncio.sleep(interval)
                await self.validator.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Session sweep error: {e}")

        logger.info("Session sweep task stopped")

    def health_check(self) -> Dict[str, Any]:
        """Get service status."""
        pending = self.coordinator.pending_flow
        return {
            "running": self._running,
            "sessions": len(self.store),
            "validation_mode": self.settings.sessions.validation_mode.value,
            "flow_state": self.coordinator.state.value,
            "flow_seconds_left": pending.remaining_seconds() if pending else None,
            "listeners": self.emitter.listener_count,
        }
