"""Periodic re-validation of stored sessions."""

import asyncio
import logging
from typing import List, Optional

from core.config.settings import ValidationMode
from .events import SessionChangeEmitter
from .models import ChangeEvent, Session, utc_now
from .session_store import SessionStore
from .token_client import TokenClient

logger = logging.getLogger(__name__)


class SessionValidator:
    """Sweeps the registry and evicts sessions that no longer validate."""

    def __init__(self, store: SessionStore, token_client: Optional[TokenClient],
                 emitter: SessionChangeEmitter,
                 mode: ValidationMode = ValidationMode.REMOTE):
        if mode is ValidationMode.REMOTE and token_client is None:
            raise ValueError("Remote validation requires a token client")
        self.store = store
        self.token_client = token_client
        self.emitter = emitter
        self.mode = mode
        self._lock = asyncio.Lock()

    async def sweep(self) -> List[Session]:
        """Validate every session once; evict failures with one persist and one event."""
        async with self._lock:
            sessions = self.store.list()
            if not sessions:
                return []

            failed: List[Session] = []
            for session in sessions:
                if not await self._is_valid(session):
                    failed.append(session)

            if not failed:
                logger.debug(f"Sweep checked {len(sessions)} session(s), none evicted")
                return []

            evicted = await self.store.remove_many(failed)
            if evicted:
                await self.emitter.fire(ChangeEvent(removed=evicted))
                logger.info(f"Evicted {len(evicted)} of {len(sessions)} session(s) during sweep")
            return evicted

    async def _is_valid(self, session: Session) -> bool:
        if self.mode is ValidationMode.LOCAL_EXPIRY:
            return not session.is_expired(utc_now())
        try:
            return await self.token_client.validate(session.access_token)
        except Exception as e:
            logger.warning(f"Validation of session {session.id} raised [{type(e).__name__}]: {e}")
            return False
