"""In-memory session registry backed by secret storage."""

import asyncio
import json
import logging
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from .exceptions import StorageError
from .interfaces import SecretStore
from .models import Session, normalize_scopes

logger = logging.getLogger(__name__)


class SessionStore:
    """Owns the session registry.

    The registry is hydrated once by load() and written back as one whole
    value after every mutation. Mutations are serialized by a single lock so
    two persists can never interleave, and a mutation whose persist fails is
    rolled back before the StorageError reaches the caller.
    """

    def __init__(self, secret_store: SecretStore, storage_key: str):
        self._secret_store = secret_store
        self._storage_key = storage_key
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> int:
        """Replace the registry with the persisted blob. Returns the number of sessions kept."""
        async with self._lock:
            try:
                raw = await self._secret_store.get(self._storage_key)
            except Exception as e:
                raise StorageError(f"Failed to read sessions from secret storage: {e}") from e

            sessions: Dict[str, Session] = {}
            if raw and raw.strip():
                try:
                    records = json.loads(raw)
                except ValueError as e:
                    raise StorageError(f"Stored sessions are not valid JSON: {e}") from e
                if not isinstance(records, list):
                    raise StorageError(
                        f"Stored sessions must be a JSON array, got {type(records).__name__}"
                    )

                for index, record in enumerate(records):
                    try:
                        session = Session.from_record(record)
                    except ValidationError as e:
                        logger.warning(
                            f"Dropping stored session #{index}: {e.error_count()} schema error(s)"
                        )
                        continue
                    sessions[session.id] = session

            self._sessions = sessions
            self._loaded = True
            logger.info(f"Loaded {len(sessions)} session(s) from secret storage")
            return len(sessions)

    def list(self, scopes: Optional[Iterable[str]] = None) -> List[Session]:
        """All sessions, or only those holding every requested scope."""
        required = set(normalize_scopes(scopes))
        if not required:
            return list(self._sessions.values())
        return [s for s in self._sessions.values() if s.has_scopes(required)]

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    async def put(self, session: Session) -> Optional[Session]:
        """Upsert by id and persist. Returns the replaced session, if any."""
        async with self._lock:
            previous = self._sessions.get(session.id)
            self._sessions[session.id] = session
            try:
                await self._write()
            except StorageError:
                if previous is None:
                    del self._sessions[session.id]
                else:
                    self._sessions[session.id] = previous
                raise
            return previous

    async def replace(self, expected: Session, updated: Session) -> bool:
        """Put updated only while the registry still holds expected under the same id."""
        if expected.id != updated.id:
            raise ValueError("replace() cannot change a session id")
        async with self._lock:
            if self._sessions.get(expected.id) != expected:
                return False
            self._sessions[updated.id] = updated
            try:
                await self._write()
            except StorageError:
                self._sessions[expected.id] = expected
                raise
            return True

    async def delete(self, session_id: str) -> Optional[Session]:
        """Remove and persist. Unknown ids are a no-op and return None."""
        async with self._lock:
            removed = self._sessions.pop(session_id, None)
            if removed is None:
                return None
            try:
                await self._write()
            except StorageError:
                self._sessions[session_id] = removed
                raise
            return removed

    async def remove_many(self, sessions: Iterable[Session]) -> List[Session]:
        """Remove a batch with a single persist.

        A session is removed only while the registry still holds that exact
        value; entries replaced in the meantime (e.g. refreshed) are kept.
        """
        async with self._lock:
            removed: List[Session] = []
            for session in sessions:
                if self._sessions.get(session.id) == session:
                    removed.append(self._sessions.pop(session.id))
            if not removed:
                return []
            try:
                await self._write()
            except StorageError:
                for session in removed:
                    self._sessions[session.id] = session
                raise
            return removed

    async def persist(self) -> None:
        """Write the whole registry to secret storage."""
        async with self._lock:
            await self._write()

    async def _write(self) -> None:
        blob = json.dumps([s.to_record() for s in self._sessions.values()])
        try:
            await self._secret_store.store(self._storage_key, blob)
        except Exception as e:
            raise StorageError(f"Failed to persist sessions: {e}") from e

    def close(self) -> None:
        """Drop the in-memory registry; persisted state is untouched."""
        self._sessions.clear()
        self._loaded = False
