"""Secret storage backends."""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Union

from ..interfaces import SecretStore

logger = logging.getLogger(__name__)


class InMemorySecretStore(SecretStore):
    """Process-local secret storage, mainly for tests and ephemeral runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    async def store(self, key: str, value: str) -> None:
        self._values[key] = value

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)


class FileSecretStore(SecretStore):
    """Keeps all secrets in one JSON object on disk, readable only by the owner.

    Every write replaces the whole file through a temporary file and
    os.replace, so a crash leaves either the old or the new content.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            values = await self._run(self._read_all)
        return values.get(key)

    async def store(self, key: str, value: str) -> None:
        async with self._lock:
            values = await self._run(self._read_all)
            values[key] = value
            await self._run(self._write_all, values)

    async def delete(self, key: str) -> None:
        async with self._lock:
            values = await self._run(self._read_all)
            if values.pop(key, None) is not None:
                await self._run(self._write_all, values)

    @staticmethod
    async def _run(func, *args):
        # File I/O stays off the event loop
        return await asyncio.get_running_loop().run_in_executor(None, func, *args)

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        content = self.path.read_text(encoding="utf-8")
        if not content.strip():
            return {}
        values = json.loads(content)
        if not isinstance(values, dict):
            raise ValueError(f"Secret file {self.path} does not contain a JSON object")
        return values

    def _write_all(self, values: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".secrets-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(values, handle)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        logger.debug(f"Wrote {len(values)} secret(s) to {self.path}")
