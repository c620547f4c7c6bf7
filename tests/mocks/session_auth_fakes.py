"""
Fake host collaborators for session auth tests.
"""
import asyncio
from typing import Callable, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit

from services.session_auth.components import InMemorySecretStore
from services.session_auth.interfaces import CallbackAcceptor, CallbackRegistration, ExternalBrowser
from services.session_auth.models import Session

CALLBACK_URI = "http://127.0.0.1:5555/did-authenticate"
STORAGE_KEY = "test-sessions"


class RecordingSecretStore(InMemorySecretStore):
    """In-memory secret store that counts writes and can be told to fail."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.store_calls = 0
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, key):
        if self.fail_reads:
            raise OSError("secret storage unavailable")
        return await super().get(key)

    async def store(self, key, value):
        if self.fail_writes:
            raise OSError("secret storage is read-only")
        self.store_calls += 1
        await super().store(key, value)


class _FakeRegistration(CallbackRegistration):
    def __init__(self, acceptor, handler):
        self._acceptor = acceptor
        self._handler = handler

    def cancel(self):
        self._acceptor.cancel_calls += 1
        if self._acceptor.handler is self._handler:
            self._acceptor.handler = None


class FakeAcceptor(CallbackAcceptor):
    """Callback acceptor whose callbacks are delivered by the test."""

    def __init__(self, uri: str = CALLBACK_URI):
        self.uri = uri
        self.handler = None
        self.last_handler = None
        self.register_calls = 0
        self.cancel_calls = 0

    async def callback_uri(self):
        return self.uri

    def register_once(self, handler):
        self.register_calls += 1
        self.handler = handler
        self.last_handler = handler
        return _FakeRegistration(self, handler)

    @property
    def active(self) -> bool:
        return self.handler is not None

    def deliver(self, uri: str) -> bool:
        handler, self.handler = self.handler, None
        if handler is None:
            return False
        handler(uri)
        return True


class FakeBrowser(ExternalBrowser):
    """Records opened URLs; optionally answers with a callback URI."""

    def __init__(self, acceptor: Optional[FakeAcceptor] = None,
                 respond: Optional[Callable[[str], Optional[str]]] = None,
                 opens: bool = True):
        self.acceptor = acceptor
        self.respond = respond
        self.opens = opens
        self.opened: List[str] = []

    async def open(self, url):
        self.opened.append(url)
        if self.acceptor is not None and self.respond is not None:
            callback = self.respond(url)
            if callback is not None:
                asyncio.get_running_loop().call_soon(self.acceptor.deliver, callback)
        return self.opens


def callback_for(auth_url: str, state: Optional[str] = None, **params) -> str:
    """Build the redirect the login page would send back for auth_url."""
    query = dict(parse_qsl(urlsplit(auth_url).query))
    values = {"state": query["state"] if state is None else state}
    values.update(params)
    return f"{query['redirect_uri']}?{urlencode(values)}"


def make_session(session_id="a@x.com", token="t1", scopes=("chat",), label="Ann", **kwargs) -> Session:
    return Session(id=session_id, access_token=token, account_label=label,
                   scopes=frozenset(scopes), **kwargs)
