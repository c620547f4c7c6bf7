"""Host capabilities the session auth engine depends on."""

from abc import ABC, abstractmethod
from typing import Callable, Optional

# Receives the full callback URI, query string included
CallbackHandler = Callable[[str], None]


class SecretStore(ABC):
    """Opaque durable key/value storage for secrets."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key is absent."""
        pass

    @abstractmethod
    async def store(self, key: str, value: str) -> None:
        """Replace the whole value stored under key."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass


class CallbackRegistration(ABC):
    """Handle returned by a one-shot callback registration."""

    @abstractmethod
    def cancel(self) -> None:
        """Tear down the registration. Safe to call more than once."""
        pass


class CallbackAcceptor(ABC):
    """Accepts the browser redirect back into the application."""

    @abstractmethod
    async def callback_uri(self) -> str:
        """Externally reachable URI the login page should redirect to."""
        pass

    @abstractmethod
    def register_once(self, handler: CallbackHandler) -> CallbackRegistration:
        """Deliver at most one callback URI to handler until cancelled."""
        pass


class ExternalBrowser(ABC):
    """Opens URLs outside the application."""

    @abstractmethod
    async def open(self, url: str) -> bool:
        """Open url; returns False if the host could not open it."""
        pass
