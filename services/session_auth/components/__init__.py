"""Default host collaborators for running outside an editor host."""

from .secret_store import FileSecretStore, InMemorySecretStore
from .loopback import LoopbackCallbackAcceptor, SystemBrowser

__all__ = [
    "FileSecretStore",
    "InMemorySecretStore",
    "LoopbackCallbackAcceptor",
    "SystemBrowser",
]
