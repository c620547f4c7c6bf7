"""Session change notification."""

import inspect
import logging
from typing import Awaitable, Callable, List, Union

from .models import ChangeEvent

logger = logging.getLogger(__name__)

ChangeListener = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


class Subscription:
    """Returned by subscribe(); dispose() stops delivery to the listener."""

    def __init__(self, emitter: "SessionChangeEmitter", listener: ChangeListener):
        self._emitter = emitter
        self._listener = listener

    def dispose(self) -> None:
        self._emitter.unsubscribe(self._listener)


class SessionChangeEmitter:
    """Delivers ChangeEvent batches to subscribed listeners, sync or async."""

    def __init__(self):
        self._listeners: List[ChangeListener] = []
        self._closed = False

    def subscribe(self, listener: ChangeListener) -> Subscription:
        if self._closed:
            raise RuntimeError("Change emitter is closed")
        self._listeners.append(listener)
        return Subscription(self, listener)

    def unsubscribe(self, listener: ChangeListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def fire(self, event: ChangeEvent) -> None:
        """Deliver one event to every listener.

        The mutation behind the event is already persisted, so a failing
        listener is logged and does not stop delivery to the others.
        """
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Session change listener {listener!r} failed: {e}")

    def close(self) -> None:
        self._listeners.clear()
        self._closed = True

