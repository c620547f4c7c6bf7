"""Loopback HTTP callback acceptor and system browser opener."""

import asyncio
import logging
import webbrowser
from typing import Optional

from aiohttp import web

from ..interfaces import CallbackAcceptor, CallbackHandler, CallbackRegistration, ExternalBrowser

logger = logging.getLogger(__name__)

_DONE_PAGE = """<!doctype html>
<html><head><title>Signed in</title></head>
<body><p>Sign-in finished. You can close this window and return to the application.</p></body>
</html>"""

_IDLE_PAGE = """<!doctype html>
<html><head><title>No sign-in in progress</title></head>
<body><p>No sign-in is waiting for this callback. Start the login again.</p></body>
</html>"""


class _LoopbackRegistration(CallbackRegistration):

    def __init__(self, acceptor: "LoopbackCallbackAcceptor", handler: CallbackHandler):
        self._acceptor = acceptor
        self._handler = handler

    def cancel(self) -> None:
        self._acceptor._clear_handler(self._handler)


class LoopbackCallbackAcceptor(CallbackAcceptor):
    """Receives the login redirect on a local aiohttp server.

    The server starts lazily on the first callback_uri() call. Only one
    handler is registered at a time, and it sees at most one request.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0, path: str = "/did-authenticate"):
        self.host = host
        self.port = port
        self.path = path if path.startswith("/") else f"/{path}"
        self._runner: Optional[web.AppRunner] = None
        self._bound_port: Optional[int] = None
        self._handler: Optional[CallbackHandler] = None
        self._start_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        async with self._start_lock:
            if self._runner is not None:
                return
            app = web.Application()
            app.router.add_get(self.path, self._handle_callback)
            runner = web.AppRunner(app)
            await runner.setup()
            site = web.TCPSite(runner, self.host, self.port)
            await site.start()
            self._runner = runner
            self._bound_port = runner.addresses[0][1]
            logger.info(f"Callback server listening on {self.host}:{self._bound_port}")

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        self._bound_port = None
        self._handler = None
        logger.info("Callback server stopped")

    async def callback_uri(self) -> str:
        await self.start()
        return f"http://{self.host}:{self._bound_port}{self.path}"

    def register_once(self, handler: CallbackHandler) -> CallbackRegistration:
        if self._handler is not None:
            logger.warning("Replacing a callback handler that was never used")
        self._handler = handler
        return _LoopbackRegistration(self, handler)

    def _clear_handler(self, handler: CallbackHandler) -> None:
        if self._handler is handler:
            self._handler = None

    async def _handle_callback(self, request: web.Request) -> web.Response:
        handler, self._handler = self._handler, None
        if handler is None:
            return web.Response(status=410, text=_IDLE_PAGE, content_type="text/html")
        try:
            handler(str(request.url))
        except Exception as e:
            logger.error(f"Callback handler failed: {e}")
            return web.Response(status=500, text="Sign-in callback failed", content_type="text/plain")
        return web.Response(text=_DONE_PAGE, content_type="text/html")


class SystemBrowser(ExternalBrowser):
    """Opens URLs with the platform's default browser."""

    async def open(self, url: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, webbrowser.open, url)
