"""
Unit tests for the default host components: file secret store and loopback callback server.
"""

import asyncio
import json
import os
import stat

import aiohttp
import pytest
import pytest_asyncio

from services.session_auth.auth_flow import AuthFlowCoordinator
from services.session_auth.components import FileSecretStore, LoopbackCallbackAcceptor
from services.session_auth.interfaces import ExternalBrowser
from tests.mocks.session_auth_fakes import callback_for


class TestFileSecretStore:
    """Test on-disk secret storage"""

    @pytest.mark.asyncio
    async def test_missing_file_reads_as_empty(self, tmp_path):
        store = FileSecretStore(tmp_path / "nested" / "secrets.json")

        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_store_get_delete(self, tmp_path):
        path = tmp_path / "nested" / "secrets.json"
        store = FileSecretStore(path)

        await store.store("a", "1")
        await store.store("b", "2")
        assert await store.get("a") == "1"
        assert json.loads(path.read_text()) == {"a": "1", "b": "2"}

        await store.delete("a")
        assert await store.get("a") is None
        assert await store.get("b") == "2"

    @pytest.mark.asyncio
    async def test_file_is_owner_only(self, tmp_path):
        path = tmp_path / "secrets.json"
        await FileSecretStore(path).store("a", "1")

        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
        assert [p.name for p in tmp_path.iterdir()] == ["secrets.json"]

    @pytest.mark.asyncio
    async def test_value_shared_across_instances(self, tmp_path):
        path = tmp_path / "secrets.json"
        await FileSecretStore(path).store("sessions", "[]")

        assert await FileSecretStore(path).get("sessions") == "[]"

    @pytest.mark.asyncio
    async def test_non_object_file_raises(self, tmp_path):
        path = tmp_path / "secrets.json"
        path.write_text("[1, 2]")

        with pytest.raises(ValueError):
            await FileSecretStore(path).get("a")


@pytest_asyncio.fixture
async def loopback():
    acceptor = LoopbackCallbackAcceptor(host="127.0.0.1", port=0)
    yield acceptor
    await acceptor.stop()


class _HttpBrowser(ExternalBrowser):
    """Plays the login page: redirects straight back to the callback server."""

    def __init__(self, **params):
        self.params = params
        self.statuses = []
        self._tasks = []

    async def open(self, url):
        self._tasks.append(asyncio.ensure_future(self._follow(callback_for(url, **self.params))))
        return True

    async def _follow(self, callback_url):
        async with aiohttp.ClientSession() as http:
            async with http.get(callback_url) as response:
                self.statuses.append(response.status)

    async def drain(self):
        await asyncio.gather(*self._tasks)


class TestLoopbackCallbackAcceptor:
    """Test the local HTTP callback server"""

    @pytest.mark.asyncio
    async def test_callback_uri_binds_free_port(self, loopback):
        uri = await loopback.callback_uri()

        assert uri.startswith("http://127.0.0.1:")
        assert uri.endswith("/did-authenticate")
        assert not uri.startswith("http://127.0.0.1:0/")
        assert loopback.running
        assert await loopback.callback_uri() == uri

    @pytest.mark.asyncio
    async def test_handler_sees_exactly_one_request(self, loopback):
        received = []
        uri = await loopback.callback_uri()
        loopback.register_once(received.append)

        async with aiohttp.ClientSession() as http:
            async with http.get(f"{uri}?state=s&access_token=t") as first:
                assert first.status == 200
                assert "Sign-in finished" in await first.text()
            async with http.get(f"{uri}?state=s&access_token=t") as second:
                assert second.status == 410

        assert len(received) == 1
        assert "access_token=t" in received[0]

    @pytest.mark.asyncio
    async def test_cancelled_registration_gets_no_request(self, loopback):
        received = []
        uri = await loopback.callback_uri()
        loopback.register_once(received.append).cancel()

        async with aiohttp.ClientSession() as http:
            async with http.get(uri) as response:
                assert response.status == 410
        assert received == []

    @pytest.mark.asyncio
    async def test_failing_handler_returns_500(self, loopback):
        uri = await loopback.callback_uri()

        def broken(url):
            raise RuntimeError("boom")

        loopback.register_once(broken)
        async with aiohttp.ClientSession() as http:
            async with http.get(uri) as response:
                assert response.status == 500

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, loopback):
        await loopback.callback_uri()
        await loopback.stop()
        await loopback.stop()

        assert not loopback.running

    @pytest.mark.asyncio
    async def test_full_flow_over_http(self, loopback, flow_settings):
        browser = _HttpBrowser(access_token="tok", email="a@x.com", displayName="Ann", active="true")
        coordinator = AuthFlowCoordinator(loopback, browser, flow_settings)

        payload = await coordinator.begin_flow(scopes=["chat"])
        await browser.drain()

        assert payload.access_token == "tok"
        assert payload.email == "a@x.com"
        assert browser.statuses == [200]
