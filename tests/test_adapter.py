"""Tests for LoxoneAdapter connection handling and structure caching."""

import asyncio
import gc

import pytest

from lox_mcp.adapter import LoxoneAdapter
from lox_mcp.exceptions import BackendUnavailableError, InvalidAddressFormatError


class TestConnection:
    """Tests for lazy connection management."""

    @pytest.mark.asyncio
    async def test_lazy_connect(self, adapter, fake_client):
        """No connection is opened until the first call."""
        assert adapter.is_connected is False
        assert fake_client.opened == 0

        await adapter.get_api_version()

        assert adapter.is_connected is True
        assert fake_client.opened == 1

    @pytest.mark.asyncio
    async def test_concurrent_first_calls_share_connection(self, fake_client):
        """Concurrent first callers create exactly one client."""
        created = []

        def factory(endpoint):
            created.append(endpoint)
            return fake_client

        adapter = LoxoneAdapter("192.168.1.77", "admin", "secret", client_factory=factory)

        await asyncio.gather(*(adapter.get_api_version() for _ in range(10)))

        assert len(created) == 1
        assert fake_client.opened == 1
        assert len(fake_client.commands) == 10

    @pytest.mark.asyncio
    async def test_failed_open_is_retried(self, fake_client):
        """A failed open leaves no connection behind."""
        attempts = 0

        async def failing_open():
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise BackendUnavailableError("Cloud DNS lookup failed")

        fake_client.open = failing_open
        adapter = LoxoneAdapter(
            "192.168.1.77", "admin", "secret", client_factory=lambda endpoint: fake_client
        )

        with pytest.raises(BackendUnavailableError):
            await adapter.get_api_version()
        assert adapter.is_connected is False

        await adapter.get_api_version()
        assert adapter.is_connected is True
        assert attempts == 2

    @pytest.mark.asyncio
    async def test_invalid_address(self):
        """An unusable address fails on first use."""
        adapter = LoxoneAdapter("invalid_address", "admin", "secret")

        with pytest.raises(InvalidAddressFormatError):
            await adapter.get_api_version()

    def test_endpoint_resolved_once(self, adapter):
        """The endpoint is derived once and reused."""
        assert adapter.endpoint is adapter.endpoint
        assert adapter.endpoint.url == "http://192.168.1.77"


class TestCommands:
    """Tests for raw command paths."""

    @pytest.mark.asyncio
    async def test_api_version(self, adapter, fake_client):
        """API version uses jdev/cfg/api and is never cached."""
        await adapter.get_api_version()
        await adapter.get_api_version()

        assert fake_client.commands == ["jdev/cfg/api", "jdev/cfg/api"]

    @pytest.mark.asyncio
    async def test_send_command_path(self, adapter, fake_client):
        """Device commands go to jdev/sps/io/<uuid>/<command>."""
        response = await adapter.send_command("act-1", "On")

        assert response == "1"
        assert fake_client.commands == ["jdev/sps/io/act-1/On"]

    @pytest.mark.asyncio
    async def test_call_raw(self, adapter, fake_client):
        """Raw commands are passed through unchanged."""
        await adapter.call_raw("jdev/sps/status")
        assert fake_client.commands == ["jdev/sps/status"]

    @pytest.mark.asyncio
    async def test_backend_failure_propagates(self, adapter, fake_client):
        """Backend errors surface to the caller."""
        fake_client.failing.add("act-1")

        with pytest.raises(BackendUnavailableError):
            await adapter.send_command("act-1", "On")


class TestStructureCache:
    """Tests for single-flight structure fetching."""

    @pytest.mark.asyncio
    async def test_structure_cached(self, adapter, fake_client):
        """The structure is fetched once and then served from cache."""
        first = await adapter.get_structure()
        second = await adapter.get_structure()

        assert first is second
        assert fake_client.structure_calls == 1
        assert adapter.cached_structure is first

    @pytest.mark.asyncio
    async def test_concurrent_fetches_single_flight(self, adapter, fake_client):
        """Concurrent callers share one fetch and get the same snapshot."""
        fake_client.structure_delay = 0.01

        results = await asyncio.gather(*(adapter.get_structure() for _ in range(20)))

        assert fake_client.structure_calls == 1
        assert all(result is results[0] for result in results)

    @pytest.mark.asyncio
    async def test_concurrent_fetch_failure_shared(self, adapter, fake_client):
        """Concurrent callers of a failing fetch all see the failure."""
        fake_client.structure_delay = 0.01
        fake_client.structure_error = BackendUnavailableError("Miniserver request timed out")

        results = await asyncio.gather(
            *(adapter.get_structure() for _ in range(5)), return_exceptions=True
        )

        assert fake_client.structure_calls == 1
        assert all(isinstance(r, BackendUnavailableError) for r in results)

    @pytest.mark.asyncio
    async def test_failure_not_cached(self, adapter, fake_client):
        """After a failed fetch the next call fetches again."""
        fake_client.structure_error = BackendUnavailableError("Miniserver request timed out")

        with pytest.raises(BackendUnavailableError):
            await adapter.get_structure()
        assert adapter.cached_structure is None

        fake_client.structure_error = None
        structure = await adapter.get_structure()

        assert fake_client.structure_calls == 2
        assert len(structure.rooms) == 3

    @pytest.mark.asyncio
    async def test_malformed_structure(self, adapter, fake_client):
        """A document with the wrong shape is a backend failure."""
        fake_client.structure = {"rooms": ["not", "a", "mapping"]}

        with pytest.raises(BackendUnavailableError):
            await adapter.get_structure()

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_abort_fetch(self, adapter, fake_client):
        """Cancelling one waiter leaves the shared fetch running for others."""
        fake_client.structure_delay = 0.05

        first = asyncio.ensure_future(adapter.get_structure())
        second = asyncio.ensure_future(adapter.get_structure())
        await asyncio.sleep(0.01)
        first.cancel()

        structure = await second

        assert len(structure.controls) == 6
        assert fake_client.structure_calls == 1

    @pytest.mark.asyncio
    async def test_abandoned_failed_fetch_is_retrieved(self, adapter, fake_client):
        """A fetch that fails after its only waiter was cancelled logs no lost exception."""
        loop = asyncio.get_running_loop()
        reported = []
        previous = loop.get_exception_handler()
        loop.set_exception_handler(lambda loop, context: reported.append(context))
        try:
            fake_client.structure_delay = 0.02
            fake_client.structure_error = BackendUnavailableError("Miniserver request timed out")

            waiter = asyncio.ensure_future(adapter.get_structure())
            await asyncio.sleep(0.005)
            waiter.cancel()
            await asyncio.sleep(0.05)
            del waiter
            gc.collect()
        finally:
            loop.set_exception_handler(previous)

        assert not [c for c in reported if "never retrieved" in c.get("message", "")]

        fake_client.structure_error = None
        structure = await adapter.get_structure()
        assert fake_client.structure_calls == 2
        assert len(structure.rooms) == 3


class TestClose:
    """Tests for close()."""

    @pytest.mark.asyncio
    async def test_close_releases_connection_and_cache(self, adapter, fake_client):
        """close() drops the client and the cached structure."""
        await adapter.get_structure()

        await adapter.close()

        assert adapter.is_connected is False
        assert adapter.cached_structure is None
        assert fake_client.closed == 1

    @pytest.mark.asyncio
    async def test_close_idempotent(self, adapter, fake_client):
        """Repeated close() calls close the client once."""
        await adapter.get_api_version()

        await adapter.close()
        await adapter.close()

        assert fake_client.closed == 1

    @pytest.mark.asyncio
    async def test_close_without_connection(self, adapter, fake_client):
        """Closing an unused adapter is a no-op."""
        await adapter.close()
        assert fake_client.closed == 0

    @pytest.mark.asyncio
    async def test_refetch_after_close(self, adapter, fake_client):
        """After close() the next call reconnects and fetches again."""
        await adapter.get_structure()
        await adapter.close()

        await adapter.get_structure()

        assert fake_client.opened == 2
        assert fake_client.structure_calls == 2

    @pytest.mark.asyncio
    async def test_fetch_straddling_close_is_discarded(self, adapter, fake_client):
        """A fetch that completes after close() is not cached."""
        fake_client.structure_delay = 0.05

        fetch = asyncio.ensure_future(adapter.get_structure())
        await asyncio.sleep(0.01)
        await adapter.close()
        await fetch

        assert adapter.cached_structure is None
