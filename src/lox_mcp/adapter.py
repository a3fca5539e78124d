"""Backend adapter for the Loxone Miniserver.

Wraps the HTTP client and provides the high-level operations the MCP
dispatchers use. Owns the single lazily-opened connection and the cached
structure snapshot.

Concurrency:
    Calls arrive on independent asyncio tasks. Opening the connection is a
    lock-guarded check-and-create, so concurrent first callers share one
    client. Structure fetches are single-flight: concurrent callers await the
    same fetch task and get the same snapshot or the same error. Errors are
    never cached, so the next call fetches again.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Protocol

from lox_mcp.address import Endpoint, resolve_endpoint
from lox_mcp.client import LoxoneHttpClient
from lox_mcp.constants import API_VERSION_COMMAND, DEFAULT_TIMEOUT_SECONDS, IO_COMMAND_PREFIX
from lox_mcp.exceptions import BackendUnavailableError
from lox_mcp.structure import StructureSnapshot

logger = logging.getLogger(__name__)


class MiniserverClient(Protocol):
    """What the adapter needs from a Miniserver client."""

    async def open(self) -> None: ...

    async def call_raw(self, command: str) -> str: ...

    async def get_structure(self) -> dict[str, Any]: ...

    async def close(self) -> None: ...


ClientFactory = Callable[[Endpoint], MiniserverClient]


def _retrieve_exception(task: asyncio.Future) -> None:
    """Mark a fetch's failure as retrieved when every waiter was cancelled."""
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Structure fetch failed: {task.exception()}")


class LoxoneAdapter:
    """High-level access to one Miniserver.

    Example:
        adapter = LoxoneAdapter("192.168.1.77", "admin", "secret")
        structure = await adapter.get_structure()
        await adapter.send_command(control.uuid_action, "On")
        await adapter.close()
    """

    def __init__(
        self,
        address: str,
        username: str,
        password: str,
        client_factory: ClientFactory | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the adapter. No network access happens until first use.

        Args:
            address: Miniserver address (local IP, MAC or URL).
            username: Miniserver user.
            password: Miniserver password.
            client_factory: Builds the client for an endpoint (defaults to LoxoneHttpClient).
            timeout: Per-request timeout for the default client.
        """
        self.address = address
        self._username = username
        self._password = password
        self._timeout = timeout
        self._client_factory = client_factory or self._default_client_factory

        self._endpoint: Endpoint | None = None
        self._client: MiniserverClient | None = None
        self._client_lock = asyncio.Lock()

        self._structure: StructureSnapshot | None = None
        self._structure_fetch: asyncio.Future[StructureSnapshot] | None = None
        self._structure_lock = asyncio.Lock()
        # Bumped on close() so fetches that straddle it are discarded
        self._generation = 0

    def _default_client_factory(self, endpoint: Endpoint) -> MiniserverClient:
        return LoxoneHttpClient(endpoint, self._username, self._password, self._timeout)

    @property
    def endpoint(self) -> Endpoint:
        """Resolved endpoint (resolved on first access)."""
        if self._endpoint is None:
            self._endpoint = resolve_endpoint(self.address)
            logger.debug(f"Resolved {self.address} to {self._endpoint.url}")
        return self._endpoint

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def cached_structure(self) -> StructureSnapshot | None:
        return self._structure

    async def _get_client(self) -> MiniserverClient:
        """Get the open client, creating it on first use."""
        client = self._client
        if client is not None:
            return client

        async with self._client_lock:
            if self._client is None:
                client = self._client_factory(self.endpoint)
                await client.open()
                self._client = client
                logger.info(f"Connected to Loxone Miniserver at {self.address}")
            return self._client

    async def get_api_version(self) -> str:
        """Execute the API version command to test connectivity. Never cached."""
        return await self.call_raw(API_VERSION_COMMAND)

    async def get_structure(self) -> StructureSnapshot:
        """Get the structure snapshot (rooms, categories, controls).

        Fetched from the Miniserver on first call and cached until close().

        Raises:
            BackendUnavailableError: If the fetch fails.
        """
        if self._structure is not None:
            return self._structure

        async with self._structure_lock:
            if self._structure is not None:
                return self._structure
            if self._structure_fetch is None:
                self._structure_fetch = asyncio.ensure_future(
                    self._fetch_structure(self._generation)
                )
                self._structure_fetch.add_done_callback(_retrieve_exception)
            fetch = self._structure_fetch

        # Shielded: a cancelled caller must not abort the fetch other callers await
        return await asyncio.shield(fetch)

    async def _fetch_structure(self, generation: int) -> StructureSnapshot:
        try:
            logger.info("Fetching structure from Miniserver")
            client = await self._get_client()
            data = await client.get_structure()
            try:
                structure = StructureSnapshot.from_api(data)
            except (AttributeError, TypeError, ValueError) as e:
                raise BackendUnavailableError(
                    "Structure file could not be parsed", cause=e
                ) from e

            if generation == self._generation:
                self._structure = structure
                logger.info(
                    f"Structure cached: lastModified={structure.last_modified}, "
                    f"rooms={len(structure.rooms)}, controls={len(structure.controls)}"
                )
            return structure
        finally:
            if generation == self._generation:
                self._structure_fetch = None

    async def call_raw(self, command: str) -> str:
        """Execute a raw command string on the Miniserver."""
        client = await self._get_client()
        return await client.call_raw(command)

    async def send_command(self, uuid: str, command: str) -> str:
        """Send a command to a device by UUID.

        Args:
            uuid: Action UUID of the control.
            command: Command such as ``On``, ``Off`` or ``50``.

        Returns:
            Raw response value.
        """
        logger.debug(f"Sending command '{command}' to device {uuid}")
        return await self.call_raw(f"{IO_COMMAND_PREFIX}/{uuid}/{command}")

    async def close(self) -> None:
        """Close the connection and drop the cached structure. Idempotent."""
        async with self._client_lock:
            client, self._client = self._client, None
            self._structure = None
            self._structure_fetch = None
            self._generation += 1

        if client is not None:
            await client.close()
            logger.info("Disconnected from Loxone Miniserver")
