"""Loxone Miniserver HTTP client.

Thin aiohttp wrapper around the Miniserver's HTTP API: raw ``jdev/...``
commands answered with the ``LL`` JSON envelope, and the structure file.
Authentication is HTTP basic. Every failure is raised as
BackendUnavailableError; nothing is retried here.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from urllib.parse import urljoin

import aiohttp

from lox_mcp.address import Endpoint
from lox_mcp.constants import DEFAULT_TIMEOUT_SECONDS, STRUCTURE_FILE_COMMAND
from lox_mcp.exceptions import BackendUnavailableError

logger = logging.getLogger(__name__)

_REDIRECT_STATUSES = (301, 302, 303, 307, 308)


def parse_ll_response(body: str, command: str) -> str:
    """Extract the value of an ``LL`` response envelope.

    Example response:
        {"LL": {"control": "dev/cfg/api", "value": "{'snr': '...'}", "Code": "200"}}

    Args:
        body: Raw response text.
        command: Command that produced the response (for error messages).

    Returns:
        The envelope's value as text, or the raw body when it is not an envelope.

    Raises:
        BackendUnavailableError: If the envelope carries a non-200 code.
    """
    try:
        payload = json.loads(body)
    except ValueError:
        return body.strip()

    if not isinstance(payload, dict) or not isinstance(payload.get("LL"), dict):
        return body.strip()

    ll = payload["LL"]
    code = ll.get("Code", ll.get("code"))
    if code is not None and str(code) != "200":
        raise BackendUnavailableError(
            f"Miniserver returned code {code} for {command}", command=command
        )

    value = ll.get("value", "")
    return value if isinstance(value, str) else json.dumps(value)


class LoxoneHttpClient:
    """HTTP client for one Miniserver.

    Example:
        client = LoxoneHttpClient(resolve_endpoint("192.168.1.77"), "admin", "secret")
        await client.open()
        version = await client.call_raw("jdev/cfg/api")
        structure = await client.get_structure()
        await client.close()
    """

    def __init__(
        self,
        endpoint: Endpoint,
        username: str,
        password: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the client.

        Args:
            endpoint: Resolved Miniserver endpoint.
            username: Miniserver user.
            password: Miniserver password.
            timeout: Total timeout per request in seconds.
        """
        self.endpoint = endpoint
        self._auth = aiohttp.BasicAuth(username, password)
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None
        self._base_url = endpoint.url

    @property
    def base_url(self) -> str:
        """URL requests are sent to (the Cloud DNS target once resolved)."""
        return self._base_url

    @property
    def is_open(self) -> bool:
        return self._session is not None and not self._session.closed

    async def open(self) -> None:
        """Open the HTTP session, resolving Cloud DNS endpoints first.

        Raises:
            BackendUnavailableError: If the Cloud DNS lookup fails.
        """
        if self.is_open:
            return

        if self.endpoint.is_cloud:
            self._base_url = await self._resolve_cloud_url()

        self._session = aiohttp.ClientSession(auth=self._auth, timeout=self._timeout)
        logger.debug(f"Opened HTTP session to {self._base_url}")

    async def _resolve_cloud_url(self) -> str:
        """Follow the Cloud DNS redirect once to find the Miniserver's public URL.

        Credentials are not sent to the DNS service.
        """
        url = self.endpoint.url
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.get(url, allow_redirects=False) as resp:
                    location = resp.headers.get("Location")
                    if resp.status in _REDIRECT_STATUSES and location:
                        resolved = urljoin(url, location).rstrip("/")
                        logger.info(f"Cloud DNS resolved {url} -> {resolved}")
                        return resolved
                    raise BackendUnavailableError(
                        f"Cloud DNS did not resolve {url} (HTTP {resp.status})"
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BackendUnavailableError(
                f"Cloud DNS lookup failed for {url}: {e}", cause=e
            ) from e

    async def _get(self, path: str) -> str:
        """GET a path relative to the base URL and return the body text."""
        session = self._session
        if session is None or session.closed:
            raise BackendUnavailableError("Not connected to Miniserver", command=path)

        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            async with session.get(url) as resp:
                body = await resp.text()
                if resp.status != 200:
                    raise BackendUnavailableError(
                        f"Miniserver returned HTTP {resp.status} for {path}",
                        command=path,
                    )
                return body
        except asyncio.TimeoutError as e:
            raise BackendUnavailableError(
                f"Miniserver request timed out: {path}", command=path, cause=e
            ) from e
        except (aiohttp.ClientError, RuntimeError) as e:
            # aiohttp raises RuntimeError when the session is closed mid-call
            raise BackendUnavailableError(
                f"Miniserver request failed: {path}", command=path, cause=e
            ) from e

    async def call_raw(self, command: str) -> str:
        """Execute a raw command and return the response value.

        Args:
            command: Raw command such as ``jdev/sps/io/<uuid>/On``.

        Returns:
            Response value text.
        """
        body = await self._get(command)
        return parse_ll_response(body, command)

    async def get_structure(self) -> dict[str, Any]:
        """Download and decode the structure file.

        Returns:
            Decoded LoxAPP3.json document.
        """
        body = await self._get(STRUCTURE_FILE_COMMAND)
        try:
            data = json.loads(body)
        except ValueError as e:
            raise BackendUnavailableError(
                "Structure file is not valid JSON",
                command=STRUCTURE_FILE_COMMAND,
                cause=e,
            ) from e
        if not isinstance(data, dict):
            raise BackendUnavailableError(
                "Structure file has unexpected shape", command=STRUCTURE_FILE_COMMAND
            )
        return data

    async def close(self) -> None:
        """Close the HTTP session."""
        session, self._session = self._session, None
        if session is not None and not session.closed:
            await session.close()
