"""Miniserver address resolution.

Operators configure LOXONE_HOST in whichever form they have at hand:

- Local IP: ``192.168.1.100`` or ``192.168.1.100:8080``
- MAC / serial: ``504F12345678`` or ``50:4F:12:34:56:78`` (resolved via Loxone Cloud DNS)
- URL: ``https://my.miniserver.example``, ``example.com``, ``localhost``

The forms overlap (a bare MAC is also a valid hostname), so classification
is ordered: local IP, then MAC, then URL.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

from lox_mcp.exceptions import EmptyAddressError, InvalidAddressFormatError

LOX_DNS_URL = "https://dns.loxonecloud.com/"

_OCTET = r"(25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)"
IP_REGEX = re.compile(rf"{_OCTET}(\.{_OCTET}){{3}}(:(?P<port>\d{{1,5}}))?")
MAC_REGEX = re.compile(r"504F[0-9A-F]{8}", re.IGNORECASE)
URL_REGEX = re.compile(
    r"(https?://)?([a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?\.)*"
    r"[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?(:[0-9]{1,5})?(/.*)?"
)


class AddressType(str, Enum):
    """Kind of address used to reach the Miniserver."""

    LOCAL = "local"
    """Local IP address, optionally with port."""

    MAC = "mac"
    """Loxone serial number (starts with 504F), reached through Cloud DNS."""

    URL = "url"
    """Full URL or host name."""


@dataclass(frozen=True)
class Endpoint:
    """Resolved connection target for the Miniserver."""

    address_type: AddressType
    url: str
    """Canonical base URL, without trailing slash."""

    host: str
    port: int | None = None

    @property
    def is_cloud(self) -> bool:
        """Whether the URL points at the Cloud DNS relay rather than the Miniserver."""
        return self.address_type == AddressType.MAC


def _is_local(address: str) -> bool:
    match = IP_REGEX.fullmatch(address)
    if match is None:
        return False
    port = match.group("port")
    return port is None or 1 <= int(port) <= 65535


def resolve_address_type(address: str) -> AddressType:
    """Determine the type of address provided.

    Args:
        address: The address string to analyze.

    Returns:
        The AddressType of the address.

    Raises:
        EmptyAddressError: If the address is empty or blank.
        InvalidAddressFormatError: If the address matches no known format.
    """
    if not address or not address.strip():
        raise EmptyAddressError()

    if _is_local(address):
        return AddressType.LOCAL

    if MAC_REGEX.fullmatch(address.replace(":", "")):
        return AddressType.MAC

    if URL_REGEX.fullmatch(address):
        return AddressType.URL

    raise InvalidAddressFormatError(address)


def resolve_endpoint(address: str) -> Endpoint:
    """Resolve an address string to an Endpoint.

    Args:
        address: Configured Miniserver address.

    Returns:
        Endpoint with canonical base URL.

    Raises:
        EmptyAddressError: If the address is empty or blank.
        InvalidAddressFormatError: If the address matches no known format.
    """
    address_type = resolve_address_type(address)

    if address_type == AddressType.LOCAL:
        host, _, port = address.partition(":")
        return Endpoint(
            address_type=address_type,
            url=f"http://{address}",
            host=host,
            port=int(port) if port else None,
        )

    if address_type == AddressType.MAC:
        normalized = address.replace(":", "")
        url = LOX_DNS_URL + normalized
        return Endpoint(
            address_type=address_type,
            url=url,
            host=urlsplit(url).hostname or "",
        )

    url = address if "://" in address else f"http://{address}"
    url = url.rstrip("/")
    parts = urlsplit(url)
    try:
        port = parts.port
    except ValueError as e:
        # Port out of range
        raise InvalidAddressFormatError(address) from e
    return Endpoint(
        address_type=address_type,
        url=url,
        host=parts.hostname or "",
        port=port,
    )
