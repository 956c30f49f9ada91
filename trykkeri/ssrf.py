"""Protection against fetching private, loopback or metadata addresses."""

from __future__ import annotations

import ipaddress
import socket

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


class HostBlockedError(ValueError):
    """The host resolves to a private, link-local or internal address."""

    def __init__(self, message: str = "url host is not allowed (private or internal)") -> None:
        super().__init__(message)


def _split_hostname(host: str) -> str:
    """Return the host part of ``host:port``, or ``host`` itself when no port is given."""
    if host.startswith("["):
        end = host.find("]")
        if end < 0:
            raise ValueError(f"address {host}: missing ']' in address")
        rest = host[end + 1 :]
        if not rest:
            return host
        if not rest.startswith(":") or "]" in rest or "[" in host[1:end]:
            raise ValueError(f"address {host}: unexpected bracket in address")
        return host[1:end]
    if host.count(":") > 1:
        raise ValueError(f"address {host}: too many colons in address")
    return host.split(":", 1)[0]


def _resolve(hostname: str) -> list[IPAddress]:
    try:
        infos = socket.getaddrinfo(hostname, None)
    except (OSError, UnicodeError) as exc:
        raise ValueError(f"lookup {hostname}: {exc}") from exc
    addresses: list[IPAddress] = []
    for *_, sockaddr in infos:
        address = ipaddress.ip_address(str(sockaddr[0]).split("%", 1)[0])
        if address not in addresses:
            addresses.append(address)
    return addresses


def is_blocked_ip(ip: IPAddress | str) -> bool:
    """Whether ``ip`` lies in a loopback, private, link-local or unspecified range."""
    address = ipaddress.ip_address(ip)
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped
    first, second = address.packed[0], address.packed[1]
    if isinstance(address, ipaddress.IPv4Address):
        return (
            first in (0, 10, 127)
            or (first == 172 and 16 <= second <= 31)
            or (first == 192 and second == 168)
            or (first == 169 and second == 254)
        )
    return (
        address == ipaddress.IPv6Address("::1")
        or first in (0xFC, 0xFD)
        or (first == 0xFE and (second & 0xC0) == 0x80)
    )


def block_private_or_internal(host: str) -> list[IPAddress]:
    """Resolve ``host`` (optionally with a port) and refuse internal addresses.

    Returns the resolved addresses. Raises HostBlockedError if any of them is
    blocked, and ValueError if the host is malformed or cannot be resolved.
    """
    hostname = _split_hostname(host).strip("[]")
    if not hostname:
        raise ValueError("empty host")
    addresses = _resolve(hostname)
    if not addresses:
        raise ValueError("no addresses for host")
    if any(is_blocked_ip(address) for address in addresses):
        raise HostBlockedError()
    return addresses