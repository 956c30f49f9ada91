import ipaddress
import socket
from unittest import mock

import pytest

from trykkeri.ssrf import HostBlockedError, block_private_or_internal, is_blocked_ip


@pytest.mark.parametrize(
    "host",
    [
        "127.0.0.1",
        "127.0.0.1:8080",
        "localhost",
        "localhost:80",
        "192.168.1.1",
        "10.0.0.1",
        "172.16.0.1",
        "169.254.169.254",
        "169.254.1.1",
        "0.0.0.0",
        "[::1]",
        "[::1]:443",
    ],
)
def test_blocks_private_or_internal(host):
    with pytest.raises(HostBlockedError):
        block_private_or_internal(host)


def test_public_ip_literal_allowed():
    assert block_private_or_internal("8.8.8.8") == [ipaddress.ip_address("8.8.8.8")]


def _infos(*addresses):
    return [
        (socket.AF_INET6 if ":" in a else socket.AF_INET, socket.SOCK_STREAM, 6, "", (a, 0))
        for a in addresses
    ]


def test_public_hostname_allowed():
    with mock.patch("socket.getaddrinfo", return_value=_infos("93.184.216.34", "93.184.216.34")):
        result = block_private_or_internal("example.com")
    assert result == [ipaddress.ip_address("93.184.216.34")]


def test_any_blocked_address_blocks_host():
    with mock.patch("socket.getaddrinfo", return_value=_infos("93.184.216.34", "10.1.2.3")):
        with pytest.raises(HostBlockedError):
            block_private_or_internal("example.com:443")


def test_lookup_failure_is_not_blocked_error():
    with mock.patch("socket.getaddrinfo", side_effect=socket.gaierror("no such host")):
        with pytest.raises(ValueError) as info:
            block_private_or_internal("nowhere.example.com")
    assert not isinstance(info.value, HostBlockedError)
    assert "nowhere.example.com" in str(info.value)


def test_empty_host():
    with pytest.raises(ValueError, match="empty host"):
        block_private_or_internal("")


def test_bare_ipv6_without_brackets_is_malformed():
    with pytest.raises(ValueError, match="too many colons"):
        block_private_or_internal("::1")


def test_unterminated_bracket():
    with pytest.raises(ValueError, match="missing"):
        block_private_or_internal("[::1")


@pytest.mark.parametrize(
    ("ip", "blocked"),
    [
        ("127.255.0.1", True),
        ("172.31.255.255", True),
        ("172.32.0.1", False),
        ("172.15.0.1", False),
        ("192.169.0.1", False),
        ("1.1.1.1", False),
        ("::1", True),
        ("::ffff:127.0.0.1", True),
        ("::ffff:8.8.8.8", False),
        ("fc00::1", True),
        ("fd12:3456::1", True),
        ("fe80::1", True),
        ("febf::1", True),
        ("fec0::1", False),
        ("2001:db8::1", False),
    ],
)
def test_is_blocked_ip(ip, blocked):
    assert is_blocked_ip(ip) is blocked