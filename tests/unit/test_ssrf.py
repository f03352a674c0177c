import asyncio
import socket
import time
from unittest.mock import patch

import pytest

from app.core import config
from app.core.exceptions import ErrorKind, UrlSafetyError
from app.fetch.ssrf import (
    is_blocked_hostname,
    is_blocked_ip,
    resolve_host_addresses,
    validate_url,
)

PUBLIC_IP = "93.184.216.34"

def _validate(url):
    return asyncio.run(validate_url(url))

def _error_kind(url):
    with pytest.raises(UrlSafetyError) as exc_info:
        _validate(url)
    return exc_info.value.kind

class TestInputValidation:
    """Unit tests for URL shape checks"""

    @pytest.mark.parametrize("url", [
        "",
        "   ",
        None,
        "not-a-url",
        "ftp://example.com",
        "file:///etc/passwd",
        "javascript:alert(1)",
        "http://",
        "http://[::1",
    ])
    def test_invalid_urls(self, url, dns):
        assert _error_kind(url) == ErrorKind.INVALID_URL
        assert dns.lookups == []

    def test_url_too_long(self, dns):
        url = "http://example.com/" + "a" * config.settings.MAX_URL_LENGTH
        assert _error_kind(url) == ErrorKind.INVALID_URL

    @pytest.mark.parametrize("url", [
        "http://example.com:0/",
        "http://example.com:65536/",
        "http://example.com:abc/",
    ])
    def test_invalid_port(self, url, dns):
        assert _error_kind(url) == ErrorKind.INVALID_URL

    def test_port_checked_before_hostname_blocklist(self, dns):
        assert _error_kind("http://localhost:0/") == ErrorKind.INVALID_URL

    def test_explicit_valid_port(self, dns):
        dns.add("example.com", PUBLIC_IP)
        target = _validate("https://example.com:8443/path")
        assert target.port == 8443
        assert target.scheme == "https"

class TestHostnameBlocklist:
    """Hostname rules: exact localhost, .local and .internal suffixes"""

    @pytest.mark.parametrize("url", [
        "http://localhost/",
        "http://LOCALHOST:8080/",
        "http://localhost./",
        "http://printer.local/",
        "http://metadata.google.internal/computeMetadata/v1/",
        "https://db.corp.internal/",
    ])
    def test_blocked_hostnames(self, url, dns):
        assert _error_kind(url) == ErrorKind.BLOCKED_HOST
        assert dns.lookups == []

    def test_suffix_must_match_label(self):
        assert is_blocked_hostname("internal.example.com") is False
        assert is_blocked_hostname("mylocal") is False
        assert is_blocked_hostname("  Host.Local ") is True

class TestIPBlocklist:
    """CIDR rules for literal and resolved addresses"""

    @pytest.mark.parametrize("host", [
        "127.0.0.1",
        "127.255.255.254",
        "10.0.0.1",
        "10.255.255.255",
        "192.168.0.1",
        "172.16.5.4",
        "169.254.169.254",
        "100.64.0.1",
        "0.0.0.0",
        "224.0.0.1",
        "255.255.255.255",
        "198.51.100.7",
        "[::1]",
        "[fc00::1]",
        "[fd12:3456:789a::1]",
        "[fe80::1]",
        "[ff02::1]",
    ])
    def test_blocked_literal_ips(self, host, dns):
        assert _error_kind(f"http://{host}/") == ErrorKind.BLOCKED_IP
        assert dns.lookups == []

    @pytest.mark.parametrize("host", [
        "[::ffff:127.0.0.1]",
        "[::ffff:10.0.0.1]",
        "[::ffff:169.254.169.254]",
    ])
    def test_ipv4_mapped_ipv6_is_normalized(self, host, dns):
        assert _error_kind(f"http://{host}") == ErrorKind.BLOCKED_IP

    def test_public_literal_ip_skips_dns(self, dns):
        target = _validate(f"http://{PUBLIC_IP}/")
        assert target.addresses == (PUBLIC_IP,)
        assert dns.lookups == []

    def test_is_blocked_ip_helpers(self):
        assert is_blocked_ip("8.8.8.8") is False
        assert is_blocked_ip("2606:4700:4700::1111") is False
        assert is_blocked_ip("::ffff:192.168.1.1") is True
        assert is_blocked_ip("not-an-ip") is False

class TestResolvedAddresses:
    """DNS answers: every address must be allowed"""

    def test_public_hostname_passes(self, dns):
        dns.add("example.com", PUBLIC_IP, "2606:2800:220:1:248:1893:25c8:1946")
        target = _validate("http://Example.com/index.html")
        assert target.hostname == "example.com"
        assert target.addresses == (PUBLIC_IP, "2606:2800:220:1:248:1893:25c8:1946")
        assert target.url == "http://Example.com/index.html"

    def test_one_private_address_blocks_whole_host(self, dns):
        dns.add("mixed.example.com", PUBLIC_IP, "10.0.0.5")
        assert _error_kind("http://mixed.example.com/") == ErrorKind.BLOCKED_IP

    def test_private_address_first(self, dns):
        dns.add("rebind.example.com", "127.0.0.1", PUBLIC_IP)
        assert _error_kind("http://rebind.example.com/") == ErrorKind.BLOCKED_IP

    def test_mapped_address_in_dns_answer(self, dns):
        dns.add("v6.example.com", "::ffff:127.0.0.1")
        assert _error_kind("http://v6.example.com/") == ErrorKind.BLOCKED_IP

    def test_dns_failure(self, dns):
        assert _error_kind("http://does-not-exist.example/") == ErrorKind.DNS_LOOKUP_FAILED

class TestResolveHostAddresses:
    """resolve_host_addresses against a patched getaddrinfo"""

    def test_collects_unique_addresses(self):
        infos = [
            (socket.AF_INET, socket.SOCK_STREAM, 6, "", (PUBLIC_IP, 0)),
            (socket.AF_INET, socket.SOCK_STREAM, 6, "", (PUBLIC_IP, 0)),
            (socket.AF_INET6, socket.SOCK_STREAM, 6, "", ("2606:2800::1", 0, 0, 0)),
        ]
        with patch("socket.getaddrinfo", return_value=infos):
            addresses = asyncio.run(resolve_host_addresses("example.com"))
        assert addresses == [PUBLIC_IP, "2606:2800::1"]

    def test_lookup_error(self):
        with patch("socket.getaddrinfo", side_effect=socket.gaierror(-2, "Name or service not known")):
            with pytest.raises(UrlSafetyError) as exc_info:
                asyncio.run(resolve_host_addresses("nope.example"))
        assert exc_info.value.kind == ErrorKind.DNS_LOOKUP_FAILED

    def test_empty_answer(self):
        with patch("socket.getaddrinfo", return_value=[]):
            with pytest.raises(UrlSafetyError) as exc_info:
                asyncio.run(resolve_host_addresses("empty.example"))
        assert exc_info.value.kind == ErrorKind.DNS_LOOKUP_FAILED

    def test_lookup_deadline(self, monkeypatch):
        monkeypatch.setattr(config.settings, "DNS_TIMEOUT_MS", 50)

        def slow_getaddrinfo(*args, **kwargs):
            time.sleep(0.5)
            return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", (PUBLIC_IP, 0))]

        async def run():
            started = time.monotonic()
            try:
                await resolve_host_addresses("slow.example")
            except UrlSafetyError as e:
                return e, time.monotonic() - started
            raise AssertionError("lookup was not cut off")

        # asyncio.run still joins the sleeping resolver thread, so time the coroutine itself
        with patch("socket.getaddrinfo", side_effect=slow_getaddrinfo):
            error, elapsed = asyncio.run(run())
        assert error.kind == ErrorKind.DNS_LOOKUP_FAILED
        assert "timed out" in error.message
        assert elapsed < 0.4
