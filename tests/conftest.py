import pytest
import httpx
from app.core import config
from app.core.exceptions import ErrorKind, UrlSafetyError
from app.fetch import ssrf

class FakeDNS:
    """In-memory replacement for resolve_host_addresses"""

    def __init__(self):
        self.records = {}
        self.lookups = []

    def add(self, hostname, *addresses):
        self.records[hostname] = list(addresses)

    async def resolve(self, hostname):
        self.lookups.append(hostname)
        if hostname not in self.records:
            # Unknown hostnames fail like a real NXDOMAIN
            raise UrlSafetyError(ErrorKind.DNS_LOOKUP_FAILED, f"DNS lookup failed for {hostname}.")
        return list(self.records[hostname])

@pytest.fixture
def dns(monkeypatch):
    fake = FakeDNS()
    monkeypatch.setattr(ssrf, "resolve_host_addresses", fake.resolve)
    return fake

@pytest.fixture
def fast_timeout(monkeypatch):
    """Shrink the request deadline so timeout tests finish quickly"""
    monkeypatch.setattr(config.settings, "REQUEST_TIMEOUT_MS", 50)
    return 50

@pytest.fixture
def mock_client():
    """Factory for an AsyncClient whose requests are answered by handler"""
    def factory(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=False)
    return factory
