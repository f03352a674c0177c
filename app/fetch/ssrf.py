import asyncio
import logging
import socket
from dataclasses import dataclass
from ipaddress import ip_address, ip_network
from typing import Optional, Tuple
from urllib.parse import urlsplit

from app.core.config import settings
from app.core.exceptions import ErrorKind, UrlSafetyError

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")

BLOCKED_HOSTNAMES = frozenset({"localhost"})
BLOCKED_SUFFIXES = (".local", ".internal")

BLOCKED_NETWORKS = tuple(
    ip_network(cidr)
    for cidr in (
        # IPv4
        "0.0.0.0/8",           # "this" network
        "10.0.0.0/8",          # private
        "100.64.0.0/10",       # carrier-grade NAT
        "127.0.0.0/8",         # loopback
        "169.254.0.0/16",      # link-local, cloud metadata
        "172.16.0.0/12",       # private
        "192.0.0.0/24",        # IETF protocol assignments
        "192.0.2.0/24",        # TEST-NET-1
        "192.88.99.0/24",      # 6to4 relay anycast
        "192.168.0.0/16",      # private
        "198.18.0.0/15",       # benchmarking
        "198.51.100.0/24",     # TEST-NET-2
        "203.0.113.0/24",      # TEST-NET-3
        "224.0.0.0/4",         # multicast
        "240.0.0.0/4",         # reserved
        "255.255.255.255/32",  # broadcast
        # IPv6
        "::/128",              # unspecified
        "::1/128",             # loopback
        "2001:db8::/32",       # documentation
        "fc00::/7",            # unique local
        "fe80::/10",           # link-local
        "ff00::/8",            # multicast
    )
)


@dataclass(frozen=True)
class ValidatedTarget:
    url: str
    scheme: str
    hostname: str
    port: Optional[int]
    addresses: Tuple[str, ...]


def _normalize_hostname(hostname: str) -> str:
    return hostname.strip().lower().rstrip(".")


def is_blocked_hostname(hostname: str) -> bool:
    normalized = _normalize_hostname(hostname)
    if normalized in BLOCKED_HOSTNAMES:
        return True
    return normalized.endswith(BLOCKED_SUFFIXES)


def _parse_ip(value: str):
    try:
        return ip_address(value)
    except ValueError:
        return None


def is_blocked_ip(address: str) -> bool:
    """
    Check a literal IP address against the blocked networks.

    IPv4-mapped IPv6 addresses (::ffff:a.b.c.d) are matched as their IPv4
    form. Strings that are not IP addresses are reported as not blocked.
    """
    ip = _parse_ip(address)
    if ip is None:
        return False
    if ip.version == 6 and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return any(ip in network for network in BLOCKED_NETWORKS)


async def resolve_host_addresses(hostname: str) -> list[str]:
    """Resolve every A/AAAA record of hostname without blocking the event loop."""
    loop = asyncio.get_running_loop()
    try:
        infos = await asyncio.wait_for(
            loop.getaddrinfo(hostname, None, family=socket.AF_UNSPEC, type=socket.SOCK_STREAM),
            timeout=settings.DNS_TIMEOUT_MS / 1000,
        )
    except asyncio.TimeoutError:
        raise UrlSafetyError(ErrorKind.DNS_LOOKUP_FAILED, f"DNS lookup timed out for {hostname}.")
    except (OSError, UnicodeError) as e:
        raise UrlSafetyError(ErrorKind.DNS_LOOKUP_FAILED, f"DNS lookup failed for {hostname}: {e}")

    addresses = []
    for _family, _type, _proto, _canonname, sockaddr in infos:
        address = sockaddr[0]
        if address not in addresses:
            addresses.append(address)

    if not addresses:
        raise UrlSafetyError(ErrorKind.DNS_LOOKUP_FAILED, f"DNS lookup returned no addresses for {hostname}.")
    return addresses


async def validate_url(raw_url: str) -> ValidatedTarget:
    """
    Validate an untrusted URL before any request is made to it.

    Checks, in order: length, scheme/hostname, port, hostname blocklist,
    literal IP blocklist, then DNS resolution where every resolved address
    must be allowed.

    Raises:
        UrlSafetyError: INVALID_URL, BLOCKED_HOST, BLOCKED_IP or DNS_LOOKUP_FAILED
    """
    if not isinstance(raw_url, str) or not raw_url.strip():
        raise UrlSafetyError(ErrorKind.INVALID_URL, "Target URL is required.")
    url = raw_url.strip()

    if len(url) > settings.MAX_URL_LENGTH:
        raise UrlSafetyError(ErrorKind.INVALID_URL, "URL is too long.")

    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        raise UrlSafetyError(ErrorKind.INVALID_URL, "URL format is invalid.")

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise UrlSafetyError(ErrorKind.INVALID_URL, "Only HTTP/HTTPS protocols are allowed.")

    if not hostname:
        raise UrlSafetyError(ErrorKind.INVALID_URL, "URL must include a valid hostname.")

    try:
        port = parts.port
    except ValueError:
        raise UrlSafetyError(ErrorKind.INVALID_URL, "Port number is invalid.")
    if port is not None and not 1 <= port <= 65535:
        raise UrlSafetyError(ErrorKind.INVALID_URL, "Port number is invalid.")

    if is_blocked_hostname(hostname):
        logger.info("Blocked hostname %s", hostname)
        raise UrlSafetyError(ErrorKind.BLOCKED_HOST, "Hostname is not allowed.")

    if _parse_ip(hostname) is not None:
        if is_blocked_ip(hostname):
            logger.info("Blocked literal IP %s", hostname)
            raise UrlSafetyError(ErrorKind.BLOCKED_IP, "Target IP address is not allowed.")
        addresses = [hostname]
    else:
        addresses = await resolve_host_addresses(_normalize_hostname(hostname))
        for address in addresses:
            if is_blocked_ip(address):
                logger.info("Hostname %s resolves to blocked address %s", hostname, address)
                raise UrlSafetyError(ErrorKind.BLOCKED_IP, "Resolved IP address is not allowed.")

    return ValidatedTarget(
        url=url,
        scheme=scheme,
        hostname=_normalize_hostname(hostname),
        port=port,
        addresses=tuple(addresses),
    )
