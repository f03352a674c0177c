import asyncio
import logging
from typing import Mapping, Optional
from urllib.parse import urljoin

import httpx

from app.core.config import settings
from app.core.exceptions import ErrorKind, UrlSafetyError
from app.fetch.base import FetchAttempt, ProbeResponse
from app.fetch.ssrf import ValidatedTarget, validate_url
from app.fetch.utils import monotonic_ms

logger = logging.getLogger(__name__)

REDIRECT_STATUS = frozenset({301, 302, 303, 307, 308})

def build_client() -> httpx.AsyncClient:
    """Client for probing untrusted targets. Redirects are never followed by httpx itself."""
    return httpx.AsyncClient(
        timeout=settings.REQUEST_TIMEOUT_MS / 1000,
        follow_redirects=False,
        headers={"User-Agent": settings.USER_AGENT},
    )

async def _exchange(client: httpx.AsyncClient, request: httpx.Request) -> httpx.Response:
    response = await client.send(request, stream=True, follow_redirects=False)
    # Only status and headers are needed; the body is discarded unread
    await response.aclose()
    return response

async def fetch_once(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    headers: Optional[Mapping[str, str]] = None,
) -> FetchAttempt:
    """
    Issue a single request under the request deadline.

    The response body is closed before this returns, on success and on error.
    On deadline expiry the in-flight request is cancelled.
    """
    started = monotonic_ms()
    try:
        request = client.build_request(method, url, headers=headers)
        response = await asyncio.wait_for(
            _exchange(client, request),
            timeout=settings.REQUEST_TIMEOUT_MS / 1000,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException):
        logger.warning("%s %s timed out after %sms", method, url, settings.REQUEST_TIMEOUT_MS)
        raise UrlSafetyError(ErrorKind.TIMEOUT, "Request to target timed out.")
    except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
        logger.warning("%s %s failed: %s", method, url, e)
        raise UrlSafetyError(ErrorKind.TIME_UNAVAILABLE, str(e) or "Request to target failed.")

    return FetchAttempt(
        method=method,
        url=url,
        status_code=response.status_code,
        headers=response.headers,
        started_ms=started,
        finished_ms=monotonic_ms(),
    )

async def _follow(
    client: httpx.AsyncClient,
    target: ValidatedTarget,
    method: str,
    headers: Optional[Mapping[str, str]],
) -> ProbeResponse:
    redirects: list[str] = []

    for hop in range(settings.MAX_REDIRECTS + 1):
        attempt = await fetch_once(client, method, target.url, headers)
        if attempt.status_code not in REDIRECT_STATUS:
            return ProbeResponse(attempt=attempt, final_url=target.url, redirects=redirects)

        location = attempt.header("location")
        if not location:
            raise UrlSafetyError(ErrorKind.TIME_UNAVAILABLE, "Redirect response missing location header.")
        if hop == settings.MAX_REDIRECTS:
            logger.info("Redirect limit reached at %s", target.url)
            break

        next_url = urljoin(target.url, location)
        logger.debug("Redirect %d: %s -> %s", hop + 1, target.url, next_url)
        # Every hop gets the full SSRF check before it is contacted
        target = await validate_url(next_url)
        redirects.append(target.url)

    raise UrlSafetyError(ErrorKind.TIME_UNAVAILABLE, "Too many redirects when fetching target URL.")

async def request_with_redirects(
    target: ValidatedTarget,
    method: str,
    headers: Optional[Mapping[str, str]] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> ProbeResponse:
    """
    Request target, following up to MAX_REDIRECTS redirects manually.

    Each Location is resolved against the current URL and validated again
    before it is requested. Returns the first non-redirect response together
    with the URL that produced it.

    Raises:
        UrlSafetyError: TIMEOUT, TIME_UNAVAILABLE, or any validation error of a redirect hop
    """
    if client is None:
        async with build_client() as own_client:
            return await _follow(own_client, target, method, headers)
    return await _follow(client, target, method, headers)
