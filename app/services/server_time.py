import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

import httpx

from app.core.exceptions import ErrorKind, UrlSafetyError
from app.fetch.base import ProbeResponse
from app.fetch.prober import build_client, request_with_redirects
from app.fetch.ssrf import ValidatedTarget, validate_url
from app.fetch.utils import format_iso_utc, monotonic_ms, parse_http_date, to_epoch_ms

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

@dataclass(frozen=True)
class TimeMeasurement:
    server_time_utc: datetime
    rtt_ms: float
    estimated_epoch_ms: float

    @property
    def server_time_utc_iso(self) -> str:
        return format_iso_utc(self.server_time_utc)

    def to_payload(self, target_url: str, include_rtt: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "target_url": target_url,
            "server_time_utc": self.server_time_utc_iso,
            "server_time_estimated_epoch_ms": self.estimated_epoch_ms,
        }
        if include_rtt:
            payload["rtt_ms"] = int(round(self.rtt_ms))
        return payload

@dataclass(frozen=True)
class MeasurementError:
    kind: ErrorKind
    message: str

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.kind.value, "message": self.message}

MeasurementResult = Union[TimeMeasurement, MeasurementError]

def compute_time_result(date_header: str, t_start: float, t_end: float) -> TimeMeasurement:
    """
    Estimate the server clock from its Date header and the measured round trip.

    The Date value is assumed to be stamped halfway through the round trip,
    so the estimate is Date + RTT / 2.
    """
    server_utc = parse_http_date(date_header)
    if server_utc is None:
        raise UrlSafetyError(ErrorKind.TIME_UNAVAILABLE, "Invalid Date header received from target server.")

    rtt_ms = t_end - t_start
    return TimeMeasurement(
        server_time_utc=server_utc,
        rtt_ms=rtt_ms,
        estimated_epoch_ms=to_epoch_ms(server_utc) + rtt_ms / 2,
    )

async def _timed_probe(client, target, method, headers, clock: Clock):
    t_start = clock()
    probe: ProbeResponse = await request_with_redirects(target, method, headers, client=client)
    t_end = clock()
    return probe, t_start, t_end

async def _estimate(client: httpx.AsyncClient, target: ValidatedTarget, clock: Clock) -> TimeMeasurement:
    pending_error: Optional[UrlSafetyError] = None

    # Phase 1: HEAD is cheapest for the target
    try:
        probe, t_start, t_end = await _timed_probe(client, target, "HEAD", None, clock)
        date_header = probe.attempt.header("date")
        if date_header:
            return compute_time_result(date_header, t_start, t_end)
        pending_error = UrlSafetyError(ErrorKind.TIME_UNAVAILABLE, "Date header missing in HEAD response.")
    except UrlSafetyError as e:
        pending_error = e
    logger.debug("HEAD probe of %s gave no time (%s), falling back to GET", target.url, pending_error.message)

    # Phase 2: GET of at most one byte
    probe, t_start, t_end = await _timed_probe(client, target, "GET", {"Range": "bytes=0-0"}, clock)
    date_header = probe.attempt.header("date")
    if not date_header:
        raise pending_error or UrlSafetyError(
            ErrorKind.TIME_UNAVAILABLE, "Target server did not provide a Date header."
        )
    return compute_time_result(date_header, t_start, t_end)

async def estimate(
    target: ValidatedTarget,
    *,
    client: Optional[httpx.AsyncClient] = None,
    clock: Optional[Clock] = None,
) -> TimeMeasurement:
    """
    Measure the clock of a validated target.

    Tries HEAD first and falls back to a ranged GET when HEAD fails or
    carries no Date header.

    Raises:
        UrlSafetyError: with the kind of the terminal failure
    """
    clock = clock or monotonic_ms
    if client is None:
        async with build_client() as own_client:
            return await _estimate(own_client, target, clock)
    return await _estimate(client, target, clock)

async def measure_server_time(
    target_url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    clock: Optional[Clock] = None,
) -> MeasurementResult:
    """
    Main pipeline for a server time check.

    1. Validate the untrusted URL (SSRF guard)
    2. Probe it, re-validating every redirect hop
    3. Turn Date header + RTT into an estimated server epoch

    Never raises for expected failures: returns TimeMeasurement or MeasurementError.
    """
    try:
        target = await validate_url(target_url)
        result = await estimate(target, client=client, clock=clock)
    except UrlSafetyError as e:
        logger.info("Time check for %r failed: %s %s", target_url, e.kind.value, e.message)
        return MeasurementError(kind=e.kind, message=e.message)
    except Exception as e:
        logger.exception("Unexpected error measuring server time for %r", target_url)
        return MeasurementError(kind=ErrorKind.TIME_UNAVAILABLE, message=f"Unexpected error: {e}")

    logger.info(
        "Time check for %s: server_time=%s rtt=%.1fms",
        target.url, result.server_time_utc_iso, result.rtt_ms,
    )
    return result
