from typing import Optional

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from app.core.exceptions import ErrorKind
from app.schemas import CheckTimeRequest, CheckTimeResponse, ErrorResponse
from app.services.server_time import MeasurementError, measure_server_time

router = APIRouter()

ERROR_STATUS = {
    ErrorKind.INVALID_URL: status.HTTP_400_BAD_REQUEST,
    ErrorKind.BLOCKED_HOST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.BLOCKED_IP: status.HTTP_400_BAD_REQUEST,
    ErrorKind.DNS_LOOKUP_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorKind.TIME_UNAVAILABLE: status.HTTP_502_BAD_GATEWAY,
}

def _error_response(error: MeasurementError) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS.get(error.kind, status.HTTP_400_BAD_REQUEST),
        content=error.to_payload(),
    )

@router.post(
    "/api/check-time",
    response_model=CheckTimeResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}, 504: {"model": ErrorResponse}},
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": CheckTimeRequest.model_json_schema()}},
        }
    },
)
async def check_time(request: Request, debug: Optional[str] = None):
    """
    Estimate the current clock of the server behind target_url.

    The URL is checked against the SSRF blocklist (and so is every redirect).
    Pass ?debug=1 to include the measured round-trip time.
    """
    # Parsed by hand: any body that is not a JSON object gets INVALID_URL, not a 422
    try:
        body = await request.json()
    except ValueError:
        body = None
    payload = CheckTimeRequest.model_validate(body) if isinstance(body, dict) else None

    target_url = payload.target_url if payload else None
    if not isinstance(target_url, str) or not target_url.strip():
        return _error_response(MeasurementError(ErrorKind.INVALID_URL, "target_url is required."))

    result = await measure_server_time(target_url)
    if isinstance(result, MeasurementError):
        return _error_response(result)

    return result.to_payload(target_url, include_rtt=debug == "1")

@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "Server Time Probe"}
