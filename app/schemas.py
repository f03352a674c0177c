from pydantic import BaseModel, Field
from typing import Any, Optional

class CheckTimeRequest(BaseModel):
    # Any JSON value is accepted here; non-string or blank values get the API's own INVALID_URL error
    target_url: Optional[Any] = None

class CheckTimeResponse(BaseModel):
    target_url: str
    server_time_utc: str = Field(description="Server time from the Date header, ISO 8601 UTC")
    server_time_estimated_epoch_ms: float = Field(description="Date header time corrected by RTT/2, epoch milliseconds")
    rtt_ms: Optional[int] = Field(None, description="Round-trip time in milliseconds (debug=1 only)")

class ErrorResponse(BaseModel):
    error: str
    message: str
