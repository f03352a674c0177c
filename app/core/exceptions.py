from enum import Enum


class ErrorKind(str, Enum):
    INVALID_URL = "INVALID_URL"
    BLOCKED_HOST = "BLOCKED_HOST"
    BLOCKED_IP = "BLOCKED_IP"
    DNS_LOOKUP_FAILED = "DNS_LOOKUP_FAILED"
    TIMEOUT = "TIMEOUT"
    TIME_UNAVAILABLE = "TIME_UNAVAILABLE"


class UrlSafetyError(Exception):
    """Raised inside the core when a target cannot be (safely) measured."""

    def __init__(self, kind: ErrorKind, message: str):
        self.kind = ErrorKind(kind)
        self.message = message
        super().__init__(message)

    def __repr__(self) -> str:
        return f"UrlSafetyError({self.kind.value}, {self.message!r})"
