"""
Meta API error classification.

Retry and degradation policy is decided from ErrorKind only; this module is
the single place that interprets upstream error codes and wording.
"""
import enum
from typing import Optional

# Application / account / user request limit reached
RATE_LIMIT_CODES = {4, 17, 32, 613}
# Temporary service issue, service unavailable
TRANSIENT_CODES = {2, 99}
# "An unknown error occurred" - what the insights endpoint returns for oversized requests
OPAQUE_ERROR_CODES = {1}


class ErrorKind(str, enum.Enum):
    TIMEOUT = "timeout"
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    TRANSIENT = "transient"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    PERMANENT = "permanent"


RETRYABLE_KINDS = {ErrorKind.TIMEOUT, ErrorKind.NETWORK, ErrorKind.RATE_LIMIT, ErrorKind.TRANSIENT}


def classify_error(code: Optional[int], message: str = "", status_code: Optional[int] = None) -> ErrorKind:
    """Map an upstream error to an ErrorKind"""
    text = (message or "").lower()

    if code in RATE_LIMIT_CODES:
        return ErrorKind.RATE_LIMIT
    if code in TRANSIENT_CODES:
        return ErrorKind.TRANSIENT
    if "reduce the amount of data" in text:
        return ErrorKind.PAYLOAD_TOO_LARGE
    if "temporarily" in text:
        return ErrorKind.TRANSIENT
    if code in OPAQUE_ERROR_CODES or "unknown error" in text:
        return ErrorKind.PAYLOAD_TOO_LARGE

    if code is None and status_code is not None:
        if status_code == 429:
            return ErrorKind.RATE_LIMIT
        if status_code >= 500:
            return ErrorKind.TRANSIENT

    return ErrorKind.PERMANENT


class MetaAPIError(Exception):
    """Failed Meta API call"""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        kind: Optional[ErrorKind] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.kind = kind or classify_error(code, message, status_code)
        super().__init__(self.__str__())

    @classmethod
    def from_envelope(cls, error: dict, status_code: Optional[int] = None) -> "MetaAPIError":
        """Build from the API's {"error": {"message", "code"}} envelope"""
        message = error.get("message") or "Unknown Meta API error"
        code = error.get("code")
        try:
            code = int(code) if code is not None else None
        except (TypeError, ValueError):
            code = None
        return cls(message, code=code, status_code=status_code)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __str__(self) -> str:
        if self.code is not None:
            return f"Meta API: {self.message} (code {self.code})"
        return f"Meta API: {self.message}"
