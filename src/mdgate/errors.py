"""Error codes raised by the collaborator adapters.

Adapters (fetcher, converters, object store) raise these; the conversion
pipeline and the cache layer catch them at the call site and turn them into
outcomes, so they never reach the response composer as raw exceptions.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    UPSTREAM_FAILED = "UPSTREAM_FAILED"
    UPSTREAM_UNREACHABLE = "UPSTREAM_UNREACHABLE"
    CONVERSION_FAILED = "CONVERSION_FAILED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


class GatewayError(Exception):
    """Failure of an external capability, tagged with a stable code."""

    def __init__(self, code: ErrorCode, message: str, recoverable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable


class UpstreamError(GatewayError):
    """Origin answered with a non-2xx status, or could not be reached.

    ``status`` is ``None`` for transport-level failures.
    """

    def __init__(self, status: int | None, reason: str) -> None:
        code = ErrorCode.UPSTREAM_UNREACHABLE if status is None else ErrorCode.UPSTREAM_FAILED
        super().__init__(code, reason, recoverable=status is None or status >= 500)
        self.status = status
        self.reason = reason


class StoreError(GatewayError):
    """Object store read or write failed."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.STORE_UNAVAILABLE, message, recoverable=True)
