"""Error kinds raised while resolving metadata requests.

Every kind propagates unchanged to all callers waiting on the same request
and none of them is ever cached, so a caller may retry by simply resolving
the request again.
"""

from __future__ import annotations


class MetadataServiceError(Exception):
    """Base class for failures talking to the metadata service."""


class TransportError(MetadataServiceError):
    """The request never produced an HTTP response (DNS, connect, timeout)."""


class HTTPStatusError(MetadataServiceError):
    """The service answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str | None = None) -> None:
        self.status_code = status_code
        super().__init__(message or f"HTTP error: {status_code}")


class DecodingError(MetadataServiceError):
    """The payload did not match the expected shape."""


class InvalidRequestError(MetadataServiceError, ValueError):
    """Malformed request parameters, detected before any fetch."""
