"""
Docker Hub related exceptions

Provides a hierarchy of exceptions for the different failure modes of an
upstream call, so callers can tell an auth rejection from a missing tag
from a dropped connection.
"""

from typing import Iterable, Optional

REDACTED = "***"


def redact(message: str, secrets: Iterable[Optional[str]]) -> str:
    """Replace every known secret in message with a placeholder."""
    for secret in secrets:
        if secret:
            message = message.replace(secret, REDACTED)
    return message


class HubError(Exception):
    """Base exception for Docker Hub operations"""

    pass


class AuthenticationFailed(HubError):
    """Credential exchange or the authenticated retry was rejected"""

    pass


class UpstreamError(HubError):
    """Upstream answered with a non-success status"""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class NotFound(UpstreamError):
    """Upstream answered 404"""

    def __init__(self, message: str):
        super().__init__(404, message)


class RateLimited(UpstreamError):
    """Upstream answered 429, or the local hourly quota is spent"""

    def __init__(self, message: str):
        super().__init__(429, message)


class NetworkError(HubError):
    """Transport-level failure (DNS, connect, timeout)"""

    pass


class InvalidResponse(HubError):
    """Upstream body could not be parsed"""

    pass
