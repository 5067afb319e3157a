"""
Custom exceptions for Briefrr request orchestration
"""

from typing import Optional


class BriefrrError(Exception):
    """Base exception for Briefrr errors"""
    pass


class InvalidCredentialError(BriefrrError):
    """Upstream rejected the API key (HTTP 400/403)"""
    pass


class ThrottledError(BriefrrError):
    """Request denied by the rate limiter or by upstream (HTTP 429)"""

    def __init__(self, message: str, remaining_ms: int):
        self.remaining_ms = remaining_ms
        super().__init__(message)


class NetworkFailureError(BriefrrError):
    """Upstream could not be reached or the response stream broke"""
    pass


class ExtractionError(BriefrrError):
    """Page content could not be extracted or is too short"""
    pass


class ChannelLostError(BriefrrError):
    """Relay channel closed before any text was delivered"""
    pass


class UpstreamError(BriefrrError):
    """Generic non-2xx upstream failure"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ChannelClosedError(BriefrrError):
    """Send or receive attempted on a disconnected channel"""
    pass


class ProtocolError(BriefrrError):
    """Message on a channel does not match the wire protocol"""
    pass
