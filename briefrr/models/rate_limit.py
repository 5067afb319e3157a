"""
Rate limiting models
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class DenyReason(str, Enum):
    """Why the gate denied a request"""
    SPACING = "spacing"    # Minimum delay between requests not yet elapsed
    BACKOFF = "backoff"    # Cooldown after an upstream 429


@dataclass
class RateLimitState:
    """Persisted throttling state"""
    last_request_timestamp: Optional[int] = None  # epoch ms
    backoff_delay: Optional[int] = None           # ms, absent when inactive

    @property
    def backoff_active(self) -> bool:
        return bool(self.backoff_delay) and self.backoff_delay > 0

    def backoff_until(self) -> Optional[int]:
        """End of the current backoff window, if any"""
        if not self.backoff_active:
            return None
        return (self.last_request_timestamp or 0) + self.backoff_delay


@dataclass(frozen=True)
class GateDecision:
    """Result of a rate limiter gate check"""
    allowed: bool
    remaining_ms: int = 0
    reason: Optional[DenyReason] = None
    timed_out: bool = False
    errored: bool = False

    @classmethod
    def allow(cls, timed_out: bool = False, errored: bool = False) -> 'GateDecision':
        return cls(allowed=True, timed_out=timed_out, errored=errored)

    @classmethod
    def deny(cls, remaining_ms: int, reason: DenyReason) -> 'GateDecision':
        return cls(allowed=False, remaining_ms=remaining_ms, reason=reason)
