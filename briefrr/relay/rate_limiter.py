"""
Rate limiter - client-side request throttling for the Gemini API

Two independent throttles, the stricter always wins:
- a minimum delay between requests (protects the per-minute quota)
- exponential backoff after upstream 429s, 60s -> 120s -> 240s -> 300s max
  (protects the per-day quota)
"""

import logging
from typing import Callable, Optional

from ..core.config import BriefrrConfig
from ..core.utils import now_ms, format_time_remaining
from ..models.rate_limit import DenyReason, GateDecision, RateLimitState
from ..storage.base import BaseStateStore
from ..utils.async_helpers import wait_with_default

logger = logging.getLogger(__name__)


class RateLimiter:
    """Gate consulted before every upstream call, backed by persisted state"""

    def __init__(
        self,
        store: BaseStateStore,
        config: Optional[BriefrrConfig] = None,
        clock: Callable[[], int] = now_ms
    ):
        """
        Initialize the rate limiter

        Args:
            store: Persisted state shared by every component that gates
            config: Timing settings (uses defaults if None)
            clock: Returns the current time in epoch milliseconds
        """
        self.store = store
        self.config = config or BriefrrConfig(storage_type="memory")
        self.clock = clock

    @property
    def min_request_delay(self) -> int:
        return self.config.min_request_delay_ms

    @property
    def initial_backoff(self) -> int:
        return self.config.initial_backoff_ms

    @property
    def max_backoff(self) -> int:
        return self.config.max_backoff_ms

    async def get_state(self) -> RateLimitState:
        """Read the persisted throttling state"""
        last_request_time = await self.store.get_last_request_time()
        backoff_delay = await self.store.get_retry_backoff()
        return RateLimitState(
            last_request_timestamp=last_request_time,
            backoff_delay=backoff_delay or None
        )

    async def can_make_request(self) -> GateDecision:
        """
        Check whether a new request may proceed

        Fails open: if reading the state takes longer than the configured
        storage timeout, or the store raises, the request is allowed.

        Returns:
            GateDecision, denied with remaining time and reason when throttled
        """
        timed_out = GateDecision.allow(timed_out=True)
        try:
            decision = await wait_with_default(
                self._check(),
                timeout=self.config.storage_timeout_ms / 1000,
                default=timed_out
            )
        except Exception as e:
            logger.error(f"Rate limit check failed, allowing request: {e}")
            return GateDecision.allow(errored=True)

        if decision.timed_out:
            logger.warning("Rate limit storage check timed out, allowing request")

        return decision

    async def _check(self) -> GateDecision:
        state = await self.get_state()
        now = self.clock()

        if state.backoff_active:
            backoff_until = state.backoff_until()
            if now < backoff_until:
                return GateDecision.deny(backoff_until - now, DenyReason.BACKOFF)
            # Backoff window has expired
            await self.store.clear_retry_backoff()
            logger.info("Backoff window expired, cleared")

        if state.last_request_timestamp:
            elapsed = now - state.last_request_timestamp
            if elapsed < self.min_request_delay:
                return GateDecision.deny(self.min_request_delay - elapsed, DenyReason.SPACING)

        return GateDecision.allow()

    async def record_request(self) -> None:
        """Stamp the current time; call immediately before an upstream request"""
        await self.store.set_last_request_time(self.clock())

    async def record_success(self) -> None:
        """A request succeeded, clear any backoff"""
        await self.store.clear_retry_backoff()

    async def record_rate_limit_error(self) -> int:
        """
        Upstream answered 429, start or extend the backoff

        Returns:
            The new backoff delay in milliseconds
        """
        current_backoff = await self.store.get_retry_backoff()

        if not current_backoff:
            new_backoff = self.initial_backoff
        else:
            new_backoff = min(current_backoff * 2, self.max_backoff)

        await self.store.set_retry_backoff(new_backoff)
        logger.warning(f"Upstream rate limit hit, backing off for {new_backoff} ms")

        return new_backoff

    async def get_remaining_cooldown(self) -> int:
        """Remaining cooldown in milliseconds, 0 when a request may proceed"""
        decision = await self.can_make_request()
        return 0 if decision.allowed else decision.remaining_ms

    @staticmethod
    def format_time_remaining(ms: int) -> str:
        """e.g. "3 seconds", "1 minute", "2 minutes" """
        return format_time_remaining(ms)

    def describe_denial(self, decision: GateDecision) -> str:
        """User-facing reason for a denied gate check"""
        time_remaining = format_time_remaining(decision.remaining_ms)
        if decision.reason == DenyReason.BACKOFF:
            return f"Rate limit cooldown active. Please wait {time_remaining}."
        return f"Too many requests. Please wait {time_remaining} before trying again."
