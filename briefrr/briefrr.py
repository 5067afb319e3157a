"""
Main Briefrr API class
Wires the state store, rate limiter, Gemini provider and stream relay together
and hands out session controllers bound to them
"""

from typing import Optional, Dict, Any, Callable
import logging

import httpx

from .core.config import BriefrrConfig
from .core.utils import mask_api_key, now_ms
from .models.messages import INVALID_KEY, RATE_LIMITED, NETWORK_ERROR
from .exceptions import (
    ChannelLostError, ExtractionError, InvalidCredentialError,
    NetworkFailureError, ThrottledError, UpstreamError
)
from .models.session import ClassifiedFailure, FailureKind, Mode
from .providers import BaseProvider, KeyValidation, create_provider
from .relay.channel import ChannelHub
from .relay.rate_limiter import RateLimiter
from .relay.stream_relay import StreamRelay
from .session.content import ContentProvider
from .session.controller import SessionController
from .session.view import SessionView
from .storage.base import BaseStateStore, API_KEY
from .storage.local import LocalStateStore
from .storage.memory import InMemoryStateStore
from .utils.async_helpers import sync_wrapper

logger = logging.getLogger(__name__)

KEY_ERROR_MESSAGES = {
    INVALID_KEY: "Invalid API key. Please check and try again.",
    RATE_LIMITED: "Rate limited. Please wait a minute and try again.",
    NETWORK_ERROR: "Network error. Please check your connection.",
}


class Briefrr:
    """
    Main Briefrr API class

    Owns the privileged half (relay, provider, rate limiter) and creates
    unprivileged session controllers that reach it only through channels.
    """

    def __init__(
        self,
        config: Optional[BriefrrConfig] = None,
        store: Optional[BaseStateStore] = None,
        provider: Optional[BaseProvider] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], int] = now_ms
    ):
        """
        Initialize Briefrr

        Args:
            config: Configuration object (uses defaults if None)
            store: State backend (chosen from config.storage_type if None)
            provider: Upstream provider (created from config if None)
            http_client: Shared HTTP client for the default provider
            clock: Epoch milliseconds source for the rate limiter
        """
        if config is None:
            config = BriefrrConfig()
        self.config = config

        if store is None:
            if config.storage_type == "memory":
                self.store = InMemoryStateStore()
            else:
                self.store = LocalStateStore(config.state_file)
        else:
            self.store = store

        self.provider = provider or create_provider(config, client=http_client)
        self.rate_limiter = RateLimiter(self.store, config, clock=clock)
        self.relay = StreamRelay(self.provider, self.rate_limiter, config)
        self.hub = ChannelHub()
        self._relay_attached = False

        logger.info(
            f"Initialized Briefrr with {config.provider} provider "
            f"and {type(self.store).__name__} storage"
        )

    def start(self) -> None:
        """Attach the relay to the hub (idempotent)"""
        if not self._relay_attached:
            self.relay.attach(self.hub)
            self._relay_attached = True

    def create_controller(
        self,
        content_provider: ContentProvider,
        view: Optional[SessionView] = None,
        **kwargs
    ) -> SessionController:
        """
        Create a session controller for one page

        Args:
            content_provider: Extracts the page shown in the drawer
            view: Receives state updates
            **kwargs: Passed through to SessionController (clock, sleep)
        """
        self.start()
        return SessionController(
            hub=self.hub,
            rate_limiter=self.rate_limiter,
            store=self.store,
            content_provider=content_provider,
            view=view,
            config=self.config,
            **kwargs
        )

    async def summarize(
        self,
        content_provider: ContentProvider,
        mode: Mode = Mode.BRIEF,
        query: str = "",
        view: Optional[SessionView] = None
    ) -> SessionController:
        """
        Run a single mode to completion without debounce

        Returns:
            The controller, settled; inspect controller.state for the outcome
        """
        controller = self.create_controller(content_provider, view)
        controller.run(mode, query)
        await controller.wait_settled()
        return controller

    async def generate(
        self,
        content_provider: ContentProvider,
        mode: Mode = Mode.BRIEF,
        query: str = "",
        view: Optional[SessionView] = None
    ) -> str:
        """
        Run a single mode and return the generated markdown

        Raises:
            BriefrrError: Subclass matching the classified failure
        """
        controller = await self.summarize(content_provider, mode, query, view)
        state = controller.state
        # A countdown would re-run in the background, nobody is watching it here
        controller.close()

        if state.failure is not None:
            raise failure_to_exception(state.failure)
        return state.accumulated_text

    # Credential management

    async def ensure_api_key(self) -> Optional[str]:
        """Stored key, seeded from the environment on first use"""
        api_key = await self.store.get_api_key()
        if not api_key and self.config.gemini_api_key:
            await self.store.set_api_key(self.config.gemini_api_key)
            api_key = self.config.gemini_api_key
            logger.info("Stored API key from environment")
        return api_key

    async def validate_api_key(self, api_key: str) -> KeyValidation:
        """Check a key against the upstream without generating"""
        return await self.provider.validate_api_key(api_key.strip())

    async def set_api_key(self, api_key: str, validate: bool = True) -> KeyValidation:
        """
        Save a key, validating it first unless told not to

        Returns:
            KeyValidation; the key is stored only when valid
        """
        api_key = api_key.strip()
        if not api_key:
            return KeyValidation(valid=False, error="Please enter an API key")

        result = await self.validate_api_key(api_key) if validate else KeyValidation(valid=True)
        if result.valid:
            await self.store.set_api_key(api_key)
            await self.store.set_onboarded(True)
            logger.info("API key saved")
        return result

    async def clear_api_key(self) -> None:
        await self.store.remove_api_key()
        logger.info("API key cleared")

    async def get_masked_api_key(self) -> str:
        return mask_api_key(await self.store.get_api_key())

    @staticmethod
    def describe_key_error(error: Optional[str]) -> str:
        """User-facing message for a failed key validation"""
        if not error:
            return "Validation failed"
        return KEY_ERROR_MESSAGES.get(error, error)

    async def get_stats(self) -> Dict[str, Any]:
        """Get system statistics"""
        state = await self.rate_limiter.get_state()
        return {
            'config': {
                'provider': self.config.provider,
                'model': self.config.model,
                'storage_type': self.config.storage_type,
                'min_request_delay_ms': self.config.min_request_delay_ms,
            },
            'api_key': await self.get_masked_api_key(),
            'rate_limit': {
                'last_request_timestamp': state.last_request_timestamp,
                'backoff_delay_ms': state.backoff_delay,
                'remaining_cooldown_ms': await self.rate_limiter.get_remaining_cooldown(),
            },
            'storage': self.store.get_storage_stats(),
            'active_streams': self.relay.active_streams,
        }

    # Synchronous API for scripts

    def set_api_key_sync(self, api_key: str, validate: bool = True) -> KeyValidation:
        """Synchronous version of set_api_key"""
        return sync_wrapper(self.set_api_key(api_key, validate))

    def clear_api_key_sync(self) -> None:
        """Synchronous version of clear_api_key"""
        return sync_wrapper(self.clear_api_key())

    def get_stats_sync(self) -> Dict[str, Any]:
        """Synchronous version of get_stats"""
        return sync_wrapper(self.get_stats())

    async def aclose(self) -> None:
        """Stop in-flight relays and release the HTTP client"""
        await self.relay.stop()
        await self.provider.aclose()

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()


def failure_to_exception(failure: ClassifiedFailure) -> Exception:
    """Exception carrying a classified failure's user-facing message"""
    if failure.kind in (FailureKind.INVALID_CREDENTIAL, FailureKind.MISSING_CREDENTIAL):
        return InvalidCredentialError(failure.message)
    if failure.kind == FailureKind.THROTTLED:
        return ThrottledError(failure.message, failure.retry_after_ms)
    if failure.kind == FailureKind.NETWORK:
        return NetworkFailureError(failure.message)
    if failure.kind == FailureKind.EXTRACTION:
        return ExtractionError(failure.message)
    if failure.kind == FailureKind.CHANNEL_LOST:
        return ChannelLostError(failure.message)
    if failure.kind == FailureKind.EMPTY_QUERY:
        return ValueError(failure.message)
    return UpstreamError(failure.message)


def create_memory_briefrr(api_key: Optional[str] = None, **config_overrides) -> Briefrr:
    """
    Create a Briefrr instance with in-memory storage for testing

    Args:
        api_key: Key to preload into the store
        **config_overrides: BriefrrConfig fields
    """
    config = BriefrrConfig(storage_type="memory", **config_overrides)
    initial = {API_KEY: api_key} if api_key else None
    return Briefrr(config=config, store=InMemoryStateStore(initial))
