"""
Session controller - the unprivileged side of a Briefrr session

Runs the Idle -> Extracting -> Gating -> Streaming -> Settled state machine,
talks to the relay only through channel messages, and turns every failure
into a classified, user-facing outcome. At most one run is live per session.
"""

import asyncio
import logging
import math
from typing import Awaitable, Callable, Optional

from ..ai.prompts import build_user_prompt, get_system_prompt
from ..core.config import BriefrrConfig
from ..exceptions import ChannelClosedError, ProtocolError
from ..models.messages import (
    ChunkMessage, DoneMessage, ErrorMessage, GenerationRequest,
    parse_stream_message, INVALID_KEY, RATE_LIMITED, NETWORK_ERROR
)
from ..models.rate_limit import DenyReason
from ..models.session import (
    ArticleContent, CancellationToken, ClassifiedFailure, FailureKind, Mode,
    SessionState, SessionStatus, SettledOutcome
)
from ..relay.channel import Channel, ChannelHub
from ..relay.rate_limiter import RateLimiter
from ..storage.base import BaseStateStore
from ..utils.async_helpers import ensure_async
from .content import ContentProvider, cap_content
from .view import SessionView, LOADING_BY_MODE, LOADING_EXTRACTING

logger = logging.getLogger(__name__)

MSG_MISSING_KEY = "Please set up your Gemini API key first. Run `briefrr key set` to add one."
MSG_EMPTY_QUERY = "Please enter a search query."
MSG_EXTRACTION = (
    "Couldn't extract meaningful content from this page. "
    "The page might be too dynamic or empty."
)
MSG_INVALID_KEY = "Your API key seems invalid. Please check it in settings."
MSG_RATE_LIMITED = "You've hit the rate limit. Please wait a moment and try again."
MSG_BACKOFF = "Rate limit cooldown active. Too many requests were made."
MSG_SPACING = "Please wait before making another request."
MSG_NETWORK = "Couldn't connect to Gemini. Please check your internet connection."
MSG_CHANNEL_LOST = "Connection to extension lost. Please try again."

_NETWORK_MARKERS = (NETWORK_ERROR, "Failed to fetch", "NetworkError")


def classify_error(error: str) -> ClassifiedFailure:
    """
    Classify a relay error string

    Args:
        error: The error field of a terminal error message

    Returns:
        ClassifiedFailure with user-facing message and retry policy
    """
    if error == INVALID_KEY:
        return ClassifiedFailure(FailureKind.INVALID_CREDENTIAL, MSG_INVALID_KEY)

    if error == RATE_LIMITED or error.startswith(f"{RATE_LIMITED}:"):
        parts = error.split(":", 2)
        if len(parts) == 3:
            try:
                retry_after_ms = int(parts[1])
            except ValueError:
                retry_after_ms = 0
            if retry_after_ms > 0:
                return ClassifiedFailure(
                    FailureKind.THROTTLED,
                    parts[2] or MSG_RATE_LIMITED,
                    retry_after_ms=retry_after_ms
                )
        # Unparseable duration, offer a manual retry instead
        return ClassifiedFailure(FailureKind.THROTTLED, MSG_RATE_LIMITED)

    if any(marker in error for marker in _NETWORK_MARKERS):
        return ClassifiedFailure(FailureKind.NETWORK, MSG_NETWORK)

    return ClassifiedFailure(FailureKind.UPSTREAM, f"The response was interrupted. {error}")


class SessionController:
    """Drives one drawer: mode selection, runs, retries and cancellation"""

    def __init__(
        self,
        hub: ChannelHub,
        rate_limiter: RateLimiter,
        store: BaseStateStore,
        content_provider: ContentProvider,
        view: Optional[SessionView] = None,
        config: Optional[BriefrrConfig] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize the session controller

        Args:
            hub: Where channels to the relay are opened
            rate_limiter: Advisory pre-check before opening a channel
            store: Holds the API credential
            content_provider: Extracts the page
            view: Receives every state change (no-op view if None)
            config: Timing and content settings (rate limiter's if None)
            clock: Monotonic seconds for countdowns (event loop time if None)
            sleep: Awaitable sleep used for debounce and countdown ticks
        """
        self.hub = hub
        self.rate_limiter = rate_limiter
        self.store = store
        self.content_provider = content_provider
        self.view = view or SessionView()
        self.config = config or rate_limiter.config
        self._clock = clock
        self._sleep = sleep

        self.state = SessionState()
        self._channel: Optional[Channel] = None
        self._run_task: Optional[asyncio.Task] = None
        self._debounce_task: Optional[asyncio.Task] = None
        self._countdown_task: Optional[asyncio.Task] = None

    # Public operations

    def select_mode(self, mode: Mode) -> None:
        """
        User picked a mode

        Brief and explain start a run after the debounce window, so rapid
        toggling issues at most one upstream call. Query mode waits for
        submit_query.
        """
        mode = Mode(mode)
        self._cancel_active("mode changed")
        self.state.mode = mode
        self.state.query = ""
        self.view.show_mode(mode)

        if mode == Mode.QUERY:
            self.state.status = SessionStatus.IDLE
            self.view.show_query_prompt()
            return

        self.view.show_loading(LOADING_EXTRACTING)
        self._debounce_task = asyncio.get_running_loop().create_task(
            self._debounced_run(mode)
        )

    def submit_query(self, question: str) -> asyncio.Task:
        """Run query mode for a question"""
        if self.state.mode != Mode.QUERY:
            self.state.mode = Mode.QUERY
            self.view.show_mode(Mode.QUERY)
        return self._start_run(Mode.QUERY, question)

    def run(self, mode: Optional[Mode] = None, query: str = "") -> asyncio.Task:
        """Start a run immediately, e.g. from a keyboard shortcut"""
        mode = Mode(mode) if mode is not None else self.state.mode
        if mode != self.state.mode:
            self.view.show_mode(mode)
        return self._start_run(mode, query)

    def retry(self) -> asyncio.Task:
        """Manual retry with the same mode and query"""
        return self._start_run(self.state.mode, self.state.query)

    def close(self) -> None:
        """Drawer closed: cancel everything in flight"""
        self._cancel_active("closed")
        self.state.status = SessionStatus.IDLE
        self.view.on_closed()

    async def wait_settled(self) -> SessionState:
        """Wait for the current run task to finish"""
        task = self._run_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self.state

    @property
    def countdown_active(self) -> bool:
        return self._countdown_task is not None and not self._countdown_task.done()

    # Run lifecycle

    def _start_run(self, mode: Mode, query: str) -> asyncio.Task:
        self._cancel_active("superseded")

        token = CancellationToken()
        self.state.mode = mode
        self.state.query = query
        self.state.status = SessionStatus.IDLE
        self.state.outcome = None
        self.state.failure = None
        self.state.accumulated_text = ""
        self.state.run_id += 1
        self.state.cancellation_token = token

        self._run_task = asyncio.get_running_loop().create_task(
            self._execute(token, mode, query)
        )
        return self._run_task

    def _cancel_active(self, reason: str) -> None:
        """Cancel the pending debounce, countdown and live run"""
        for task in (self._debounce_task, self._countdown_task):
            if task is not None and not task.done():
                task.cancel()
        self._debounce_task = None
        self._countdown_task = None

        if self.state.cancellation_token.cancel(reason):
            logger.debug(f"Run {self.state.run_id} cancelled: {reason}")

        channel, self._channel = self._channel, None
        if channel is not None:
            channel.disconnect()

    async def _debounced_run(self, mode: Mode) -> None:
        await self._sleep(self.config.debounce_ms / 1000)
        self._debounce_task = None
        self._start_run(mode, "")

    async def _execute(self, token: CancellationToken, mode: Mode, query: str) -> None:
        try:
            await self._run_sequence(token, mode, query)
        except Exception as e:
            logger.exception(f"Run {self.state.run_id} failed: {e}")
            self._settle_failure(token, ClassifiedFailure(
                FailureKind.UPSTREAM, f"The response was interrupted. {e}"
            ))

    async def _run_sequence(self, token: CancellationToken, mode: Mode, query: str) -> None:
        query = query.strip()
        if mode == Mode.QUERY and not query:
            self._settle_failure(token, ClassifiedFailure(FailureKind.EMPTY_QUERY, MSG_EMPTY_QUERY))
            return

        # Extracting
        self._set_status(token, SessionStatus.EXTRACTING)
        self.view.show_loading(LOADING_EXTRACTING)

        credential = await self.store.get_api_key()
        if token.cancelled:
            return
        if not credential:
            self._settle_failure(token, ClassifiedFailure(
                FailureKind.MISSING_CREDENTIAL, MSG_MISSING_KEY
            ))
            return

        article = await self._extract()
        if token.cancelled:
            return
        if article is None:
            self._settle_failure(token, ClassifiedFailure(FailureKind.EXTRACTION, MSG_EXTRACTION))
            return

        # Gating
        self._set_status(token, SessionStatus.GATING)
        decision = await self.rate_limiter.can_make_request()
        if token.cancelled:
            return
        if not decision.allowed:
            message = MSG_BACKOFF if decision.reason == DenyReason.BACKOFF else MSG_SPACING
            self._settle_failure(token, ClassifiedFailure(
                FailureKind.THROTTLED, message, retry_after_ms=decision.remaining_ms
            ))
            return

        # Streaming
        request = GenerationRequest(
            credential=credential,
            prompt=build_user_prompt(article, mode, query),
            system_prompt=get_system_prompt(mode)
        )
        channel = self.hub.connect(self.config.channel_name)
        self._channel = channel
        self._set_status(token, SessionStatus.STREAMING)
        self.view.show_loading(LOADING_BY_MODE[mode])

        await self._consume(token, channel, request)

    async def _extract(self) -> Optional[ArticleContent]:
        """Extract off the event loop; None when there is nothing usable"""
        try:
            article = await ensure_async(self.content_provider.extract)()
        except Exception as e:
            logger.warning(f"Content extraction failed: {e}")
            return None

        if article is None or len((article.content or "").strip()) < self.config.min_content_length:
            logger.info("Extracted content too short")
            return None

        return cap_content(article, self.config.max_content_length)

    async def _consume(
        self,
        token: CancellationToken,
        channel: Channel,
        request: GenerationRequest
    ) -> None:
        """Send the request and fold relay messages into the session state"""
        try:
            channel.send(request.to_dict())
        except ChannelClosedError:
            logger.warning(f"Channel {channel.channel_id} closed before the request was sent")

        while True:
            try:
                payload = await channel.receive()
            except ChannelClosedError:
                if token.cancelled:
                    return
                self._on_channel_lost(token, channel)
                return

            if token.cancelled:
                return

            try:
                message = parse_stream_message(payload)
            except ProtocolError as e:
                logger.warning(f"Ignoring unexpected relay message: {e}")
                continue

            if isinstance(message, ChunkMessage):
                self.state.accumulated_text += message.text
                self.view.render(self.state.accumulated_text, in_progress=True)
            elif isinstance(message, DoneMessage):
                self._release_channel(channel)
                self._settle_ok(token)
                return
            elif isinstance(message, ErrorMessage):
                self._release_channel(channel)
                self._settle_failure(token, classify_error(message.error))
                return

    def _on_channel_lost(self, token: CancellationToken, channel: Channel) -> None:
        """Relay side went away without a terminal message"""
        self._release_channel(channel)
        if self.state.accumulated_text:
            logger.info("Channel closed after partial output, keeping it")
            self._settle_ok(token)
        else:
            self._settle_failure(token, ClassifiedFailure(FailureKind.CHANNEL_LOST, MSG_CHANNEL_LOST))

    def _release_channel(self, channel: Channel) -> None:
        if self._channel is channel:
            self._channel = None
        channel.disconnect()

    # State transitions

    def _set_status(self, token: CancellationToken, status: SessionStatus) -> None:
        if not token.cancelled:
            self.state.status = status

    def _settle_ok(self, token: CancellationToken) -> None:
        if token.cancelled:
            return
        self.state.status = SessionStatus.SETTLED
        self.state.outcome = SettledOutcome.OK
        self.view.render(self.state.accumulated_text, in_progress=False)

    def _settle_failure(self, token: CancellationToken, failure: ClassifiedFailure) -> None:
        if token.cancelled:
            return
        logger.info(f"Run {self.state.run_id} settled: {failure.kind.value}")
        self.state.status = SessionStatus.SETTLED
        self.state.outcome = failure.outcome
        self.state.failure = failure
        self.view.show_error(failure)

        if failure.retry_after_ms > 0:
            self._countdown_task = asyncio.get_running_loop().create_task(
                self._countdown(failure.retry_after_ms, self.state.mode, self.state.query)
            )

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    async def _countdown(self, retry_after_ms: int, mode: Mode, query: str) -> None:
        """Tick the visible countdown, then re-run the same mode and query"""
        deadline = self._now() + retry_after_ms / 1000
        tick = self.config.countdown_tick_ms / 1000

        while True:
            remaining = deadline - self._now()
            if remaining <= 0:
                break
            self.view.update_countdown(math.ceil(remaining * 1000))
            await self._sleep(min(tick, remaining))

        self.view.update_countdown(0)
        self._countdown_task = None
        logger.info(f"Countdown finished, retrying {mode.value}")
        self._start_run(mode, query)
