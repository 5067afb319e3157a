"""
Stream relay - the privileged side that owns network access

Accepts exactly one GenerationRequest per channel, gates it through the
rate limiter, performs the upstream streaming call and forwards text as
chunk messages, ending with exactly one done or error message.
"""

import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator, Optional, Set

from .channel import Channel, ChannelHub
from .rate_limiter import RateLimiter
from ..core.config import BriefrrConfig
from ..core.utils import format_time_remaining
from ..exceptions import (
    ChannelClosedError, NetworkFailureError, ProtocolError, UpstreamError
)
from ..models.messages import (
    ChunkMessage, DoneMessage, ErrorMessage, GenerationRequest, StreamMessage,
    INVALID_KEY, RATE_LIMITED, NETWORK_ERROR
)
from ..providers.base import BaseProvider

logger = logging.getLogger(__name__)


class StreamRelay:
    """Relays one generation request per channel to the upstream provider"""

    def __init__(
        self,
        provider: BaseProvider,
        rate_limiter: RateLimiter,
        config: Optional[BriefrrConfig] = None
    ):
        self.provider = provider
        self.rate_limiter = rate_limiter
        self.config = config or rate_limiter.config
        self._tasks: Set[asyncio.Task] = set()

    def attach(self, hub: ChannelHub) -> None:
        """Start listening for channels on the hub"""
        hub.on_connect(self.handle_connection)
        logger.info(f"Relay listening on channel '{self.config.channel_name}'")

    def handle_connection(self, channel: Channel) -> bool:
        """Accept channels with the relay's name, ignore the rest"""
        if channel.name != self.config.channel_name:
            return False

        task = asyncio.get_running_loop().create_task(self.serve(channel))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    @property
    def active_streams(self) -> int:
        return len(self._tasks)

    async def stop(self) -> None:
        """Cancel every in-flight relay task"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def serve(self, channel: Channel) -> None:
        """Handle the single request of one channel"""
        try:
            payload = await channel.receive()
        except ChannelClosedError:
            logger.debug(f"Channel {channel.channel_id} closed before a request arrived")
            return

        try:
            request = GenerationRequest.from_dict(payload)
        except ProtocolError as e:
            logger.error(f"Rejecting request on channel {channel.channel_id}: {e}")
            self._send(channel, ErrorMessage("Malformed request"))
            return

        async with aclosing(self.stream(request)) as messages:
            async for message in messages:
                if not self._send(channel, message):
                    # Remote end is gone, stop silently
                    logger.info(f"Channel {channel.channel_id} disconnected, stopping stream")
                    return

    async def stream(self, request: GenerationRequest) -> AsyncIterator[StreamMessage]:
        """
        Turn one request into a message stream

        Yields:
            Any number of ChunkMessage, then exactly one DoneMessage or ErrorMessage
        """
        decision = await self.rate_limiter.can_make_request()
        if not decision.allowed:
            reason = self.rate_limiter.describe_denial(decision)
            logger.info(f"Request gated: {decision.reason.value}, {decision.remaining_ms} ms remaining")
            yield ErrorMessage(f"{RATE_LIMITED}:{decision.remaining_ms}:{reason}")
            return

        await self._record("request", self.rate_limiter.record_request())

        chunk_count = 0
        try:
            async with self.provider.open_stream(request) as upstream:
                await self._record("success", self.rate_limiter.record_success())
                async for text in upstream:
                    chunk_count += 1
                    yield ChunkMessage(text)
        except UpstreamError as e:
            yield await self._classify_upstream_error(e)
            return
        except NetworkFailureError as e:
            yield ErrorMessage(f"{NETWORK_ERROR}:{e}")
            return
        except Exception as e:
            logger.exception(f"Relay stream failed: {e}")
            yield ErrorMessage(str(e) or e.__class__.__name__)
            return

        logger.info(f"Stream complete after {chunk_count} chunks")
        yield DoneMessage()

    async def _classify_upstream_error(self, error: UpstreamError) -> ErrorMessage:
        """Map a rejected upstream call to a terminal error message"""
        logger.error(f"Upstream rejected request ({error.status_code}): {error}")

        if error.status_code in (400, 403):
            return ErrorMessage(INVALID_KEY)

        if error.status_code == 429:
            try:
                backoff_ms = await self.rate_limiter.record_rate_limit_error()
            except Exception as e:
                logger.error(f"Failed to record rate limit error: {e}")
                backoff_ms = self.rate_limiter.initial_backoff
            time_remaining = format_time_remaining(backoff_ms)
            return ErrorMessage(
                f"{RATE_LIMITED}:{backoff_ms}:You've hit the API rate limit. "
                f"Please wait {time_remaining} and try again."
            )

        return ErrorMessage(str(error))

    async def _record(self, what: str, coro) -> None:
        """Persist a rate limiter outcome without failing the stream"""
        try:
            await coro
        except Exception as e:
            logger.error(f"Failed to record {what}: {e}")

    def _send(self, channel: Channel, message: StreamMessage) -> bool:
        """Post a message; False when the remote end has disappeared"""
        try:
            channel.send(message.to_dict())
            return True
        except ChannelClosedError:
            return False
