"""Rate limiting, channels and the privileged stream relay"""

from .channel import Channel, ChannelHub
from .rate_limiter import RateLimiter
from .stream_relay import StreamRelay

__all__ = [
    "Channel",
    "ChannelHub",
    "RateLimiter",
    "StreamRelay"
]
