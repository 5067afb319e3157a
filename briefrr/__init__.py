"""
Briefrr - AI page summaries with a rate-limited Gemini relay

Brief, explain or query any page in a side drawer, streamed from Gemini
through a privileged relay that enforces request spacing and backoff.
"""

__version__ = "0.1.0"

from .briefrr import Briefrr, create_memory_briefrr
from .core.config import BriefrrConfig
from .models.session import Mode, SessionStatus, SettledOutcome, FailureKind
from .relay import RateLimiter, StreamRelay, ChannelHub
from .session import (
    SessionController, SessionView, StaticContentProvider, TextFileContentProvider
)
from .providers import BaseProvider, create_provider

__all__ = [
    "Briefrr",
    "create_memory_briefrr",
    "BriefrrConfig",
    "Mode",
    "SessionStatus",
    "SettledOutcome",
    "FailureKind",
    "RateLimiter",
    "StreamRelay",
    "ChannelHub",
    "SessionController",
    "SessionView",
    "StaticContentProvider",
    "TextFileContentProvider",
    "BaseProvider",
    "create_provider"
]
